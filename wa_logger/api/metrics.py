"""
Prometheus-style metrics endpoint.
"""
import time
from typing import Callable

from fastapi import APIRouter, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from wa_logger.core.config import get_settings
from wa_logger.core.logging import get_logger
from wa_logger.pipeline.store import IngestResult

logger = get_logger(__name__)

router = APIRouter(tags=["Metrics"])

# Simple in-memory metrics storage
_metrics = {
    "http_requests_total": {},  # {(method, path, status): count}
    "http_request_duration_seconds": {},  # {(method, path): [durations]}
    "ingest_events_total": {},  # {(event, result): count}
    "startup_time": None,
}


def record_request(method: str, path: str, status_code: int, duration: float) -> None:
    """Record an HTTP request metric."""
    key = (method, path, status_code)
    _metrics["http_requests_total"][key] = _metrics["http_requests_total"].get(key, 0) + 1

    duration_key = (method, path)
    durations = _metrics["http_request_duration_seconds"].setdefault(duration_key, [])
    durations.append(duration)

    # Keep only last 1000 durations to prevent memory issues
    if len(durations) > 1000:
        _metrics["http_request_duration_seconds"][duration_key] = durations[-1000:]


def record_ingest_outcome(event: str, result: IngestResult) -> None:
    """Count one pipeline outcome per event name."""
    value = result.value if isinstance(result, IngestResult) else str(result)
    key = (event, value)
    _metrics["ingest_events_total"][key] = _metrics["ingest_events_total"].get(key, 0) + 1


def set_startup_time() -> None:
    """Record application startup time."""
    _metrics["startup_time"] = time.time()


def reset_metrics() -> None:
    """Clear all counters."""
    _metrics["http_requests_total"].clear()
    _metrics["http_request_duration_seconds"].clear()
    _metrics["ingest_events_total"].clear()
    _metrics["startup_time"] = None


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect request metrics."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Skip metrics endpoint to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time

        # Route template keeps /events/{event_name} to one series
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)

        record_request(
            method=request.method,
            path=path,
            status_code=response.status_code,
            duration=duration,
        )

        return response


def generate_prometheus_metrics() -> str:
    """Generate Prometheus-format metrics output."""
    lines = []

    lines.append("# HELP app_info Application information")
    lines.append("# TYPE app_info gauge")
    lines.append(f'app_info{{version="{get_settings().app_version}"}} 1')
    lines.append("")

    if _metrics["startup_time"]:
        lines.append("# HELP app_start_time_seconds Unix timestamp when the app started")
        lines.append("# TYPE app_start_time_seconds gauge")
        lines.append(f'app_start_time_seconds {_metrics["startup_time"]:.3f}')
        lines.append("")

    lines.append("# HELP http_requests_total Total number of HTTP requests")
    lines.append("# TYPE http_requests_total counter")
    for (method, path, status), count in _metrics["http_requests_total"].items():
        lines.append(f'http_requests_total{{method="{method}",path="{path}",status="{status}"}} {count}')
    lines.append("")

    lines.append("# HELP http_request_duration_seconds HTTP request duration in seconds")
    lines.append("# TYPE http_request_duration_seconds summary")
    for (method, path), durations in _metrics["http_request_duration_seconds"].items():
        if durations:
            lines.append(f'http_request_duration_seconds_sum{{method="{method}",path="{path}"}} {sum(durations):.6f}')
            lines.append(f'http_request_duration_seconds_count{{method="{method}",path="{path}"}} {len(durations)}')
    lines.append("")

    lines.append("# HELP ingest_events_total Pipeline outcomes per transport event")
    lines.append("# TYPE ingest_events_total counter")
    for (event, result), count in _metrics["ingest_events_total"].items():
        lines.append(f'ingest_events_total{{event="{event}",result="{result}"}} {count}')

    return "\n".join(lines)


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Returns metrics in Prometheus exposition format.",
    response_class=Response,
)
async def metrics() -> Response:
    """
    Prometheus-style metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    content = generate_prometheus_metrics()
    return Response(
        content=content,
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
