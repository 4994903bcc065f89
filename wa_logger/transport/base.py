"""
Outbound call surface of the messaging transport and its error types.
"""
from typing import Any, AsyncIterator, Dict, Optional, Protocol, Union, runtime_checkable

RATE_LIMIT_STATUS = 429
RATE_LIMIT_MARKER = "rate-overlimit"

MediaContent = Union[bytes, AsyncIterator[bytes]]


class TransportError(Exception):
    """An outbound transport call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def data(self) -> Optional[int]:
        # The transport reports the HTTP-like code as ``data``
        return self.status_code


class RateLimitError(TransportError):
    """The transport rejected the call because it was issued too quickly."""

    def __init__(self, message: str = RATE_LIMIT_MARKER, status_code: int = RATE_LIMIT_STATUS):
        super().__init__(message, status_code)


class TransportNotConnectedError(TransportError):
    """No transport session is available."""

    def __init__(self, message: str = "WhatsApp socket not connected"):
        super().__init__(message, status_code=503)


def is_rate_limit_error(exc: BaseException) -> bool:
    """Return True if ``exc`` signals transport rate limiting."""
    if isinstance(exc, RateLimitError):
        return True
    for attr in ("data", "status_code"):
        if getattr(exc, attr, None) == RATE_LIMIT_STATUS:
            return True
    return RATE_LIMIT_MARKER in str(exc)


@runtime_checkable
class Transport(Protocol):
    """What the pipeline and the send API need from a transport connection."""

    user_name: Optional[str]

    async def send_message(self, jid: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        ...

    async def fetch_group_metadata(self, group_id: str) -> Dict[str, Any]:
        ...

    async def download_media(self, envelope: Dict[str, Any]) -> MediaContent:
        ...

    async def connection_status(self) -> Dict[str, Any]:
        ...
