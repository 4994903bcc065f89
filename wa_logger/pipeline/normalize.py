"""
Timestamp and identity normalization for transport payloads.

Pure functions only: transport timestamps arrive as epoch seconds, epoch
milliseconds, numeric strings or 64-bit wrappers, and are reduced to the
canonical ``YYYY-MM-DD HH:MM:SS`` UTC string stored everywhere.
"""
import math
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Sequence, Tuple

CANONICAL_FORMAT = "%Y-%m-%d %H:%M:%S"

# Epoch values at or above this are milliseconds
MILLISECONDS_THRESHOLD = 10_000_000_000

# First match wins
DEVICE_PATTERNS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"^3A.{18}$"), "iOS"),
    (re.compile(r"^3E.{20}$"), "Web"),
    (re.compile(r"^(.{21}|.{32})$"), "Android"),
    (re.compile(r"^(3F|.{18}$)"), "Desktop"),
)
UNKNOWN_DEVICE = "Unknown"

_MISSING = object()


def to_int(value: Any) -> Optional[int]:
    """
    Unwrap a transport number into a plain int.

    Handles ints, floats, numeric strings, objects exposing ``to_number()`` /
    ``toNumber()`` and the ``{"low", "high", "unsigned"}`` JSON form of a
    64-bit Long. Returns None for anything else, including NaN.
    """
    if value is None or isinstance(value, bool):
        return None

    for converter in ("to_number", "toNumber"):
        convert = getattr(value, converter, None)
        if callable(convert):
            value = convert()
            break

    if isinstance(value, dict) and "low" in value and "high" in value:
        low = to_int(value.get("low"))
        high = to_int(value.get("high"))
        if low is None or high is None:
            return None
        combined = (high << 32) | (low & 0xFFFFFFFF)
        if not value.get("unsigned") and combined >= 1 << 63:
            combined -= 1 << 64
        return combined

    if isinstance(value, str):
        value = value.strip()
        try:
            value = float(value) if "." in value or "e" in value.lower() else int(value)
        except ValueError:
            return None

    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return int(value)

    if isinstance(value, int):
        return value

    return None


def to_epoch_seconds(value: Any) -> Optional[int]:
    """Epoch seconds for a seconds/milliseconds/wrapped value, or None."""
    number = to_int(value)
    if number is None:
        return None
    if number >= MILLISECONDS_THRESHOLD:
        number //= 1000
    return number


def format_timestamp(value: Any) -> Optional[str]:
    """Canonical timestamp string for a transport epoch value, or None."""
    seconds = to_epoch_seconds(value)
    if seconds is None:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime(CANONICAL_FORMAT)
    except (OverflowError, OSError, ValueError):
        return None


def now_timestamp() -> str:
    """Current time as a canonical timestamp."""
    return datetime.now(timezone.utc).strftime(CANONICAL_FORMAT)


def detect_device(message_id: Optional[str]) -> str:
    """Best-effort sender device guess from the shape of a message id."""
    message_id = message_id or ""
    for pattern, device in DEVICE_PATTERNS:
        if pattern.search(message_id):
            return device
    return UNKNOWN_DEVICE


def get_path(source: Any, path: str, default: Any = None) -> Any:
    """Read a dotted path (``"key.participant"``) from nested dicts."""
    current = source
    for part in path.split("."):
        if not isinstance(current, dict):
            return default
        current = current.get(part, _MISSING)
        if current is _MISSING:
            return default
    return current


def first_present(source: Any, paths: Sequence[str], accept=None) -> Tuple[Optional[str], Any]:
    """
    Try each dotted path in order and return ``(path, value)`` for the first
    non-None value that ``accept`` (if given) agrees with.

    Returns ``(None, None)`` when no path yields a value.
    """
    for path in paths:
        value = get_path(source, path)
        if value is None:
            continue
        if accept is not None and not accept(value):
            continue
        return path, value
    return None, None


def numeric_keys(payload: Any) -> Iterable[str]:
    """Numeric keys of an indexed-map payload, in index order."""
    if not isinstance(payload, dict):
        return []
    return sorted((key for key in payload if str(key).isdigit()), key=int)
