"""Utility functions and helpers for the clusterward application."""
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Union

from kubernetes.client.rest import ApiException

REDACT_KEYS = ("api_key", "password", "secret", "token", "key")

_DURATION_RX = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h|d)")
_DURATION_UNITS = {
    "ms": 0.001,
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
}


def is_not_found(err: Exception) -> bool:
    """Return True if the error is a Kubernetes API 404."""
    return isinstance(err, ApiException) and err.status == 404


def parse_duration(value: Union[str, int, float, timedelta]) -> float:
    """Parse a duration into seconds.

    Accepts plain numbers (seconds), timedeltas and strings such as
    ``"90"``, ``"30s"``, ``"1h30m"`` or ``"720h"``.

    Args:
        value: Duration to parse

    Returns:
        Duration in seconds

    Raises:
        ValueError: If the string is not a valid duration
    """
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, (int, float)):
        return float(value)

    text = value.strip()
    try:
        return float(text)
    except ValueError:
        pass

    pos = 0
    total = 0.0
    for match in _DURATION_RX.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ValueError(f"Invalid duration: {value!r}")
    return total


def format_duration(seconds: float) -> str:
    """Render seconds as a compact duration string, e.g. ``2592000s``."""
    return f"{int(seconds)}s"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_rfc3339(when: datetime) -> str:
    """Format a timestamp as RFC3339 in UTC with second precision."""
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_rfc3339(text: str) -> datetime:
    """Parse an RFC3339 timestamp into an aware datetime.

    Raises:
        ValueError: If the timestamp cannot be parsed
    """
    value = text.strip()
    if value.endswith("Z") or value.endswith("z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def as_aware(when: datetime) -> datetime:
    """Treat naive datetimes from the API as UTC."""
    if when.tzinfo is None:
        return when.replace(tzinfo=timezone.utc)
    return when


def redact_sensitive_data(data: Any) -> Any:
    """Recursively redact sensitive data from dictionaries and lists.

    Args:
        data: Input data that might contain sensitive information

    Returns:
        Data with sensitive values redacted
    """
    if isinstance(data, dict):
        return {
            k: "[REDACTED]" if any(
                redact_key.lower() in str(k).lower()
                for redact_key in REDACT_KEYS
            ) else redact_sensitive_data(v)
            for k, v in data.items()
        }
    elif isinstance(data, (list, tuple)):
        return [redact_sensitive_data(item) for item in data]
    return data
