"""
Shared helpers for route handlers
"""
from typing import Any, Optional

from tms.core.errors import InvalidRequest

# Dashboard pickers send "all" when no single connection is selected
ALL = "all"


def require(value: Any, message: str) -> Any:
    """Explicit presence check for a query or body parameter."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidRequest(message)
    return value


def require_connection_id(connection_id: Optional[str]) -> str:
    if connection_id == ALL:
        raise InvalidRequest("A specific connection must be selected")
    return require(connection_id, "Connection ID is required")


def parse_int(value: Optional[str], name: str, default: Optional[int] = None,
              minimum: Optional[int] = None, maximum: Optional[int] = None) -> Optional[int]:
    """Parse an optional integer query parameter, clamping to the given range."""
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"{name} must be an integer")
    if minimum is not None and number < minimum:
        number = minimum
    if maximum is not None and number > maximum:
        number = maximum
    return number


def parse_float(value: Optional[str], name: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"{name} must be a number")


def ok(data: Any = None, **extra: Any) -> dict:
    body = {"success": True, "data": data}
    body.update(extra)
    return body
