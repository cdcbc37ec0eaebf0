"""
Translation of python-oracledb errors into API errors
"""
from typing import Optional, Tuple

from tms.core.errors import UpstreamFailure, QueryTimeout

# Driver codes raised when call_timeout expires or the call is cancelled
TIMEOUT_CODES = {"DPY-4024", "DPI-1067", "ORA-01013", "ORA-03156"}

FRIENDLY_MESSAGES = {
    "ORA-00942": "Table or view does not exist. Check the object name and your privileges.",
    "ORA-01017": "Invalid username or password.",
    "ORA-12541": "No listener at the given host and port.",
    "ORA-12514": "The listener does not know the requested service name.",
    "ORA-12505": "The listener does not know the requested SID.",
    "ORA-01031": "Insufficient privileges.",
    "ORA-01722": "Invalid number.",
}


def driver_error_details(exc: Exception) -> Tuple[Optional[str], Optional[int], str]:
    """Return (full code, offset, message) for a driver exception."""
    error = exc.args[0] if exc.args else None
    full_code = getattr(error, "full_code", None)
    offset = getattr(error, "offset", None)
    message = getattr(error, "message", None) or str(exc)
    return full_code, offset or None, message.strip()


def translate_driver_error(exc: Exception) -> UpstreamFailure:
    """Map an oracledb.Error to UpstreamFailure, or QueryTimeout for cancelled calls."""
    full_code, offset, message = driver_error_details(exc)

    if full_code in TIMEOUT_CODES:
        return QueryTimeout(message, error_code=full_code)

    return UpstreamFailure(
        FRIENDLY_MESSAGES.get(full_code, message),
        error_code=full_code,
        offset=offset,
    )
