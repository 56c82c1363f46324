import math
from datetime import datetime, timezone

import httpx

from opencredits.models import CreditInfo

# per-request network timeout in seconds
DEFAULT_TIMEOUT = 10.0

NO_API_KEY_BALANCE = "No API Key"
NO_API_KEY_ERROR = "API key not configured"
ERROR_BALANCE = "Error"


def utcnow() -> "datetime":
    return datetime.now(timezone.utc)


def as_number(value: "object") -> "float | None":
    """
    coerces a JSON value to a finite float. Numeric strings are
    accepted, booleans, integers too large for a float and
    everything else are not.
    """
    if isinstance(value, bool) or value is None:
        return None

    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None

    return number if math.isfinite(number) else None


def format_currency(amount: "float", currency: "str") -> "str":
    """
    formats dollars as "$5.20". Any other unit is rendered as a
    grouped number followed by its label, e.g. "1,234.5 tokens".
    """
    if currency in ("USD", "$"):
        return f"${amount:.2f}"

    text = f"{amount:,.3f}".rstrip("0").rstrip(".")
    return f"{text} {currency}"


def describe_error(exc: "BaseException") -> "str":
    """
    maps a fetch failure to the message shown to the user.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 401:
            return "Invalid API key"
        if status == 429:
            return "Rate limit exceeded"
        return f"Request failed with status code {status}"

    if isinstance(exc, httpx.TimeoutException):
        return "Request timeout"

    if isinstance(exc, httpx.HTTPError):
        return str(exc) or "Network error"

    return str(exc) or "Unknown error"


def missing_key_credits(now: "datetime") -> "CreditInfo":
    return CreditInfo(
        balance=NO_API_KEY_BALANCE,
        currency="",
        last_updated=now,
        error=NO_API_KEY_ERROR,
    )


def error_credits(message: "str", now: "datetime") -> "CreditInfo":
    return CreditInfo(
        balance=ERROR_BALANCE,
        currency="",
        last_updated=now,
        error=message or "Unknown error",
    )
