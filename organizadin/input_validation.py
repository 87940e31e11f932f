"""
OrganizaDin Input Validation
Sanitizes every value that crosses the trust boundary (manual entry,
backup import, SQL parameters) into safe, bounded values.

None of these functions raise: callers branch on the returned marker.
"""

import math
import re
from datetime import datetime
from typing import Any, List, NamedTuple, Optional, Sequence

MAX_SAFE_INTEGER = 2 ** 53 - 1
DEFAULT_TEXT_LENGTH = 500
MAX_AMOUNT = 999_999_999.99

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_SQL_PATTERNS = (
    re.compile(
        r"\b(SELECT|INSERT|UPDATE|DELETE|DROP|CREATE|ALTER|EXEC|EXECUTE|UNION|SCRIPT)\b",
        re.IGNORECASE,
    ),
    re.compile(r"(--|;|\*|'|\"|`)"),
    re.compile(r"(/\*|\*/)"),
)
_NUMBER_NOISE = re.compile(r"[^\d.,-]")
_NUMBER_SHAPE = re.compile(r"-?(\d+(\.\d+)?|\.\d+)")
_DIGITS = re.compile(r"[0-9]+")
_DATE_SHAPE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
_PIN_SHAPE = re.compile(r"[0-9]{4}")


class Sanitized(NamedTuple):
    """Result of a sanitizer: `value` is only meaningful when `valid`."""
    valid: bool
    value: Any = None

    @classmethod
    def invalid(cls) -> "Sanitized":
        return cls(False, None)


def sanitize_text(value: Any, max_length: int = DEFAULT_TEXT_LENGTH) -> str:
    """
    Strip control characters and SQL-looking tokens from a string.

    Args:
        value: Untrusted input (non-strings become "")
        max_length: Hard upper bound of the returned length

    Returns:
        Trimmed text with no control characters, at most max_length long

    Security:
        - Parameter binding is the primary SQL injection defense
        - This filter only guards against accidental echo into SQL fragments
    """
    if not isinstance(value, str):
        return ""
    if max_length <= 0:
        return ""

    sanitized = _CONTROL_CHARS.sub("", value).strip()[:max_length]
    for pattern in _SQL_PATTERNS:
        sanitized = pattern.sub("", sanitized)
    return sanitized.strip()


def _parse_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        cleaned = _NUMBER_NOISE.sub("", value).replace(",", ".", 1)
        if not _NUMBER_SHAPE.fullmatch(cleaned):
            return None
        number = float(cleaned)
    else:
        return None

    try:
        if not math.isfinite(number):
            return None
    except OverflowError:
        return None
    return number


def sanitize_number(
        value: Any,
        min_value: float = 0,
        max_value: float = MAX_SAFE_INTEGER
) -> Sanitized:
    """
    Parse a number (or numeric string with ',' or '.' decimals) and clamp it.

    Returns:
        Sanitized(True, number in [min_value, max_value]) or Sanitized.invalid()
    """
    number = _parse_number(value)
    if number is None:
        return Sanitized.invalid()
    return Sanitized(True, max(min_value, min(max_value, number)))


def validate_amount(
        value: Any,
        min_value: float = 0.01,
        max_value: float = MAX_AMOUNT
) -> Sanitized:
    """Like sanitize_number, but an out-of-range value is invalid instead of clamped."""
    number = _parse_number(value)
    if number is None or number < min_value or number > max_value:
        return Sanitized.invalid()
    return Sanitized(True, number)


def sanitize_id(value: Any) -> Sanitized:
    """
    Validate a database id.

    Accepts positive ints, integral floats and strings of ASCII digits.
    Rejects bools, zero, negatives, fractions and anything non-finite.
    """
    if isinstance(value, bool) or value is None:
        return Sanitized.invalid()

    if isinstance(value, int):
        number = value
    elif isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return Sanitized.invalid()
        number = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        # More digits than MAX_SAFE_INTEGER can never be a valid id
        if len(stripped) > len(str(MAX_SAFE_INTEGER)) or not _DIGITS.fullmatch(stripped):
            return Sanitized.invalid()
        number = int(stripped)
    else:
        return Sanitized.invalid()

    if number < 1 or number > MAX_SAFE_INTEGER:
        return Sanitized.invalid()
    return Sanitized(True, number)


def validate_date(value: Any) -> bool:
    """Strict YYYY-MM-DD that must round-trip through calendar parsing."""
    if not isinstance(value, str) or not _DATE_SHAPE.fullmatch(value):
        return False
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return False
    return parsed.strftime("%Y-%m-%d") == value


def validate_pin(value: Any) -> bool:
    return isinstance(value, str) and _PIN_SHAPE.fullmatch(value) is not None


def validate_description(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return 1 <= len(sanitize_text(value, 200)) <= 200


def validate_name(value: Any, max_length: int = 50) -> bool:
    if not isinstance(value, str):
        return False
    return 1 <= len(sanitize_text(value, max_length)) <= max_length


def sanitize_param(value: Any) -> Sanitized:
    """
    Sanitize a single SQL parameter.

    - None stays None, bools become 0/1
    - numbers are bounded to the safe integer range
    - integer strings become ids (or signed numbers), decimal strings numbers
    - any other string is sanitized as bounded text
    """
    if value is None:
        return Sanitized(True, None)
    if isinstance(value, bool):
        return Sanitized(True, int(value))
    if isinstance(value, (int, float)):
        return sanitize_number(value, -MAX_SAFE_INTEGER, MAX_SAFE_INTEGER)
    if isinstance(value, str):
        stripped = value.strip()
        if _DIGITS.fullmatch(stripped):
            as_id = sanitize_id(stripped)
            if as_id.valid:
                return as_id
        if _NUMBER_SHAPE.fullmatch(stripped):
            return sanitize_number(stripped, -MAX_SAFE_INTEGER, MAX_SAFE_INTEGER)
        return Sanitized(True, sanitize_text(value))
    return Sanitized.invalid()


def sanitize_sql_params(params: Sequence[Any]) -> List[Sanitized]:
    return [sanitize_param(p) for p in params]
