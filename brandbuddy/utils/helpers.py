"""
Helper utilities shared by the metric kernel and the endpoints
"""
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional
import math


def utc_now() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def iso_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 timestamp with a trailing Z, as the browser client expects"""
    moment = moment or utc_now()
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def to_number(value: Any, default: float = 0) -> float:
    """Coerce a feed value to a finite number, falling back to default"""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return int(number) if number.is_integer() else number


def to_optional_number(value: Any) -> Optional[float]:
    """Like to_number but keeps missing values as None"""
    if value is None or value == "":
        return None
    number = to_number(value, default=None)
    return number


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safely divide two numbers"""
    try:
        return numerator / denominator if denominator != 0 else default
    except (TypeError, ZeroDivisionError):
        return default


def round_half_up(value: float, ndigits: int = 0) -> float:
    """
    Round halves away from zero for positives, the way the dashboard client rounds.

    Python's round() uses banker's rounding, so 2.5 would become 2 and
    break parity with figures users see elsewhere.
    """
    if value is None:
        return None
    factor = 10 ** ndigits
    rounded = math.floor(value * factor + 0.5) / factor
    if ndigits == 0:
        return int(rounded)
    return rounded


def mean(values: Iterable[float]) -> Optional[float]:
    values = list(values)
    if not values:
        return None
    return sum(values) / len(values)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse a feed date or timestamp into an aware UTC datetime"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def date_key(value: Any) -> Optional[str]:
    """Calendar-date prefix (YYYY-MM-DD) of a feed date string"""
    if value is None or value == "":
        return None
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m-%d")
    return str(value)[:10]


def days_between(start: datetime, end: datetime) -> float:
    """Signed number of days from start to end"""
    return (end - start).total_seconds() / 86400


def format_currency(amount: float, decimals: int = 0) -> str:
    """Format amount as a US-dollar string"""
    return f"${amount:,.{decimals}f}"
