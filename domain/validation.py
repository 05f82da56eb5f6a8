import calendar
import re
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .errors import ValidationError

CENT = Decimal("0.01")
# amounts are stored as signed 64-bit integer cents
MAX_AMOUNT = Decimal(2**63) / 100


def parse_ymd(value: str | date) -> date:
    if isinstance(value, date):
        return value
    value = (value or "").strip()
    if not value:
        raise ValidationError("Date value is empty")
    if not re.fullmatch(r"\d{4}-\d{2}-\d{2}", value):
        raise ValidationError("Invalid date format")
    year, month, day = map(int, value.split("-"))
    if not (1 <= month <= 12):
        raise ValidationError("Invalid month")
    last_day = calendar.monthrange(year, month)[1]
    if not (1 <= day <= last_day):
        raise ValidationError("Invalid day")
    return date(year, month, day)


def parse_amount(value, field_name: str = "amount") -> Decimal:
    """Coerce user input to a Decimal rounded to cents."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field_name} must be a number") from exc
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    if abs(amount) >= MAX_AMOUNT:
        raise ValidationError(f"{field_name} is too large")
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValidationError(f"{field_name} is out of range") from exc


def ensure_positive(value, field_name: str = "amount") -> Decimal:
    amount = parse_amount(value, field_name)
    if amount <= 0:
        raise ValidationError(f"{field_name} must be positive")
    return amount


def ensure_non_negative(value, field_name: str = "amount") -> Decimal:
    amount = parse_amount(value, field_name)
    if amount < 0:
        raise ValidationError(f"{field_name} cannot be negative")
    return amount


def ensure_choice(value: str, choices, field_name: str) -> str:
    normalized = str(value or "").strip().lower()
    if normalized not in choices:
        raise ValidationError(f"Invalid {field_name}: {value}. Must be one of {sorted(choices)}")
    return normalized


def ensure_text(value, field_name: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValidationError(f"{field_name} is required")
    return text


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(int(cents)) / 100).quantize(CENT)


def parse_report_period_start(value: str) -> date:
    period = (value or "").strip()
    if not period:
        raise ValidationError("Period filter is empty")

    if re.fullmatch(r"\d{4}", period):
        return date(int(period), 1, 1)

    if re.fullmatch(r"\d{4}-\d{2}", period):
        year, month = map(int, period.split("-"))
        if not (1 <= month <= 12):
            raise ValidationError("Invalid month in period filter")
        return date(year, month, 1)

    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", period):
        return parse_ymd(period)

    raise ValidationError("Invalid period filter format. Use YYYY, YYYY-MM or YYYY-MM-DD")


def parse_report_period_end(value: str) -> date:
    period = (value or "").strip()
    if not period:
        raise ValidationError("Period end filter is empty")

    if re.fullmatch(r"\d{4}", period):
        return date(int(period), 12, 31)

    if re.fullmatch(r"\d{4}-\d{2}", period):
        year, month = map(int, period.split("-"))
        if not (1 <= month <= 12):
            raise ValidationError("Invalid month in period end filter")
        return date(year, month, calendar.monthrange(year, month)[1])

    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", period):
        return parse_ymd(period)

    raise ValidationError("Invalid period end filter format. Use YYYY, YYYY-MM or YYYY-MM-DD")
