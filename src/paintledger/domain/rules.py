"""Pure ledger rules shared by every service.

Nothing here touches the database: money parsing, line subtotals, the
payment-status transition function and the return edit window are all
functions of their inputs only.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from paintledger.domain.errors import ValidationError
from paintledger.domain.models import EditWindow, Return

Clock = Callable[[], datetime]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

PAID = "paid"
PARTIAL = "partial"
UNPAID = "unpaid"
PAYMENT_STATUSES = (UNPAID, PARTIAL, PAID)

RETURN_TYPES = ("item", "full_bill")


def local_now() -> datetime:
    return datetime.now().astimezone()


def timestamp(clock: Clock) -> str:
    return clock().astimezone(timezone.utc).isoformat(timespec="microseconds")


def store_now(clock: Clock, tz_name: Optional[str] = None) -> datetime:
    """Current time in the store's zone: `tz_name` when configured, else the clock's own offset."""
    now = clock()
    if now.tzinfo is None:
        now = now.astimezone()
    if tz_name:
        now = now.astimezone(zone(tz_name))
    return now


def day_start_iso(day: date, tz: Optional[tzinfo] = None) -> str:
    """UTC ISO timestamp of local midnight starting `day`, comparable with stored `created_at`."""
    if tz is not None:
        start = datetime(day.year, day.month, day.day, tzinfo=tz)
    else:
        start = datetime(day.year, day.month, day.day).astimezone()
    return start.astimezone(timezone.utc).isoformat(timespec="microseconds")


def zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown time zone: {tz_name!r}") from e


def to_money(value: object, field: str = "amount") -> Decimal:
    """Parse an exact-decimal money value.

    Accepts Decimal, int or a decimal string. Floats are rejected so binary
    rounding never reaches the ledger.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{field} must be a decimal string, not {type(value).__name__}.")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValidationError(f"{field} is not a valid amount: {value!r}") from e
    else:
        raise ValidationError(f"{field} is not a valid amount: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be finite.")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money_str(value: Decimal) -> str:
    return str(value.quantize(CENT, rounding=ROUND_HALF_UP))


def to_whole_number(value: object, field: str = "quantity") -> int:
    """Parse an integer without truncating: 3, "3" and Decimal("3.0") pass, 2.5 does not."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be an integer.")
    if isinstance(value, int):
        return value
    try:
        parsed = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValidationError(f"{field} must be an integer.") from e
    if not parsed.is_finite() or parsed != parsed.to_integral_value():
        raise ValidationError(f"{field} must be a whole number.")
    return int(parsed)


def to_quantity(value: object, field: str = "quantity") -> int:
    qty = to_whole_number(value, field)
    if qty < 1:
        raise ValidationError("Qty must be >= 1.")
    return qty


def subtotal(quantity: int, rate: Decimal) -> Decimal:
    return (Decimal(quantity) * rate).quantize(CENT, rounding=ROUND_HALF_UP)


def payment_status(total_amount: Decimal, amount_paid: Decimal) -> str:
    # a zero total is settled by definition
    if amount_paid >= total_amount:
        return PAID
    if amount_paid > 0:
        return PARTIAL
    return UNPAID


def can_edit_return(ret: Return, now: datetime, window_hours: int = 12) -> EditWindow:
    created = datetime.fromisoformat(ret.created_at)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    deadline = created + timedelta(hours=window_hours)
    remaining = (deadline - now).total_seconds() / 3600
    if remaining <= 0:
        return EditWindow(allowed=False, hours_remaining=0.0)
    return EditWindow(allowed=True, hours_remaining=remaining)


def format_ddmmyyyy(d: date) -> str:
    return d.strftime("%d-%m-%Y")


def is_valid_ddmmyyyy(value: str) -> bool:
    if len(value) != 10 or value[2] != "-" or value[5] != "-":
        return False
    try:
        datetime.strptime(value, "%d-%m-%Y")
    except ValueError:
        return False
    return True


def stock_in_date(value: Optional[str], clock: Clock) -> str:
    if value is None or not str(value).strip():
        return format_ddmmyyyy(clock().date())
    value = str(value).strip()
    if not is_valid_ddmmyyyy(value):
        raise ValidationError("Invalid date format. Please use DD-MM-YYYY format.")
    return value


def due_date(value: Optional[object]) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value).strip()).isoformat()
    except ValueError as e:
        raise ValidationError("Due date must be an ISO date (YYYY-MM-DD).") from e
