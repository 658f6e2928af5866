from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from paintledger.domain import rules
from paintledger.domain.errors import ValidationError
from paintledger.domain.models import Return

money = st.decimals(min_value=0, max_value=10_000_000, places=2, allow_nan=False, allow_infinity=False)


@given(total=money, paid=money)
def test_payment_status_matches_thresholds(total, paid):
    status = rules.payment_status(total, paid)
    if paid >= total:
        assert status == "paid"
    elif paid > 0:
        assert status == "partial"
    else:
        assert status == "unpaid"


@given(total=money)
def test_payment_status_boundaries(total):
    assert rules.payment_status(total, total) == "paid"
    assert rules.payment_status(total, total + Decimal("0.01")) == "paid"
    if total > 0:
        assert rules.payment_status(total, rules.ZERO) == "unpaid"


def test_zero_total_is_paid():
    assert rules.payment_status(rules.ZERO, rules.ZERO) == "paid"


def test_money_parsing():
    assert rules.to_money("10.005") == Decimal("10.01")
    assert rules.to_money(7) == Decimal("7.00")
    assert rules.money_str(Decimal("3")) == "3.00"
    for bad in (1.5, True, "abc", None, "NaN"):
        with pytest.raises(ValidationError):
            rules.to_money(bad)


def test_subtotal_rounds_half_up():
    assert rules.subtotal(3, Decimal("0.35")) == Decimal("1.05")
    assert rules.subtotal(1, Decimal("99.99")) == Decimal("99.99")


def test_stock_in_date_format():
    clock = lambda: datetime(2024, 1, 9, tzinfo=timezone.utc)  # noqa: E731
    assert rules.stock_in_date(None, clock) == "09-01-2024"
    assert rules.stock_in_date(" 28-02-2024 ", clock) == "28-02-2024"
    for bad in ("2024-02-28", "28/02/2024", "30-02-2024", "1-2-2024"):
        with pytest.raises(ValidationError):
            rules.stock_in_date(bad, clock)


def test_can_edit_return_window():
    created = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)
    ret = Return(
        id="r1", sale_id=None, customer_name="A", customer_phone="1", return_type="item",
        total_refund=Decimal("1.00"), reason=None, status="completed",
        created_at=created.isoformat(timespec="microseconds"),
    )
    inside = rules.can_edit_return(ret, created + timedelta(hours=11, minutes=30))
    assert inside.allowed
    assert inside.hours_remaining == pytest.approx(0.5)
    assert not rules.can_edit_return(ret, created + timedelta(hours=12)).allowed
    assert rules.can_edit_return(ret, created + timedelta(hours=2), window_hours=1).hours_remaining == 0.0


def test_quantity_must_be_a_whole_number():
    assert rules.to_quantity("3") == 3
    assert rules.to_quantity(Decimal("4.0")) == 4
    assert rules.to_quantity(2.0) == 2
    for bad in (Decimal("2.5"), "2.5", 1.5, "abc", None, True, 0, "-1", "Infinity"):
        with pytest.raises(ValidationError):
            rules.to_quantity(bad)
    assert rules.to_whole_number("0", "Stock") == 0


def test_unknown_time_zone_is_a_validation_error():
    with pytest.raises(ValidationError):
        rules.zone("Nowhere/Atlantis")
