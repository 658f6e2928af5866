from decimal import Decimal
from pathlib import Path

import pytest
from conftest import seed_color

from paintledger.application.container import build_container
from paintledger.config import LedgerPolicy
from paintledger.domain.errors import NotFoundError, ValidationError


def _bill(c, qty: int = 10, rate: str = "100"):
    color = seed_color(c.catalog, stock=100, rate=rate)
    return c.sales.create_sale(
        {"customer_name": "Ali", "customer_phone": "0300"},
        [{"color_id": color.id, "quantity": qty}],
    )


def test_payment_edit_applies_difference_not_overwrite(tmp_path: Path):
    c = build_container(tmp_path / "p.db")
    sale = _bill(c)
    c.payments.record_payment(sale.id, "150")
    c.payments.record_payment(sale.id, "200", payment_method="bank", notes="transfer")
    payment = next(p for p in c.payments.list_payments_for_sale(sale.id) if p.payment_method == "bank")

    c.payments.update_payment_history(payment.id, amount="50")
    assert c.sales.get_sale(sale.id).amount_paid == Decimal("200.00")

    updated = c.payments.update_payment_history(payment.id, amount="200")
    after = c.sales.get_sale(sale.id)
    assert after.amount_paid == Decimal("350.00")
    assert after.payment_status == "partial"
    assert updated.amount == Decimal("200.00")
    assert updated.notes == "transfer"
    assert updated.payment_method == "bank"


def test_payment_edit_can_move_status_backwards(tmp_path: Path):
    c = build_container(tmp_path / "back.db")
    sale = _bill(c, qty=1)
    sale = c.payments.record_payment(sale.id, "100")
    assert sale.payment_status == "paid"

    payment = c.payments.list_payments_for_sale(sale.id)[0]
    c.payments.update_payment_history(payment.id, amount="40", notes=None)
    after = c.sales.get_sale(sale.id)
    assert after.payment_status == "partial"
    assert c.payments.list_payments_for_sale(sale.id)[0].notes is None


def test_delete_payment_subtracts_and_floors_at_zero(tmp_path: Path):
    c = build_container(tmp_path / "del.db")
    sale = _bill(c, qty=1)
    c.payments.record_payment(sale.id, "60")
    payment = c.payments.list_payments_for_sale(sale.id)[0]

    # drift amount_paid below the recorded payment
    with c.sales.uow_factory() as uow:
        c.repo.update_sale_money(uow.cur, sale.id, Decimal("100.00"), Decimal("10.00"), "partial")

    assert c.payments.delete_payment_history(payment.id) is True
    after = c.sales.get_sale(sale.id)
    assert after.amount_paid == Decimal("0.00")
    assert after.payment_status == "unpaid"
    assert c.payments.list_payments_for_sale(sale.id) == []


def test_delete_missing_payment_returns_false(tmp_path: Path):
    c = build_container(tmp_path / "missing.db")
    assert c.payments.delete_payment_history("does-not-exist") is False


def test_payment_amount_must_be_positive(tmp_path: Path):
    c = build_container(tmp_path / "pos.db")
    sale = _bill(c)

    for bad in ("0", "-5"):
        with pytest.raises(ValidationError):
            c.payments.record_payment(sale.id, bad)
    with pytest.raises(ValidationError):
        c.payments.record_payment(sale.id, 10.5)
    with pytest.raises(NotFoundError):
        c.payments.record_payment("nope", "10")
    assert c.payments.list_payments_for_sale(sale.id) == []


def test_overpayment_follows_policy(tmp_path: Path):
    lenient = build_container(tmp_path / "lenient.db")
    sale = _bill(lenient, qty=1)
    sale = lenient.payments.record_payment(sale.id, "150")
    assert sale.payment_status == "paid"
    assert sale.outstanding == Decimal("-50.00")

    strict = build_container(tmp_path / "strict.db", policy=LedgerPolicy(allow_overpayment=False))
    sale = _bill(strict, qty=1)
    with pytest.raises(ValidationError):
        strict.payments.record_payment(sale.id, "150")
    assert strict.sales.get_sale(sale.id).amount_paid == Decimal("0.00")
    with pytest.raises(ValidationError):
        strict.sales.create_sale(
            {"customer_name": "A", "customer_phone": "1", "amount_paid": "101"},
            [{"color_id": sale.items[0].color_id, "quantity": 1}],
        )


def test_customer_and_global_payment_queries(tmp_path: Path):
    c = build_container(tmp_path / "q.db")
    sale = _bill(c)
    other = c.sales.create_manual_balance("Zara", "0399", "500")
    c.payments.record_payment(sale.id, "10")
    c.payments.record_payment(other.id, "20")

    assert len(c.payments.list_all_payments()) == 2
    assert [p.amount for p in c.payments.list_payments_for_customer("0399")] == [Decimal("20.00")]
    assert c.payments.list_payments_for_customer("0300")[0].payment_method == "cash"
