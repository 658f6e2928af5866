from decimal import Decimal
from pathlib import Path

import pytest
from conftest import FixedClock, seed_color

from paintledger.application.container import build_container
from paintledger.domain.errors import InconsistentStateError, NotFoundError, ValidationError


def test_example_bill_payments_and_item_deletion(tmp_path: Path):
    c = build_container(tmp_path / "ledger.db", clock=FixedClock())
    color = seed_color(c.catalog, stock=50, rate="100")

    sale = c.sales.create_sale(
        {"customer_name": "Ali", "customer_phone": "03001234567"},
        [{"color_id": color.id, "quantity": 5, "rate": "100", "subtotal": "1"}],
    )
    assert sale.total_amount == Decimal("500.00")
    assert sale.items[0].subtotal == Decimal("500.00")
    assert sale.payment_status == "unpaid"
    assert c.catalog.get_color(color.id).stock_quantity == 45

    sale = c.payments.record_payment(sale.id, "200")
    assert sale.amount_paid == Decimal("200.00")
    assert sale.payment_status == "partial"
    history = c.payments.list_payments_for_sale(sale.id)
    assert history[0].previous_balance == Decimal("500.00")
    assert history[0].new_balance == Decimal("300.00")

    sale = c.payments.record_payment(sale.id, "300")
    assert sale.amount_paid == Decimal("500.00")
    assert sale.payment_status == "paid"

    sale = c.sales.delete_sale_item(sale.items[0].id)
    assert c.catalog.get_color(color.id).stock_quantity == 50
    assert sale.total_amount == Decimal("0.00")
    assert sale.payment_status == "paid"


def test_total_tracks_items_after_add_update_delete(tmp_path: Path):
    c = build_container(tmp_path / "t.db")
    red = seed_color(c.catalog, stock=20, rate="250.50", code="R-1", name="Red")
    blue = c.catalog.create_color(red.variant_id, "Blue", "B-1", stock_quantity=20)

    sale = c.sales.create_sale(
        {"customer_name": "Sara", "customer_phone": "0311", "amount_paid": "100"},
        [{"color_id": red.id, "quantity": 2}],
    )
    assert sale.total_amount == Decimal("501.00")

    added = c.sales.add_sale_item(sale.id, {"color_id": blue.id, "quantity": 3, "rate": "99.99"})
    assert added.subtotal == Decimal("299.97")
    c.sales.update_sale_item(sale.items[0].id, 1, sale_id=sale.id)

    sale = c.sales.get_sale(sale.id)
    assert sale.total_amount == sum(i.subtotal for i in sale.items)
    assert sale.total_amount == Decimal("550.47")
    assert sale.payment_status == "partial"


def test_missing_rate_uses_color_override_before_variant_rate(tmp_path: Path):
    c = build_container(tmp_path / "r.db")
    color = seed_color(c.catalog, rate="100")
    c.catalog.update_rate_override(color.id, "120")

    sale = c.sales.create_sale(
        {"customer_name": "Umar", "customer_phone": "0322"},
        [{"color_id": color.id, "quantity": 2}],
    )
    assert sale.items[0].rate == Decimal("120.00")
    assert sale.total_amount == Decimal("240.00")


def test_editing_quantity_moves_stock_by_difference(tmp_path: Path):
    c = build_container(tmp_path / "q.db")
    color = seed_color(c.catalog, stock=30)
    sale = c.sales.create_sale(
        {"customer_name": "Ali", "customer_phone": "0300"},
        [{"color_id": color.id, "quantity": 4, "rate": "10"}],
    )
    assert c.catalog.get_color(color.id).stock_quantity == 26

    c.sales.update_sale_item(sale.items[0].id, 9)
    assert c.catalog.get_color(color.id).stock_quantity == 21

    c.sales.update_sale_item(sale.items[0].id, 2)
    assert c.catalog.get_color(color.id).stock_quantity == 28


def test_delete_sale_removes_items_payments_and_restores_stock(tmp_path: Path):
    c = build_container(tmp_path / "d.db")
    a = seed_color(c.catalog, stock=10, code="A")
    b = c.catalog.create_color(a.variant_id, "Other", "B", stock_quantity=10)
    sale = c.sales.create_sale(
        {"customer_name": "Ali", "customer_phone": "0300"},
        [
            {"color_id": a.id, "quantity": 3, "rate": "10"},
            {"color_id": b.id, "quantity": 4, "rate": "10"},
        ],
    )
    c.payments.record_payment(sale.id, "20")
    c.payments.record_payment(sale.id, "5")

    c.sales.delete_sale(sale.id)

    with pytest.raises(NotFoundError):
        c.sales.get_sale(sale.id)
    assert c.sales.sale_items_for_sale(sale.id) == []
    assert c.payments.list_payments_for_sale(sale.id) == []
    assert c.catalog.get_color(a.id).stock_quantity == 10
    assert c.catalog.get_color(b.id).stock_quantity == 10


def test_manual_balance_has_no_items_and_no_stock_effect(tmp_path: Path):
    c = build_container(tmp_path / "m.db")
    color = seed_color(c.catalog, stock=5)

    sale = c.sales.create_manual_balance("Old Customer", "0333", "1500", due_date="2024-04-01")
    assert sale.is_manual_balance
    assert sale.items == ()
    assert sale.payment_status == "unpaid"
    assert sale.due_date == "2024-04-01"
    assert c.catalog.get_color(color.id).stock_quantity == 5

    with pytest.raises(InconsistentStateError):
        c.sales.add_sale_item(sale.id, {"color_id": color.id, "quantity": 1, "rate": "1"})


def test_item_must_belong_to_given_sale(tmp_path: Path):
    c = build_container(tmp_path / "b.db")
    color = seed_color(c.catalog)
    first = c.sales.create_sale({"customer_name": "A", "customer_phone": "1"}, [{"color_id": color.id, "quantity": 1}])
    second = c.sales.create_sale({"customer_name": "B", "customer_phone": "2"}, [{"color_id": color.id, "quantity": 1}])

    with pytest.raises(InconsistentStateError):
        c.sales.delete_sale_item(first.items[0].id, sale_id=second.id)
    assert len(c.sales.get_sale(first.id).items) == 1


def test_sale_validation(tmp_path: Path):
    c = build_container(tmp_path / "v.db")
    color = seed_color(c.catalog)

    with pytest.raises(ValidationError):
        c.sales.create_sale({"customer_name": "A", "customer_phone": "1"}, [])
    with pytest.raises(ValidationError):
        c.sales.create_sale({"customer_name": "A", "customer_phone": "1"}, [{"color_id": color.id, "quantity": 0}])
    with pytest.raises(ValidationError):
        c.sales.create_sale(
            {"customer_name": "A", "customer_phone": "1"}, [{"color_id": color.id, "quantity": 1, "rate": 9.99}]
        )
    with pytest.raises(NotFoundError):
        c.sales.create_sale({"customer_name": "A", "customer_phone": "1"}, [{"color_id": "nope", "quantity": 1}])
    assert c.catalog.get_color(color.id).stock_quantity == 50


def test_due_date_update_is_metadata_only(tmp_path: Path):
    c = build_container(tmp_path / "due.db")
    color = seed_color(c.catalog)
    sale = c.sales.create_sale(
        {"customer_name": "A", "customer_phone": "1", "notes": "first"}, [{"color_id": color.id, "quantity": 2}]
    )

    updated = c.sales.update_sale_due_date(sale.id, "2024-05-01")
    assert updated.due_date == "2024-05-01"
    assert updated.notes == "first"
    assert updated.total_amount == sale.total_amount

    updated = c.sales.update_sale_due_date(sale.id, None, notes="call on friday")
    assert updated.due_date is None
    assert updated.notes == "call on friday"

    with pytest.raises(ValidationError):
        c.sales.update_sale_due_date(sale.id, "01-05-2024")


def test_unpaid_queries(tmp_path: Path):
    c = build_container(tmp_path / "u.db")
    color = seed_color(c.catalog)
    paid = c.sales.create_sale(
        {"customer_name": "A", "customer_phone": "0300", "amount_paid": "100"}, [{"color_id": color.id, "quantity": 1}]
    )
    open_bill = c.sales.create_sale({"customer_name": "A", "customer_phone": "0300"}, [{"color_id": color.id, "quantity": 1}])

    assert paid.payment_status == "paid"
    assert [s.id for s in c.sales.list_unpaid_sales()] == [open_bill.id]
    assert c.sales.find_unpaid_sale_by_phone("0300").id == open_bill.id
    assert {s.id for s in c.sales.list_sales_by_customer("0300")} == {paid.id, open_bill.id}
    assert c.sales.find_unpaid_sale_by_phone("0399") is None
