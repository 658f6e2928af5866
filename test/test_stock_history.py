from datetime import timedelta
from pathlib import Path

import pytest
from conftest import FixedClock, seed_color

from paintledger.application.container import build_container
from paintledger.domain.errors import InconsistentStateError, NotFoundError, ValidationError


def test_record_stock_in_checks_arithmetic(tmp_path: Path):
    c = build_container(tmp_path / "rec.db")
    color = seed_color(c.catalog, stock=10)

    record = c.stock_history.record_stock_in(color.id, 5, 10, 15, notes="supplier", stock_in_date="01-02-2024")
    assert record.stock_in_date == "01-02-2024"
    assert record.color.color_code == "RAL-1001"

    with pytest.raises(InconsistentStateError):
        c.stock_history.record_stock_in(color.id, 5, 10, 16)
    with pytest.raises(ValidationError):
        c.stock_history.record_stock_in(color.id, 5, 10, 15, stock_in_date="31-02-2024")
    with pytest.raises(NotFoundError):
        c.stock_history.record_stock_in("missing", 5, 10, 15)
    with pytest.raises(ValidationError):
        c.stock_history.record_stock_in(color.id, 5, "ten", 15)
    with pytest.raises(ValidationError):
        c.stock_history.record_stock_in(color.id, 5, 10, None)


def test_editing_quantity_recomputes_new_stock_and_overwrites_color(tmp_path: Path):
    c = build_container(tmp_path / "edit.db")
    color = seed_color(c.catalog, stock=10)
    c.catalog.stock_in(color.id, 5)
    record = c.stock_history.list_stock_in_history()[0]

    c.sales.create_sale({"customer_name": "A", "customer_phone": "1"}, [{"color_id": color.id, "quantity": 3}])
    assert c.catalog.get_color(color.id).stock_quantity == 12

    updated = c.stock_history.update_stock_in_history(record.id, quantity=8)
    assert updated.new_stock == 18
    assert updated.previous_stock == 10
    assert c.catalog.get_color(color.id).stock_quantity == 18


def test_editing_notes_or_date_leaves_stock(tmp_path: Path):
    c = build_container(tmp_path / "notes.db")
    color = seed_color(c.catalog, stock=10)
    c.catalog.stock_in(color.id, 5, notes="first")
    record = c.stock_history.list_stock_in_history()[0]

    updated = c.stock_history.update_stock_in_history(record.id, notes="corrected", stock_in_date="02-03-2024")
    assert updated.notes == "corrected"
    assert updated.stock_in_date == "02-03-2024"
    assert updated.quantity == 5
    assert c.catalog.get_color(color.id).stock_quantity == 15

    with pytest.raises(ValidationError):
        c.stock_history.update_stock_in_history(record.id, stock_in_date="2024/03/02")


def test_delete_stock_in_history(tmp_path: Path):
    c = build_container(tmp_path / "del.db")
    color = seed_color(c.catalog, stock=1)
    c.catalog.stock_in(color.id, 1)
    record = c.stock_history.list_stock_in_history()[0]

    c.stock_history.delete_stock_in_history(record.id)
    assert c.stock_history.list_stock_in_history() == []
    assert c.catalog.get_color(color.id).stock_quantity == 2
    with pytest.raises(NotFoundError):
        c.stock_history.delete_stock_in_history(record.id)


def test_history_filters(tmp_path: Path):
    clock = FixedClock()
    c = build_container(tmp_path / "filter.db", clock=clock)
    beige = seed_color(c.catalog, code="RAL-1001", name="Beige")
    other = c.catalog.create_product("Dulux", "Weathershield")
    variant = c.catalog.create_variant(other.id, "4L", "900")
    white = c.catalog.create_color(variant.id, "Pure White", "DX-01")

    c.catalog.stock_in(beige.id, 1)
    clock.advance(days=2)
    c.catalog.stock_in(white.id, 2)
    later = clock.now

    history = c.stock_history
    assert len(history.list_stock_in_history()) == 2
    assert [r.quantity for r in history.list_stock_in_history(company="Dulux")] == [2]
    assert [r.quantity for r in history.list_stock_in_history(product="Super Emulsion")] == [1]
    assert [r.quantity for r in history.list_stock_in_history(color_code="ral")] == [1]
    assert [r.quantity for r in history.list_stock_in_history(color_name="white")] == [2]
    assert [r.quantity for r in history.list_stock_in_history(company="all")] == [2, 1]

    start = (later - timedelta(hours=1)).isoformat(timespec="microseconds")
    assert [r.quantity for r in history.list_stock_in_history(start_iso=start)] == [2]
    assert [r.quantity for r in history.list_stock_in_history(end_iso=start)] == [1]
