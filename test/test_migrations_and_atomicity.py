import sqlite3
from pathlib import Path

import pytest
from conftest import seed_color

from paintledger.repositories.sqlite_repo import SqliteRepository
from paintledger.services.catalog_service import CatalogService
from paintledger.services.payment_service import PaymentService
from paintledger.services.sales_service import SalesService


class FailingRepo(SqliteRepository):
    """Blows up while inserting the second line of a bill."""

    def __init__(self, db_path):
        super().__init__(db_path)
        self.inserted = 0

    def insert_sale_item(self, cur, item):
        super().insert_sale_item(cur, item)
        self.inserted += 1
        if self.inserted == 2:
            raise RuntimeError("boom")


class FailingPaymentRepo(SqliteRepository):
    def insert_payment(self, cur, payment):
        raise RuntimeError("disk full")


def test_migrations_create_schema_and_default_settings(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "m.db")
    repo.init_db()
    repo.init_db()

    assert repo.schema_version() == 3
    settings = repo.get_settings()
    assert settings.store_name == "PaintPulse"
    assert settings.audit_pin_hash is None

    conn = sqlite3.connect(tmp_path / "m.db")
    tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    conn.close()
    assert {
        "products", "variants", "colors", "sales", "sale_items",
        "payment_history", "returns", "return_items", "stock_in_history", "settings",
    } <= tables


def test_existing_database_is_backed_up_before_migrating(tmp_path: Path):
    db = tmp_path / "b.db"
    SqliteRepository(db).init_db()
    SqliteRepository(db).init_db()
    assert list(tmp_path.glob("b.pre_migration_*.bak"))


def test_sale_rolls_back_when_repository_fails(tmp_path: Path):
    repo = FailingRepo(tmp_path / "t.db")
    repo.init_db()
    catalog = CatalogService(repo)
    sales = SalesService(repo)

    color = seed_color(catalog, stock=10)

    with pytest.raises(RuntimeError):
        sales.create_sale(
            {"customer_name": "A", "customer_phone": "1"},
            [{"color_id": color.id, "quantity": 2}, {"color_id": color.id, "quantity": 3}],
        )

    assert catalog.get_color(color.id).stock_quantity == 10
    assert sales.list_sales() == []


def test_payment_rolls_back_when_history_insert_fails(tmp_path: Path):
    repo = FailingPaymentRepo(tmp_path / "p.db")
    repo.init_db()
    catalog = CatalogService(repo)
    sales = SalesService(repo)
    payments = PaymentService(repo)

    color = seed_color(catalog)
    sale = sales.create_sale({"customer_name": "A", "customer_phone": "1"}, [{"color_id": color.id, "quantity": 1}])

    with pytest.raises(RuntimeError):
        payments.record_payment(sale.id, "50")

    after = sales.get_sale(sale.id)
    assert str(after.amount_paid) == "0.00"
    assert after.payment_status == "unpaid"
