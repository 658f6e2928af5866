from __future__ import annotations

import sqlite3
import shutil
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Iterator, Optional

from paintledger.domain.models import (
    Color,
    PaymentHistory,
    Product,
    Return,
    ReturnItem,
    Sale,
    SaleItem,
    StockInHistory,
    StoreSettings,
    Variant,
)

PERMISSION_COLUMNS = {
    "stock:edit": "perm_stock_edit",
    "stock:delete": "perm_stock_delete",
    "stockHistory:delete": "perm_stock_history_delete",
    "sales:edit": "perm_sales_edit",
    "sales:delete": "perm_sales_delete",
    "payment:edit": "perm_payment_edit",
    "payment:delete": "perm_payment_delete",
}

PRODUCT_COLS = "p.id, p.company, p.product_name, p.created_at"
VARIANT_COLS = "v.id, v.product_id, v.packing_size, v.rate, v.created_at"
COLOR_COLS = "c.id, c.variant_id, c.color_name, c.color_code, c.stock_quantity, c.rate_override, c.created_at"
SALE_COLS = (
    "s.id, s.customer_name, s.customer_phone, s.total_amount, s.amount_paid, s.payment_status, "
    "s.due_date, s.is_manual_balance, s.notes, s.created_at"
)
SALE_ITEM_COLS = "si.id, si.sale_id, si.color_id, si.quantity, si.rate, si.subtotal"
PAYMENT_COLS = (
    "ph.id, ph.sale_id, ph.customer_phone, ph.amount, ph.previous_balance, ph.new_balance, "
    "ph.payment_method, ph.notes, ph.created_at"
)
RETURN_COLS = (
    "r.id, r.sale_id, r.customer_name, r.customer_phone, r.return_type, r.total_refund, "
    "r.reason, r.status, r.created_at"
)
RETURN_ITEM_COLS = "ri.id, ri.return_id, ri.color_id, ri.sale_item_id, ri.quantity, ri.rate, ri.subtotal, ri.stock_restored"
STOCK_IN_COLS = (
    "h.id, h.color_id, h.quantity, h.previous_stock, h.new_stock, h.notes, h.stock_in_date, h.created_at"
)

COLOR_JOIN = "colors c JOIN variants v ON v.id = c.variant_id JOIN products p ON p.id = v.product_id"


def _dec(value) -> Decimal:
    return Decimal(str(value))


def _product(r) -> Product:
    return Product(id=str(r[0]), company=str(r[1]), product_name=str(r[2]), created_at=str(r[3]))


def _variant(r, product: Optional[Product] = None) -> Variant:
    return Variant(
        id=str(r[0]),
        product_id=str(r[1]),
        packing_size=str(r[2]),
        rate=_dec(r[3]),
        created_at=str(r[4]),
        product=product,
    )


def _color(r, variant: Optional[Variant] = None) -> Color:
    return Color(
        id=str(r[0]),
        variant_id=str(r[1]),
        color_name=str(r[2]),
        color_code=str(r[3]),
        stock_quantity=int(r[4]),
        rate_override=_dec(r[5]) if r[5] is not None else None,
        created_at=str(r[6]),
        variant=variant,
    )


def _color_joined(r) -> Color:
    # COLOR_COLS (7) + VARIANT_COLS (5) + PRODUCT_COLS (4)
    product = _product(r[12:16])
    variant = _variant(r[7:12], product)
    return _color(r[0:7], variant)


def _sale(r, items: tuple[SaleItem, ...] = ()) -> Sale:
    return Sale(
        id=str(r[0]),
        customer_name=str(r[1]),
        customer_phone=str(r[2]),
        total_amount=_dec(r[3]),
        amount_paid=_dec(r[4]),
        payment_status=str(r[5]),
        due_date=(str(r[6]) if r[6] is not None else None),
        is_manual_balance=bool(r[7]),
        notes=(r[8] if r[8] is not None else None),
        created_at=str(r[9]),
        items=items,
    )


def _sale_item(r) -> SaleItem:
    return SaleItem(
        id=str(r[0]),
        sale_id=str(r[1]),
        color_id=str(r[2]),
        quantity=int(r[3]),
        rate=_dec(r[4]),
        subtotal=_dec(r[5]),
    )


def _payment(r) -> PaymentHistory:
    return PaymentHistory(
        id=str(r[0]),
        sale_id=str(r[1]),
        customer_phone=str(r[2]),
        amount=_dec(r[3]),
        previous_balance=_dec(r[4]),
        new_balance=_dec(r[5]),
        payment_method=str(r[6]),
        notes=(r[7] if r[7] is not None else None),
        created_at=str(r[8]),
    )


def _return(r, items: tuple[ReturnItem, ...] = ()) -> Return:
    return Return(
        id=str(r[0]),
        sale_id=(str(r[1]) if r[1] is not None else None),
        customer_name=str(r[2]),
        customer_phone=str(r[3]),
        return_type=str(r[4]),
        total_refund=_dec(r[5]),
        reason=(r[6] if r[6] is not None else None),
        status=str(r[7]),
        created_at=str(r[8]),
        items=items,
    )


def _return_item(r) -> ReturnItem:
    return ReturnItem(
        id=str(r[0]),
        return_id=str(r[1]),
        color_id=str(r[2]),
        sale_item_id=(str(r[3]) if r[3] is not None else None),
        quantity=int(r[4]),
        rate=_dec(r[5]),
        subtotal=_dec(r[6]),
        stock_restored=bool(r[7]),
    )


def _stock_in(r, color: Optional[Color] = None) -> StockInHistory:
    return StockInHistory(
        id=str(r[0]),
        color_id=str(r[1]),
        quantity=int(r[2]),
        previous_stock=int(r[3]),
        new_stock=int(r[4]),
        notes=(r[5] if r[5] is not None else None),
        stock_in_date=str(r[6]),
        created_at=str(r[7]),
        color=color,
    )


class SqliteRepository:
    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    @contextmanager
    def _reading(self, cur: Optional[sqlite3.Cursor] = None) -> Iterator[sqlite3.Cursor]:
        if cur is not None:
            yield cur
            return
        conn = self._conn()
        try:
            yield conn.cursor()
        finally:
            conn.close()

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_catalog),
                (2, self._migration_v2_sales_and_payments),
                (3, self._migration_v3_returns_stock_history_settings),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def schema_version(self) -> int:
        with self._reading() as cur:
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            return int(cur.fetchone()[0])

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_catalog(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS products (
            id TEXT PRIMARY KEY,
            company TEXT NOT NULL,
            product_name TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS variants (
            id TEXT PRIMARY KEY,
            product_id TEXT NOT NULL,
            packing_size TEXT NOT NULL,
            rate TEXT NOT NULL,
            created_at TEXT NOT NULL,
            FOREIGN KEY(product_id) REFERENCES products(id) ON DELETE CASCADE
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS colors (
            id TEXT PRIMARY KEY,
            variant_id TEXT NOT NULL,
            color_name TEXT NOT NULL,
            color_code TEXT NOT NULL,
            stock_quantity INTEGER NOT NULL DEFAULT 0,
            rate_override TEXT,
            created_at TEXT NOT NULL,
            FOREIGN KEY(variant_id) REFERENCES variants(id) ON DELETE CASCADE
        )
        """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_variants_product ON variants(product_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_colors_variant ON colors(variant_id)")

    def _migration_v2_sales_and_payments(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS sales (
            id TEXT PRIMARY KEY,
            customer_name TEXT NOT NULL,
            customer_phone TEXT NOT NULL,
            total_amount TEXT NOT NULL,
            amount_paid TEXT NOT NULL DEFAULT '0.00',
            payment_status TEXT NOT NULL CHECK(payment_status IN ('unpaid','partial','paid')),
            due_date TEXT,
            is_manual_balance INTEGER NOT NULL DEFAULT 0 CHECK(is_manual_balance IN (0,1)),
            notes TEXT,
            created_at TEXT NOT NULL
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS sale_items (
            id TEXT PRIMARY KEY,
            sale_id TEXT NOT NULL,
            color_id TEXT NOT NULL,
            quantity INTEGER NOT NULL CHECK(quantity > 0),
            rate TEXT NOT NULL,
            subtotal TEXT NOT NULL,
            FOREIGN KEY(sale_id) REFERENCES sales(id) ON DELETE CASCADE,
            FOREIGN KEY(color_id) REFERENCES colors(id)
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS payment_history (
            id TEXT PRIMARY KEY,
            sale_id TEXT NOT NULL,
            customer_phone TEXT NOT NULL,
            amount TEXT NOT NULL,
            previous_balance TEXT NOT NULL,
            new_balance TEXT NOT NULL,
            payment_method TEXT NOT NULL DEFAULT 'cash',
            notes TEXT,
            created_at TEXT NOT NULL,
            FOREIGN KEY(sale_id) REFERENCES sales(id) ON DELETE CASCADE
        )
        """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sales_phone ON sales(customer_phone)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sale_items_sale ON sale_items(sale_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_payment_history_sale ON payment_history(sale_id)")

    def _migration_v3_returns_stock_history_settings(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS returns (
            id TEXT PRIMARY KEY,
            sale_id TEXT,
            customer_name TEXT NOT NULL,
            customer_phone TEXT NOT NULL,
            return_type TEXT NOT NULL CHECK(return_type IN ('item','full_bill')),
            total_refund TEXT NOT NULL,
            reason TEXT,
            status TEXT NOT NULL DEFAULT 'completed',
            created_at TEXT NOT NULL,
            FOREIGN KEY(sale_id) REFERENCES sales(id) ON DELETE SET NULL
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS return_items (
            id TEXT PRIMARY KEY,
            return_id TEXT NOT NULL,
            color_id TEXT NOT NULL,
            sale_item_id TEXT,
            quantity INTEGER NOT NULL CHECK(quantity > 0),
            rate TEXT NOT NULL,
            subtotal TEXT NOT NULL,
            stock_restored INTEGER NOT NULL DEFAULT 1 CHECK(stock_restored IN (0,1)),
            FOREIGN KEY(return_id) REFERENCES returns(id) ON DELETE CASCADE,
            FOREIGN KEY(color_id) REFERENCES colors(id),
            FOREIGN KEY(sale_item_id) REFERENCES sale_items(id) ON DELETE SET NULL
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS stock_in_history (
            id TEXT PRIMARY KEY,
            color_id TEXT NOT NULL,
            quantity INTEGER NOT NULL,
            previous_stock INTEGER NOT NULL,
            new_stock INTEGER NOT NULL,
            notes TEXT,
            stock_in_date TEXT NOT NULL,
            created_at TEXT NOT NULL,
            FOREIGN KEY(color_id) REFERENCES colors(id) ON DELETE CASCADE
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS settings (
            id TEXT PRIMARY KEY,
            store_name TEXT NOT NULL,
            perm_stock_edit INTEGER NOT NULL DEFAULT 1,
            perm_stock_delete INTEGER NOT NULL DEFAULT 1,
            perm_stock_history_delete INTEGER NOT NULL DEFAULT 1,
            perm_sales_edit INTEGER NOT NULL DEFAULT 1,
            perm_sales_delete INTEGER NOT NULL DEFAULT 1,
            perm_payment_edit INTEGER NOT NULL DEFAULT 1,
            perm_payment_delete INTEGER NOT NULL DEFAULT 1,
            audit_pin_hash TEXT,
            updated_at TEXT NOT NULL
        )
        """
        )
        cur.execute(
            """
            INSERT OR IGNORE INTO settings (id, store_name, updated_at)
            VALUES ('default', 'PaintPulse', datetime('now'))
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_returns_phone ON returns(customer_phone)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_return_items_return ON return_items(return_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_stock_in_color ON stock_in_history(color_id)")

    # ---------- Products ----------
    def insert_product(self, cur: sqlite3.Cursor, product: Product) -> None:
        cur.execute(
            "INSERT INTO products (id, company, product_name, created_at) VALUES (?, ?, ?, ?)",
            (product.id, product.company, product.product_name, product.created_at),
        )

    def get_product(self, product_id: str, cur: Optional[sqlite3.Cursor] = None) -> Optional[Product]:
        with self._reading(cur) as c:
            c.execute(f"SELECT {PRODUCT_COLS} FROM products p WHERE p.id = ?", (product_id,))
            r = c.fetchone()
        return _product(r) if r else None

    def list_products(self) -> list[Product]:
        with self._reading() as c:
            c.execute(f"SELECT {PRODUCT_COLS} FROM products p ORDER BY p.created_at DESC, p.rowid DESC")
            rows = c.fetchall()
        return [_product(r) for r in rows]

    def update_product(self, cur: sqlite3.Cursor, product_id: str, company: str, product_name: str) -> bool:
        cur.execute(
            "UPDATE products SET company=?, product_name=? WHERE id=?",
            (company, product_name, product_id),
        )
        return cur.rowcount > 0

    def delete_product(self, cur: sqlite3.Cursor, product_id: str) -> bool:
        cur.execute("DELETE FROM products WHERE id=?", (product_id,))
        return cur.rowcount > 0

    # ---------- Variants ----------
    def insert_variant(self, cur: sqlite3.Cursor, variant: Variant) -> None:
        cur.execute(
            """
            INSERT INTO variants (id, product_id, packing_size, rate, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (variant.id, variant.product_id, variant.packing_size, str(variant.rate), variant.created_at),
        )

    def get_variant(self, variant_id: str, cur: Optional[sqlite3.Cursor] = None) -> Optional[Variant]:
        with self._reading(cur) as c:
            c.execute(
                f"""
                SELECT {VARIANT_COLS}, {PRODUCT_COLS}
                FROM variants v JOIN products p ON p.id = v.product_id
                WHERE v.id = ?
                """,
                (variant_id,),
            )
            r = c.fetchone()
        return _variant(r[0:5], _product(r[5:9])) if r else None

    def list_variants(self) -> list[Variant]:
        with self._reading() as c:
            c.execute(
                f"""
                SELECT {VARIANT_COLS}, {PRODUCT_COLS}
                FROM variants v JOIN products p ON p.id = v.product_id
                ORDER BY v.created_at DESC, v.rowid DESC
                """
            )
            rows = c.fetchall()
        return [_variant(r[0:5], _product(r[5:9])) for r in rows]

    def update_variant(
        self, cur: sqlite3.Cursor, variant_id: str, product_id: str, packing_size: str, rate: Decimal
    ) -> bool:
        cur.execute(
            "UPDATE variants SET product_id=?, packing_size=?, rate=? WHERE id=?",
            (product_id, packing_size, str(rate), variant_id),
        )
        return cur.rowcount > 0

    def update_variant_rate(self, cur: sqlite3.Cursor, variant_id: str, rate: Decimal) -> bool:
        cur.execute("UPDATE variants SET rate=? WHERE id=?", (str(rate), variant_id))
        return cur.rowcount > 0

    def delete_variant(self, cur: sqlite3.Cursor, variant_id: str) -> bool:
        cur.execute("DELETE FROM variants WHERE id=?", (variant_id,))
        return cur.rowcount > 0

    # ---------- Colors ----------
    def insert_color(self, cur: sqlite3.Cursor, color: Color) -> None:
        cur.execute(
            """
            INSERT INTO colors (id, variant_id, color_name, color_code, stock_quantity, rate_override, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                color.id,
                color.variant_id,
                color.color_name,
                color.color_code,
                int(color.stock_quantity),
                str(color.rate_override) if color.rate_override is not None else None,
                color.created_at,
            ),
        )

    def get_color(self, color_id: str, cur: Optional[sqlite3.Cursor] = None) -> Optional[Color]:
        with self._reading(cur) as c:
            c.execute(
                f"SELECT {COLOR_COLS}, {VARIANT_COLS}, {PRODUCT_COLS} FROM {COLOR_JOIN} WHERE c.id = ?",
                (color_id,),
            )
            r = c.fetchone()
        return _color_joined(r) if r else None

    def list_colors(self) -> list[Color]:
        with self._reading() as c:
            c.execute(
                f"""
                SELECT {COLOR_COLS}, {VARIANT_COLS}, {PRODUCT_COLS}
                FROM {COLOR_JOIN}
                ORDER BY c.created_at DESC, c.rowid DESC
                """
            )
            rows = c.fetchall()
        return [_color_joined(r) for r in rows]

    def update_color(
        self, cur: sqlite3.Cursor, color_id: str, color_name: str, color_code: str, stock_quantity: int
    ) -> bool:
        cur.execute(
            "UPDATE colors SET color_name=?, color_code=?, stock_quantity=? WHERE id=?",
            (color_name, color_code, int(stock_quantity), color_id),
        )
        return cur.rowcount > 0

    def set_color_stock(self, cur: sqlite3.Cursor, color_id: str, stock_quantity: int) -> bool:
        cur.execute("UPDATE colors SET stock_quantity=? WHERE id=?", (int(stock_quantity), color_id))
        return cur.rowcount > 0

    def adjust_color_stock(self, cur: sqlite3.Cursor, color_id: str, delta: int) -> Optional[int]:
        """Apply a relative stock change and return the resulting quantity."""
        cur.execute(
            "UPDATE colors SET stock_quantity = stock_quantity + ? WHERE id = ?",
            (int(delta), color_id),
        )
        if cur.rowcount == 0:
            return None
        cur.execute("SELECT stock_quantity FROM colors WHERE id=?", (color_id,))
        return int(cur.fetchone()[0])

    def set_color_rate_override(self, cur: sqlite3.Cursor, color_id: str, rate_override: Optional[Decimal]) -> bool:
        cur.execute(
            "UPDATE colors SET rate_override=? WHERE id=?",
            (str(rate_override) if rate_override is not None else None, color_id),
        )
        return cur.rowcount > 0

    def delete_color(self, cur: sqlite3.Cursor, color_id: str) -> bool:
        cur.execute("DELETE FROM colors WHERE id=?", (color_id,))
        return cur.rowcount > 0

    # ---------- Sales ----------
    def insert_sale(self, cur: sqlite3.Cursor, sale: Sale) -> None:
        cur.execute(
            """
            INSERT INTO sales (
                id, customer_name, customer_phone, total_amount, amount_paid, payment_status,
                due_date, is_manual_balance, notes, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                sale.id,
                sale.customer_name,
                sale.customer_phone,
                str(sale.total_amount),
                str(sale.amount_paid),
                sale.payment_status,
                sale.due_date,
                int(sale.is_manual_balance),
                sale.notes,
                sale.created_at,
            ),
        )

    def get_sale(self, sale_id: str, cur: Optional[sqlite3.Cursor] = None) -> Optional[Sale]:
        with self._reading(cur) as c:
            c.execute(f"SELECT {SALE_COLS} FROM sales s WHERE s.id = ?", (sale_id,))
            r = c.fetchone()
            if not r:
                return None
            items = tuple(self.sale_items_for_sale(sale_id, cur=c))
        return _sale(r, items)

    def _list_sales(self, where: str = "", params: tuple = (), limit: Optional[int] = None) -> list[Sale]:
        sql = f"SELECT {SALE_COLS} FROM sales s {where} ORDER BY s.created_at DESC, s.rowid DESC"
        if limit is not None:
            sql += f" LIMIT {int(limit)}"
        with self._reading() as c:
            c.execute(sql, params)
            rows = c.fetchall()
            return [_sale(r, tuple(self.sale_items_for_sale(str(r[0]), cur=c))) for r in rows]

    def list_sales(self, limit: Optional[int] = None) -> list[Sale]:
        return self._list_sales(limit=limit)

    def list_sales_between(self, start_iso: str, end_iso: str) -> list[Sale]:
        return self._list_sales("WHERE s.created_at >= ? AND s.created_at < ?", (start_iso, end_iso))

    def list_unpaid_sales(self) -> list[Sale]:
        return self._list_sales("WHERE s.payment_status != 'paid'")

    def list_sales_by_phone(self, customer_phone: str) -> list[Sale]:
        return self._list_sales("WHERE s.customer_phone = ?", (customer_phone,))

    def find_unpaid_sale_by_phone(self, customer_phone: str) -> Optional[Sale]:
        rows = self._list_sales(
            "WHERE s.customer_phone = ? AND s.payment_status != 'paid'", (customer_phone,), limit=1
        )
        return rows[0] if rows else None

    def update_sale_money(
        self, cur: sqlite3.Cursor, sale_id: str, total_amount: Decimal, amount_paid: Decimal, payment_status: str
    ) -> bool:
        cur.execute(
            "UPDATE sales SET total_amount=?, amount_paid=?, payment_status=? WHERE id=?",
            (str(total_amount), str(amount_paid), payment_status, sale_id),
        )
        return cur.rowcount > 0

    def update_sale_due_date(
        self, cur: sqlite3.Cursor, sale_id: str, due_date: Optional[str], notes: Optional[str], set_notes: bool
    ) -> bool:
        if set_notes:
            cur.execute("UPDATE sales SET due_date=?, notes=? WHERE id=?", (due_date, notes, sale_id))
        else:
            cur.execute("UPDATE sales SET due_date=? WHERE id=?", (due_date, sale_id))
        return cur.rowcount > 0

    def delete_sale(self, cur: sqlite3.Cursor, sale_id: str) -> bool:
        cur.execute("DELETE FROM sales WHERE id=?", (sale_id,))
        return cur.rowcount > 0

    # ---------- Sale items ----------
    def insert_sale_item(self, cur: sqlite3.Cursor, item: SaleItem) -> None:
        cur.execute(
            """
            INSERT INTO sale_items (id, sale_id, color_id, quantity, rate, subtotal)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (item.id, item.sale_id, item.color_id, int(item.quantity), str(item.rate), str(item.subtotal)),
        )

    def get_sale_item(self, item_id: str, cur: Optional[sqlite3.Cursor] = None) -> Optional[SaleItem]:
        with self._reading(cur) as c:
            c.execute(f"SELECT {SALE_ITEM_COLS} FROM sale_items si WHERE si.id = ?", (item_id,))
            r = c.fetchone()
        return _sale_item(r) if r else None

    def sale_items_for_sale(self, sale_id: str, cur: Optional[sqlite3.Cursor] = None) -> list[SaleItem]:
        with self._reading(cur) as c:
            c.execute(
                f"SELECT {SALE_ITEM_COLS} FROM sale_items si WHERE si.sale_id = ? ORDER BY si.rowid",
                (sale_id,),
            )
            rows = c.fetchall()
        return [_sale_item(r) for r in rows]

    def update_sale_item(
        self, cur: sqlite3.Cursor, item_id: str, quantity: int, rate: Decimal, subtotal: Decimal
    ) -> bool:
        cur.execute(
            "UPDATE sale_items SET quantity=?, rate=?, subtotal=? WHERE id=?",
            (int(quantity), str(rate), str(subtotal), item_id),
        )
        return cur.rowcount > 0

    def delete_sale_item(self, cur: sqlite3.Cursor, item_id: str) -> bool:
        cur.execute("DELETE FROM sale_items WHERE id=?", (item_id,))
        return cur.rowcount > 0

    def delete_sale_items_for_sale(self, cur: sqlite3.Cursor, sale_id: str) -> int:
        cur.execute("DELETE FROM sale_items WHERE sale_id=?", (sale_id,))
        return int(cur.rowcount)

    def stock_out_rows(self) -> list[tuple[SaleItem, Sale, Color]]:
        with self._reading() as c:
            c.execute(
                f"""
                SELECT {SALE_ITEM_COLS}, {SALE_COLS}, {COLOR_COLS}, {VARIANT_COLS}, {PRODUCT_COLS}
                FROM sale_items si
                JOIN sales s ON s.id = si.sale_id
                JOIN colors c ON c.id = si.color_id
                JOIN variants v ON v.id = c.variant_id
                JOIN products p ON p.id = v.product_id
                ORDER BY s.created_at DESC, s.rowid DESC, si.rowid
                """
            )
            rows = c.fetchall()
        return [(_sale_item(r[0:6]), _sale(r[6:16]), _color_joined(r[16:32])) for r in rows]

    # ---------- Payment history ----------
    def insert_payment(self, cur: sqlite3.Cursor, payment: PaymentHistory) -> None:
        cur.execute(
            """
            INSERT INTO payment_history (
                id, sale_id, customer_phone, amount, previous_balance, new_balance,
                payment_method, notes, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                payment.id,
                payment.sale_id,
                payment.customer_phone,
                str(payment.amount),
                str(payment.previous_balance),
                str(payment.new_balance),
                payment.payment_method,
                payment.notes,
                payment.created_at,
            ),
        )

    def get_payment(self, payment_id: str, cur: Optional[sqlite3.Cursor] = None) -> Optional[PaymentHistory]:
        with self._reading(cur) as c:
            c.execute(f"SELECT {PAYMENT_COLS} FROM payment_history ph WHERE ph.id = ?", (payment_id,))
            r = c.fetchone()
        return _payment(r) if r else None

    def _list_payments(self, where: str = "", params: tuple = ()) -> list[PaymentHistory]:
        with self._reading() as c:
            c.execute(
                f"SELECT {PAYMENT_COLS} FROM payment_history ph {where} ORDER BY ph.created_at DESC, ph.rowid DESC",
                params,
            )
            rows = c.fetchall()
        return [_payment(r) for r in rows]

    def list_payments_for_sale(self, sale_id: str) -> list[PaymentHistory]:
        return self._list_payments("WHERE ph.sale_id = ?", (sale_id,))

    def list_payments_for_customer(self, customer_phone: str) -> list[PaymentHistory]:
        return self._list_payments("WHERE ph.customer_phone = ?", (customer_phone,))

    def list_all_payments(self) -> list[PaymentHistory]:
        return self._list_payments()

    def update_payment(
        self,
        cur: sqlite3.Cursor,
        payment_id: str,
        amount: Decimal,
        payment_method: str,
        notes: Optional[str],
    ) -> bool:
        cur.execute(
            "UPDATE payment_history SET amount=?, payment_method=?, notes=? WHERE id=?",
            (str(amount), payment_method, notes, payment_id),
        )
        return cur.rowcount > 0

    def delete_payment(self, cur: sqlite3.Cursor, payment_id: str) -> bool:
        cur.execute("DELETE FROM payment_history WHERE id=?", (payment_id,))
        return cur.rowcount > 0

    def delete_payments_for_sale(self, cur: sqlite3.Cursor, sale_id: str) -> int:
        cur.execute("DELETE FROM payment_history WHERE sale_id=?", (sale_id,))
        return int(cur.rowcount)

    # ---------- Returns ----------
    def insert_return(self, cur: sqlite3.Cursor, ret: Return) -> None:
        cur.execute(
            """
            INSERT INTO returns (
                id, sale_id, customer_name, customer_phone, return_type, total_refund,
                reason, status, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                ret.id,
                ret.sale_id,
                ret.customer_name,
                ret.customer_phone,
                ret.return_type,
                str(ret.total_refund),
                ret.reason,
                ret.status,
                ret.created_at,
            ),
        )

    def insert_return_item(self, cur: sqlite3.Cursor, item: ReturnItem) -> None:
        cur.execute(
            """
            INSERT INTO return_items (
                id, return_id, color_id, sale_item_id, quantity, rate, subtotal, stock_restored
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item.id,
                item.return_id,
                item.color_id,
                item.sale_item_id,
                int(item.quantity),
                str(item.rate),
                str(item.subtotal),
                int(item.stock_restored),
            ),
        )

    def _return_items(self, c: sqlite3.Cursor, return_id: str) -> tuple[ReturnItem, ...]:
        c.execute(
            f"SELECT {RETURN_ITEM_COLS} FROM return_items ri WHERE ri.return_id = ? ORDER BY ri.rowid",
            (return_id,),
        )
        return tuple(_return_item(r) for r in c.fetchall())

    def get_return(self, return_id: str, cur: Optional[sqlite3.Cursor] = None) -> Optional[Return]:
        with self._reading(cur) as c:
            c.execute(f"SELECT {RETURN_COLS} FROM returns r WHERE r.id = ?", (return_id,))
            r = c.fetchone()
            if not r:
                return None
            return _return(r, self._return_items(c, return_id))

    def _list_returns(self, where: str = "", params: tuple = ()) -> list[Return]:
        with self._reading() as c:
            c.execute(
                f"SELECT {RETURN_COLS} FROM returns r {where} ORDER BY r.created_at DESC, r.rowid DESC",
                params,
            )
            rows = c.fetchall()
            return [_return(r, self._return_items(c, str(r[0]))) for r in rows]

    def list_returns(self) -> list[Return]:
        return self._list_returns()

    def list_returns_by_phone(self, customer_phone: str) -> list[Return]:
        return self._list_returns("WHERE r.customer_phone = ?", (customer_phone,))

    def returned_quantity_for_sale_item(self, sale_item_id: str, cur: Optional[sqlite3.Cursor] = None) -> int:
        with self._reading(cur) as c:
            c.execute(
                "SELECT COALESCE(SUM(quantity), 0) FROM return_items WHERE sale_item_id = ?",
                (sale_item_id,),
            )
            return int(c.fetchone()[0])

    def update_return(
        self, cur: sqlite3.Cursor, return_id: str, reason: Optional[str], status: str
    ) -> bool:
        cur.execute("UPDATE returns SET reason=?, status=? WHERE id=?", (reason, status, return_id))
        return cur.rowcount > 0

    # ---------- Stock-in history ----------
    def insert_stock_in(self, cur: sqlite3.Cursor, record: StockInHistory) -> None:
        cur.execute(
            """
            INSERT INTO stock_in_history (
                id, color_id, quantity, previous_stock, new_stock, notes, stock_in_date, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.color_id,
                int(record.quantity),
                int(record.previous_stock),
                int(record.new_stock),
                record.notes,
                record.stock_in_date,
                record.created_at,
            ),
        )

    def get_stock_in(self, record_id: str, cur: Optional[sqlite3.Cursor] = None) -> Optional[StockInHistory]:
        with self._reading(cur) as c:
            c.execute(
                f"""
                SELECT {STOCK_IN_COLS}, {COLOR_COLS}, {VARIANT_COLS}, {PRODUCT_COLS}
                FROM stock_in_history h
                JOIN colors c ON c.id = h.color_id
                JOIN variants v ON v.id = c.variant_id
                JOIN products p ON p.id = v.product_id
                WHERE h.id = ?
                """,
                (record_id,),
            )
            r = c.fetchone()
        return _stock_in(r[0:8], _color_joined(r[8:24])) if r else None

    def list_stock_in_history(self) -> list[StockInHistory]:
        with self._reading() as c:
            c.execute(
                f"""
                SELECT {STOCK_IN_COLS}, {COLOR_COLS}, {VARIANT_COLS}, {PRODUCT_COLS}
                FROM stock_in_history h
                JOIN colors c ON c.id = h.color_id
                JOIN variants v ON v.id = c.variant_id
                JOIN products p ON p.id = v.product_id
                ORDER BY h.created_at DESC, h.rowid DESC
                """
            )
            rows = c.fetchall()
        return [_stock_in(r[0:8], _color_joined(r[8:24])) for r in rows]

    def update_stock_in(
        self,
        cur: sqlite3.Cursor,
        record_id: str,
        quantity: int,
        new_stock: int,
        notes: Optional[str],
        stock_in_date: str,
    ) -> bool:
        cur.execute(
            """
            UPDATE stock_in_history
            SET quantity=?, new_stock=?, notes=?, stock_in_date=?
            WHERE id=?
            """,
            (int(quantity), int(new_stock), notes, stock_in_date, record_id),
        )
        return cur.rowcount > 0

    def delete_stock_in(self, cur: sqlite3.Cursor, record_id: str) -> bool:
        cur.execute("DELETE FROM stock_in_history WHERE id=?", (record_id,))
        return cur.rowcount > 0

    # ---------- Settings ----------
    def get_settings(self, cur: Optional[sqlite3.Cursor] = None) -> StoreSettings:
        cols = ", ".join(PERMISSION_COLUMNS.values())
        with self._reading(cur) as c:
            c.execute(f"SELECT store_name, audit_pin_hash, updated_at, {cols} FROM settings WHERE id='default'")
            r = c.fetchone()
        if not r:
            return StoreSettings(
                store_name="PaintPulse",
                permissions={perm: True for perm in PERMISSION_COLUMNS},
                audit_pin_hash=None,
                updated_at="",
            )
        perms = {perm: bool(r[3 + i]) for i, perm in enumerate(PERMISSION_COLUMNS)}
        return StoreSettings(
            store_name=str(r[0]),
            permissions=perms,
            audit_pin_hash=(str(r[1]) if r[1] is not None else None),
            updated_at=str(r[2]),
        )

    def update_settings(self, cur: sqlite3.Cursor, updated_at: str, **fields) -> None:
        assignments = ["updated_at=?"]
        params: list = [updated_at]
        for column, value in fields.items():
            assignments.append(f"{column}=?")
            params.append(value)
        cur.execute(f"UPDATE settings SET {', '.join(assignments)} WHERE id='default'", tuple(params))
