from __future__ import annotations

import logging
import sqlite3
import uuid
from decimal import Decimal
from typing import Callable, Optional

from paintledger.config import LedgerPolicy
from paintledger.domain import rules
from paintledger.domain.errors import InconsistentStateError, NotFoundError, ValidationError
from paintledger.domain.models import Color, Product, StockInHistory, Variant
from paintledger.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork

log = logging.getLogger("paintledger.stock")


def _required(value: Optional[str], label: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{label} is required.")
    return value


def _rate(value: object, label: str = "Rate") -> Decimal:
    rate = rules.to_money(value, label)
    if rate < 0:
        raise ValidationError(f"{label} must be >= 0.")
    return rate


class CatalogService:
    def __init__(
        self,
        repo,
        policy: LedgerPolicy | None = None,
        clock: rules.Clock | None = None,
        uow_factory: Callable[[], UnitOfWork] | None = None,
    ):
        self.repo = repo
        self.policy = policy or LedgerPolicy()
        self.clock = clock or rules.local_now
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))

    # ---------- Products ----------
    def create_product(self, company: str, product_name: str) -> Product:
        product = Product(
            id=str(uuid.uuid4()),
            company=_required(company, "Company"),
            product_name=_required(product_name, "Product name"),
            created_at=rules.timestamp(self.clock),
        )
        with self.uow_factory() as uow:
            self.repo.insert_product(uow.cur, product)
        return product

    def get_product(self, product_id: str) -> Product:
        p = self.repo.get_product(product_id)
        if not p:
            raise NotFoundError("Product not found.")
        return p

    def list_products(self) -> list[Product]:
        return self.repo.list_products()

    def update_product(self, product_id: str, company: str, product_name: str) -> Product:
        company = _required(company, "Company")
        product_name = _required(product_name, "Product name")
        with self.uow_factory() as uow:
            if not self.repo.update_product(uow.cur, product_id, company, product_name):
                raise NotFoundError("Product not found.")
        return self.get_product(product_id)

    def delete_product(self, product_id: str) -> None:
        self._delete(self.repo.delete_product, product_id, "Product")

    # ---------- Variants ----------
    def create_variant(self, product_id: str, packing_size: str, rate: object) -> Variant:
        variant = Variant(
            id=str(uuid.uuid4()),
            product_id=product_id,
            packing_size=_required(packing_size, "Packing size"),
            rate=_rate(rate),
            created_at=rules.timestamp(self.clock),
        )
        with self.uow_factory() as uow:
            if not self.repo.get_product(product_id, cur=uow.cur):
                raise NotFoundError("Product not found.")
            self.repo.insert_variant(uow.cur, variant)
        return self.get_variant(variant.id)

    def get_variant(self, variant_id: str) -> Variant:
        v = self.repo.get_variant(variant_id)
        if not v:
            raise NotFoundError("Variant not found.")
        return v

    def list_variants(self) -> list[Variant]:
        return self.repo.list_variants()

    def update_variant(self, variant_id: str, product_id: str, packing_size: str, rate: object) -> Variant:
        packing_size = _required(packing_size, "Packing size")
        new_rate = _rate(rate)
        with self.uow_factory() as uow:
            if not self.repo.get_product(product_id, cur=uow.cur):
                raise NotFoundError("Product not found.")
            if not self.repo.update_variant(uow.cur, variant_id, product_id, packing_size, new_rate):
                raise NotFoundError("Variant not found.")
        return self.get_variant(variant_id)

    def update_rate(self, variant_id: str, rate: object) -> Variant:
        new_rate = _rate(rate)
        with self.uow_factory() as uow:
            if not self.repo.update_variant_rate(uow.cur, variant_id, new_rate):
                raise NotFoundError("Variant not found.")
        log.info("variant_rate_updated variant_id=%s rate=%s", variant_id, rules.money_str(new_rate))
        return self.get_variant(variant_id)

    def delete_variant(self, variant_id: str) -> None:
        self._delete(self.repo.delete_variant, variant_id, "Variant")

    # ---------- Colors ----------
    def create_color(
        self,
        variant_id: str,
        color_name: str,
        color_code: str,
        stock_quantity: int = 0,
        rate_override: object = None,
    ) -> Color:
        stock = rules.to_whole_number(stock_quantity, "Stock")
        if stock < 0:
            raise ValidationError("Stock values must be >= 0.")
        color = Color(
            id=str(uuid.uuid4()),
            variant_id=variant_id,
            color_name=_required(color_name, "Color name"),
            color_code=_required(color_code, "Color code"),
            stock_quantity=stock,
            rate_override=_rate(rate_override, "Rate override") if rate_override is not None else None,
            created_at=rules.timestamp(self.clock),
        )
        with self.uow_factory() as uow:
            if not self.repo.get_variant(variant_id, cur=uow.cur):
                raise NotFoundError("Variant not found.")
            self.repo.insert_color(uow.cur, color)
        return self.get_color(color.id)

    def get_color(self, color_id: str) -> Color:
        c = self.repo.get_color(color_id)
        if not c:
            raise NotFoundError("Color not found.")
        return c

    def list_colors(self) -> list[Color]:
        return self.repo.list_colors()

    def low_stock_colors(self) -> list[Color]:
        threshold = self.policy.low_stock_threshold
        return [c for c in self.repo.list_colors() if 0 < c.stock_quantity < threshold]

    def update_color(self, color_id: str, color_name: str, color_code: str, stock_quantity: int) -> Color:
        color_name = _required(color_name, "Color name")
        color_code = _required(color_code, "Color code")
        stock = self._checked_overwrite(stock_quantity)
        with self.uow_factory() as uow:
            if not self.repo.update_color(uow.cur, color_id, color_name, color_code, stock):
                raise NotFoundError("Color not found.")
        return self.get_color(color_id)

    def update_stock(self, color_id: str, stock_quantity: int) -> Color:
        """Overwrite on-hand stock. Admin correction path; writes no history."""
        stock = self._checked_overwrite(stock_quantity)
        with self.uow_factory() as uow:
            if not self.repo.set_color_stock(uow.cur, color_id, stock):
                raise NotFoundError("Color not found.")
        log.info("stock_overwritten color_id=%s stock=%s", color_id, stock)
        return self.get_color(color_id)

    def update_rate_override(self, color_id: str, rate_override: object) -> Color:
        override = _rate(rate_override, "Rate override") if rate_override is not None else None
        with self.uow_factory() as uow:
            if not self.repo.set_color_rate_override(uow.cur, color_id, override):
                raise NotFoundError("Color not found.")
        return self.get_color(color_id)

    def stock_in(
        self,
        color_id: str,
        quantity: int,
        notes: Optional[str] = None,
        stock_in_date: Optional[str] = None,
    ) -> Color:
        qty = rules.to_quantity(quantity)
        in_date = rules.stock_in_date(stock_in_date, self.clock)
        with self.uow_factory() as uow:
            color = self.repo.get_color(color_id, cur=uow.cur)
            if not color:
                raise NotFoundError("Color not found.")
            previous = int(color.stock_quantity)
            new_stock = previous + qty
            self.repo.set_color_stock(uow.cur, color_id, new_stock)
            self.repo.insert_stock_in(
                uow.cur,
                StockInHistory(
                    id=str(uuid.uuid4()),
                    color_id=color_id,
                    quantity=qty,
                    previous_stock=previous,
                    new_stock=new_stock,
                    notes=notes or "Stock added via stock management",
                    stock_in_date=in_date,
                    created_at=rules.timestamp(self.clock),
                ),
            )
        log.info("stock_in color_id=%s qty=%s previous=%s new=%s", color_id, qty, previous, new_stock)
        return self.get_color(color_id)

    def delete_color(self, color_id: str) -> None:
        self._delete(self.repo.delete_color, color_id, "Color")

    def _checked_overwrite(self, stock_quantity: int) -> int:
        stock = rules.to_whole_number(stock_quantity, "Stock")
        if stock < 0 and not self.policy.allow_negative_stock:
            raise ValidationError("Stock values must be >= 0.")
        return stock

    def _delete(self, delete_fn, entity_id: str, label: str) -> None:
        try:
            with self.uow_factory() as uow:
                if not delete_fn(uow.cur, entity_id):
                    raise NotFoundError(f"{label} not found.")
        except sqlite3.IntegrityError as e:
            raise InconsistentStateError(
                f"{label} is still referenced by sales or returns and cannot be deleted."
            ) from e
        log.info("catalog_deleted entity=%s id=%s", label.lower(), entity_id)
