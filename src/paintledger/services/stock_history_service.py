from __future__ import annotations

import logging
import uuid
from typing import Callable, Optional

from paintledger.config import LedgerPolicy
from paintledger.domain import rules
from paintledger.domain.errors import InconsistentStateError, NotFoundError, ValidationError
from paintledger.domain.models import StockInHistory
from paintledger.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork

log = logging.getLogger("paintledger.stock")

_UNSET = object()


class StockHistoryService:
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

    def record_stock_in(
        self,
        color_id: str,
        quantity: int,
        previous_stock: int,
        new_stock: int,
        notes: Optional[str] = None,
        stock_in_date: Optional[str] = None,
    ) -> StockInHistory:
        """Append a history row for a stock increase already applied to the color."""
        qty = rules.to_quantity(quantity)
        previous_stock = rules.to_whole_number(previous_stock, "previous_stock")
        new_stock = rules.to_whole_number(new_stock, "new_stock")
        if new_stock != previous_stock + qty:
            raise InconsistentStateError(
                f"new_stock {new_stock} does not equal previous_stock {previous_stock} + quantity {qty}."
            )
        record = StockInHistory(
            id=str(uuid.uuid4()),
            color_id=color_id,
            quantity=qty,
            previous_stock=previous_stock,
            new_stock=new_stock,
            notes=notes or None,
            stock_in_date=rules.stock_in_date(stock_in_date, self.clock),
            created_at=rules.timestamp(self.clock),
        )
        with self.uow_factory() as uow:
            if not self.repo.get_color(color_id, cur=uow.cur):
                raise NotFoundError("Color not found.")
            self.repo.insert_stock_in(uow.cur, record)
        log.info("stock_in_recorded record_id=%s color_id=%s qty=%s", record.id, color_id, qty)
        return self.get_stock_in(record.id)

    def get_stock_in(self, record_id: str) -> StockInHistory:
        record = self.repo.get_stock_in(record_id)
        if not record:
            raise NotFoundError("Stock history record not found.")
        return record

    def update_stock_in_history(
        self,
        record_id: str,
        quantity: Optional[int] = None,
        notes=_UNSET,
        stock_in_date: Optional[str] = None,
    ) -> StockInHistory:
        """Edit a stock-in record.

        A quantity change sets new_stock = previous_stock + quantity and writes
        that value onto the color, replacing whatever the color holds now.
        """
        with self.uow_factory() as uow:
            record = self.repo.get_stock_in(record_id, cur=uow.cur)
            if not record:
                raise NotFoundError("Stock history record not found.")

            qty = record.quantity if quantity is None else rules.to_quantity(quantity)
            if stock_in_date is None:
                in_date = record.stock_in_date
            elif not rules.is_valid_ddmmyyyy(str(stock_in_date).strip()):
                raise ValidationError("Invalid date format. Please use DD-MM-YYYY format.")
            else:
                in_date = str(stock_in_date).strip()

            new_stock = record.new_stock
            if qty != record.quantity:
                new_stock = record.previous_stock + qty
                current = self.repo.get_color(record.color_id, cur=uow.cur)
                if current and current.stock_quantity != record.new_stock:
                    log.warning(
                        "stock_in_edit_overwrites_stock record_id=%s color_id=%s current=%s recorded=%s new=%s",
                        record_id, record.color_id, current.stock_quantity, record.new_stock, new_stock,
                    )
                self.repo.set_color_stock(uow.cur, record.color_id, new_stock)

            self.repo.update_stock_in(
                uow.cur,
                record_id,
                qty,
                new_stock,
                record.notes if notes is _UNSET else (notes or None),
                in_date,
            )

        log.info(
            "stock_in_updated record_id=%s qty=%s->%s new_stock=%s", record_id, record.quantity, qty, new_stock
        )
        return self.get_stock_in(record_id)

    def delete_stock_in_history(self, record_id: str) -> None:
        with self.uow_factory() as uow:
            if not self.repo.delete_stock_in(uow.cur, record_id):
                raise NotFoundError("Stock history record not found.")
        log.info("stock_in_deleted record_id=%s", record_id)

    def list_stock_in_history(
        self,
        start_iso: Optional[str] = None,
        end_iso: Optional[str] = None,
        company: Optional[str] = None,
        product: Optional[str] = None,
        color_code: Optional[str] = None,
        color_name: Optional[str] = None,
    ) -> list[StockInHistory]:
        records = self.repo.list_stock_in_history()

        if start_iso:
            records = [r for r in records if r.created_at >= start_iso]
        if end_iso:
            records = [r for r in records if r.created_at < end_iso]
        if company and company != "all":
            records = [r for r in records if r.color.variant.product.company == company]
        if product and product != "all":
            records = [r for r in records if r.color.variant.product.product_name == product]
        if color_code:
            needle = color_code.lower()
            records = [r for r in records if needle in r.color.color_code.lower()]
        if color_name:
            needle = color_name.lower()
            records = [r for r in records if needle in r.color.color_name.lower()]
        return records
