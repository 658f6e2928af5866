from __future__ import annotations

import logging
import sqlite3
import uuid
from decimal import Decimal
from typing import Callable, Iterable, Optional

from paintledger.config import LedgerPolicy
from paintledger.domain import rules
from paintledger.domain.errors import (
    InconsistentStateError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from paintledger.domain.models import Color, Sale, SaleItem
from paintledger.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork

log = logging.getLogger("paintledger.sales")

_UNSET = object()


class SalesService:
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

    def create_sale(self, header: dict, items: Iterable[dict]) -> Sale:
        """
        header: {customer_name, customer_phone, amount_paid?, due_date?, notes?}
        items: [{color_id, quantity, rate?}]

        Subtotals, total and payment status are derived here; a missing item
        rate falls back to the color's effective rate.
        """
        items = list(items)
        if not items:
            raise ValidationError("Cart is empty.")

        customer_name = (header.get("customer_name") or "").strip()
        if not customer_name:
            raise ValidationError("Customer name is required.")
        customer_phone = (header.get("customer_phone") or "").strip()
        deposit = rules.to_money(header.get("amount_paid", 0), "Amount paid")
        if deposit < 0:
            raise ValidationError("Amount paid must be >= 0.")
        due = rules.due_date(header.get("due_date"))

        sale_id = str(uuid.uuid4())
        with self.uow_factory() as uow:
            lines: list[SaleItem] = []
            for it in items:
                color = self._color(uow.cur, it.get("color_id"))
                lines.append(self._build_line(sale_id, color, it))

            total = sum((line.subtotal for line in lines), rules.ZERO)
            self._check_overpayment(deposit, total)
            self.repo.insert_sale(
                uow.cur,
                Sale(
                    id=sale_id,
                    customer_name=customer_name,
                    customer_phone=customer_phone,
                    total_amount=total,
                    amount_paid=deposit,
                    payment_status=rules.payment_status(total, deposit),
                    due_date=due,
                    is_manual_balance=False,
                    notes=header.get("notes") or None,
                    created_at=rules.timestamp(self.clock),
                ),
            )
            for line in lines:
                self.repo.insert_sale_item(uow.cur, line)
                self._apply_stock(uow.cur, line.color_id, -line.quantity)

        log.info(
            "sale_created sale_id=%s items=%s total=%s paid=%s",
            sale_id, len(lines), rules.money_str(total), rules.money_str(deposit),
        )
        return self.get_sale(sale_id)

    def create_manual_balance(
        self,
        customer_name: str,
        customer_phone: str,
        total_amount: object,
        due_date: object = None,
        notes: Optional[str] = None,
    ) -> Sale:
        customer_name = (customer_name or "").strip()
        if not customer_name:
            raise ValidationError("Customer name is required.")
        total = rules.to_money(total_amount, "Total amount")
        if total <= 0:
            raise ValidationError("Balance amount must be > 0.")

        sale = Sale(
            id=str(uuid.uuid4()),
            customer_name=customer_name,
            customer_phone=(customer_phone or "").strip(),
            total_amount=total,
            amount_paid=rules.ZERO,
            payment_status=rules.UNPAID,
            due_date=rules.due_date(due_date),
            is_manual_balance=True,
            notes=notes or None,
            created_at=rules.timestamp(self.clock),
        )
        with self.uow_factory() as uow:
            self.repo.insert_sale(uow.cur, sale)
        log.info("manual_balance_created sale_id=%s total=%s", sale.id, rules.money_str(total))
        return sale

    def get_sale(self, sale_id: str) -> Sale:
        sale = self.repo.get_sale(sale_id)
        if not sale:
            raise NotFoundError("Sale not found.")
        return sale

    def list_sales(self) -> list[Sale]:
        return self.repo.list_sales()

    def list_sales_between(self, start_iso: str, end_iso: str) -> list[Sale]:
        return self.repo.list_sales_between(start_iso, end_iso)

    def list_unpaid_sales(self) -> list[Sale]:
        return self.repo.list_unpaid_sales()

    def list_sales_by_customer(self, customer_phone: str) -> list[Sale]:
        return self.repo.list_sales_by_phone(customer_phone)

    def find_unpaid_sale_by_phone(self, customer_phone: str) -> Optional[Sale]:
        return self.repo.find_unpaid_sale_by_phone(customer_phone)

    def sale_items_for_sale(self, sale_id: str) -> list[SaleItem]:
        return self.repo.sale_items_for_sale(sale_id)

    def add_sale_item(self, sale_id: str, item: dict) -> SaleItem:
        with self.uow_factory() as uow:
            sale = self._sale(uow.cur, sale_id)
            if sale.is_manual_balance:
                raise InconsistentStateError("Manual balance entries cannot carry line items.")
            color = self._color(uow.cur, item.get("color_id"))
            line = self._build_line(sale_id, color, item)
            self.repo.insert_sale_item(uow.cur, line)
            self._apply_stock(uow.cur, line.color_id, -line.quantity)
            updated = self._recompute(uow.cur, sale_id)
        log.info(
            "sale_item_added sale_id=%s item_id=%s qty=%s total=%s status=%s",
            sale_id, line.id, line.quantity, rules.money_str(updated.total_amount), updated.payment_status,
        )
        return line

    def update_sale_item(
        self,
        item_id: str,
        quantity: int,
        rate: object = None,
        sale_id: Optional[str] = None,
    ) -> SaleItem:
        qty = rules.to_quantity(quantity)
        with self.uow_factory() as uow:
            current = self._sale_item(uow.cur, item_id, sale_id)
            returned = self.repo.returned_quantity_for_sale_item(item_id, cur=uow.cur)
            if qty < returned:
                raise InconsistentStateError(
                    f"Cannot set quantity to {qty}; {returned} already returned against this line."
                )
            new_rate = self._line_rate(rate) if rate is not None else current.rate
            line = SaleItem(
                id=current.id,
                sale_id=current.sale_id,
                color_id=current.color_id,
                quantity=qty,
                rate=new_rate,
                subtotal=rules.subtotal(qty, new_rate),
            )
            self.repo.update_sale_item(uow.cur, item_id, line.quantity, line.rate, line.subtotal)
            stock_delta = current.quantity - qty
            if stock_delta:
                self._apply_stock(uow.cur, current.color_id, stock_delta)
            updated = self._recompute(uow.cur, current.sale_id)
        log.info(
            "sale_item_updated sale_id=%s item_id=%s qty=%s->%s total=%s status=%s",
            current.sale_id, item_id, current.quantity, qty,
            rules.money_str(updated.total_amount), updated.payment_status,
        )
        return line

    def delete_sale_item(self, item_id: str, sale_id: Optional[str] = None) -> Sale:
        with self.uow_factory() as uow:
            item = self._sale_item(uow.cur, item_id, sale_id)
            self._apply_stock(uow.cur, item.color_id, item.quantity)
            self.repo.delete_sale_item(uow.cur, item_id)
            updated = self._recompute(uow.cur, item.sale_id)
        log.info(
            "sale_item_deleted sale_id=%s item_id=%s restored=%s total=%s status=%s",
            item.sale_id, item_id, item.quantity, rules.money_str(updated.total_amount), updated.payment_status,
        )
        return updated

    def delete_sale(self, sale_id: str) -> None:
        with self.uow_factory() as uow:
            sale = self._sale(uow.cur, sale_id)
            for item in sale.items:
                self._apply_stock(uow.cur, item.color_id, item.quantity)
            removed_items = self.repo.delete_sale_items_for_sale(uow.cur, sale_id)
            removed_payments = self.repo.delete_payments_for_sale(uow.cur, sale_id)
            self.repo.delete_sale(uow.cur, sale_id)
        log.info(
            "sale_deleted sale_id=%s items=%s payments=%s", sale_id, removed_items, removed_payments
        )

    def update_sale_due_date(self, sale_id: str, due_date: object, notes=_UNSET) -> Sale:
        due = rules.due_date(due_date)
        set_notes = notes is not _UNSET
        with self.uow_factory() as uow:
            updated = self.repo.update_sale_due_date(
                uow.cur, sale_id, due, (notes or None) if set_notes else None, set_notes
            )
            if not updated:
                raise NotFoundError("Sale not found.")
        return self.get_sale(sale_id)

    def _sale(self, cur: sqlite3.Cursor, sale_id: str) -> Sale:
        sale = self.repo.get_sale(sale_id, cur=cur)
        if not sale:
            raise NotFoundError("Sale not found.")
        return sale

    def _sale_item(self, cur: sqlite3.Cursor, item_id: str, sale_id: Optional[str]) -> SaleItem:
        item = self.repo.get_sale_item(item_id, cur=cur)
        if not item:
            raise NotFoundError("Sale item not found.")
        if sale_id is not None and item.sale_id != sale_id:
            raise InconsistentStateError("Sale item does not belong to this sale.")
        return item

    def _color(self, cur: sqlite3.Cursor, color_id: Optional[str]) -> Color:
        color = self.repo.get_color(str(color_id), cur=cur) if color_id else None
        if not color:
            raise NotFoundError("Color not found.")
        return color

    def _line_rate(self, value: object) -> Decimal:
        rate = rules.to_money(value, "Rate")
        if rate < 0:
            raise ValidationError("Rate must be >= 0.")
        return rate

    def _build_line(self, sale_id: str, color: Color, item: dict) -> SaleItem:
        qty = rules.to_quantity(item.get("quantity"))
        raw_rate = item.get("rate")
        if raw_rate is None:
            raw_rate = color.effective_rate
            if raw_rate is None:
                raise ValidationError("Rate is required.")
        rate = self._line_rate(raw_rate)
        return SaleItem(
            id=str(uuid.uuid4()),
            sale_id=sale_id,
            color_id=color.id,
            quantity=qty,
            rate=rate,
            subtotal=rules.subtotal(qty, rate),
        )

    def _apply_stock(self, cur: sqlite3.Cursor, color_id: str, delta: int) -> int:
        new_stock = self.repo.adjust_color_stock(cur, color_id, delta)
        if new_stock is None:
            raise NotFoundError("Color not found.")
        if delta < 0 and new_stock < 0 and not self.policy.allow_negative_stock:
            raise InsufficientStockError(
                f"Not enough stock for color {color_id}. Available: {new_stock - delta}"
            )
        return new_stock

    def _recompute(self, cur: sqlite3.Cursor, sale_id: str) -> Sale:
        sale = self._sale(cur, sale_id)
        total = sum((i.subtotal for i in sale.items), rules.ZERO)
        status = rules.payment_status(total, sale.amount_paid)
        self.repo.update_sale_money(cur, sale_id, total, sale.amount_paid, status)
        return self._sale(cur, sale_id)

    def _check_overpayment(self, amount_paid: Decimal, total: Decimal) -> None:
        if amount_paid > total and not self.policy.allow_overpayment:
            raise ValidationError("Amount paid cannot exceed the bill total.")
