from __future__ import annotations

import logging
import sqlite3
import uuid
from typing import Callable, Iterable, Optional

from paintledger.config import LedgerPolicy
from paintledger.domain import rules
from paintledger.domain.errors import InconsistentStateError, NotFoundError, ValidationError
from paintledger.domain.models import EditWindow, Return, ReturnItem
from paintledger.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork

log = logging.getLogger("paintledger.stock")

_UNSET = object()


class ReturnsService:
    """Refund records and the stock they put back on the shelf.

    A return never edits the originating sale; sales and returns only meet
    in reporting.
    """

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

    def create_return(self, header: dict, items: Iterable[dict]) -> Return:
        """
        header: {sale_id?, customer_name, customer_phone, return_type, reason?, status?}
        items: [{color_id, quantity, rate, sale_item_id?, stock_restored?}]
        """
        items = list(items)
        if not items:
            raise ValidationError("Return must contain at least one item.")
        return_type = (header.get("return_type") or "item").strip()
        if return_type not in rules.RETURN_TYPES:
            raise ValidationError(f"Return type must be one of {', '.join(rules.RETURN_TYPES)}.")
        customer_name = (header.get("customer_name") or "").strip()
        if not customer_name:
            raise ValidationError("Customer name is required.")
        sale_id = header.get("sale_id") or None

        return_id = str(uuid.uuid4())
        with self.uow_factory() as uow:
            if sale_id is not None and not self.repo.get_sale(sale_id, cur=uow.cur):
                raise NotFoundError("Sale not found.")

            pending: dict[str, int] = {}
            lines = [self._build_line(uow.cur, return_id, sale_id, it, pending) for it in items]
            total_refund = sum((line.subtotal for line in lines), rules.ZERO)
            ret = Return(
                id=return_id,
                sale_id=sale_id,
                customer_name=customer_name,
                customer_phone=(header.get("customer_phone") or "").strip(),
                return_type=return_type,
                total_refund=total_refund,
                reason=header.get("reason") or None,
                status=(header.get("status") or "completed").strip(),
                created_at=rules.timestamp(self.clock),
            )
            self.repo.insert_return(uow.cur, ret)
            restored = 0
            for line in lines:
                self.repo.insert_return_item(uow.cur, line)
                if line.stock_restored:
                    self.repo.adjust_color_stock(uow.cur, line.color_id, line.quantity)
                    restored += line.quantity

        log.info(
            "return_created return_id=%s sale_id=%s type=%s items=%s refund=%s restocked=%s",
            return_id, sale_id, return_type, len(lines), rules.money_str(total_refund), restored,
        )
        return self.get_return(return_id)

    def create_quick_return(
        self,
        customer_name: str,
        customer_phone: str,
        color_id: str,
        quantity: int,
        rate: object,
        reason: Optional[str] = None,
        restore_stock: bool = True,
    ) -> Return:
        return self.create_return(
            {
                "customer_name": customer_name,
                "customer_phone": customer_phone,
                "return_type": "item",
                "reason": reason or "Quick return",
            },
            [
                {
                    "color_id": color_id,
                    "quantity": quantity,
                    "rate": rate,
                    "stock_restored": restore_stock,
                }
            ],
        )

    def get_return(self, return_id: str) -> Return:
        ret = self.repo.get_return(return_id)
        if not ret:
            raise NotFoundError("Return not found.")
        return ret

    def list_returns(self) -> list[Return]:
        return self.repo.list_returns()

    def list_returns_by_customer(self, customer_phone: str) -> list[Return]:
        return self.repo.list_returns_by_phone(customer_phone)

    def can_edit(self, return_id: str) -> EditWindow:
        return rules.can_edit_return(
            self.get_return(return_id), self.clock(), self.policy.return_edit_window_hours
        )

    def update_return(self, return_id: str, reason=_UNSET, status: Optional[str] = None) -> Return:
        with self.uow_factory() as uow:
            ret = self.repo.get_return(return_id, cur=uow.cur)
            if not ret:
                raise NotFoundError("Return not found.")
            window = rules.can_edit_return(ret, self.clock(), self.policy.return_edit_window_hours)
            if not window.allowed:
                raise ValidationError(
                    f"Returns can only be edited within {self.policy.return_edit_window_hours} hours of creation."
                )
            self.repo.update_return(
                uow.cur,
                return_id,
                ret.reason if reason is _UNSET else (reason or None),
                (status or ret.status).strip(),
            )
        log.info("return_updated return_id=%s", return_id)
        return self.get_return(return_id)

    def _build_line(
        self,
        cur: sqlite3.Cursor,
        return_id: str,
        sale_id: Optional[str],
        item: dict,
        pending: dict[str, int],
    ) -> ReturnItem:
        color_id = item.get("color_id")
        if not color_id or not self.repo.get_color(str(color_id), cur=cur):
            raise NotFoundError("Color not found.")
        qty = rules.to_quantity(item.get("quantity"))
        rate = rules.to_money(item.get("rate"), "Rate")
        if rate < 0:
            raise ValidationError("Rate must be >= 0.")

        sale_item_id = item.get("sale_item_id") or None
        if sale_item_id is not None:
            sold = self.repo.get_sale_item(sale_item_id, cur=cur)
            if not sold:
                raise NotFoundError("Sale item not found.")
            if sold.sale_id != sale_id:
                raise InconsistentStateError("Sale item does not belong to this sale.")
            if sold.color_id != color_id:
                raise InconsistentStateError("Returned color does not match the sale item.")
            already = self.repo.returned_quantity_for_sale_item(sale_item_id, cur=cur) + pending.get(sale_item_id, 0)
            if already + qty > sold.quantity:
                raise InconsistentStateError(
                    f"Cannot return {qty}; only {sold.quantity - already} left on this sale item."
                )
            pending[sale_item_id] = pending.get(sale_item_id, 0) + qty

        return ReturnItem(
            id=str(uuid.uuid4()),
            return_id=return_id,
            color_id=str(color_id),
            sale_item_id=sale_item_id,
            quantity=qty,
            rate=rate,
            subtotal=rules.subtotal(qty, rate),
            stock_restored=bool(item.get("stock_restored", True)),
        )
