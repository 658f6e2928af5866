from __future__ import annotations

import logging
import uuid
from typing import Callable, Optional

from paintledger.config import LedgerPolicy
from paintledger.domain import rules
from paintledger.domain.errors import NotFoundError, ValidationError
from paintledger.domain.models import PaymentHistory, Sale
from paintledger.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork

log = logging.getLogger("paintledger.payments")

_UNSET = object()


class PaymentService:
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

    def record_payment(
        self,
        sale_id: str,
        amount: object,
        payment_method: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Sale:
        value = rules.to_money(amount, "Payment amount")
        if value <= 0:
            raise ValidationError("Payment amount must be > 0.")

        with self.uow_factory() as uow:
            sale = self.repo.get_sale(sale_id, cur=uow.cur)
            if not sale:
                raise NotFoundError("Sale not found.")
            previous_balance = sale.total_amount - sale.amount_paid
            new_paid = sale.amount_paid + value
            if new_paid > sale.total_amount and not self.policy.allow_overpayment:
                raise ValidationError(
                    f"Payment exceeds outstanding balance of {rules.money_str(previous_balance)}."
                )
            new_balance = sale.total_amount - new_paid
            status = rules.payment_status(sale.total_amount, new_paid)
            self.repo.update_sale_money(uow.cur, sale_id, sale.total_amount, new_paid, status)
            self.repo.insert_payment(
                uow.cur,
                PaymentHistory(
                    id=str(uuid.uuid4()),
                    sale_id=sale_id,
                    customer_phone=sale.customer_phone,
                    amount=value,
                    previous_balance=previous_balance,
                    new_balance=new_balance,
                    payment_method=(payment_method or "cash").strip() or "cash",
                    notes=notes or None,
                    created_at=rules.timestamp(self.clock),
                ),
            )
            updated = self.repo.get_sale(sale_id, cur=uow.cur)

        log.info(
            "payment_recorded sale_id=%s amount=%s balance=%s->%s status=%s",
            sale_id, rules.money_str(value), rules.money_str(previous_balance),
            rules.money_str(new_balance), status,
        )
        return updated

    def update_payment_history(
        self,
        payment_id: str,
        amount: object = None,
        payment_method: Optional[str] = None,
        notes=_UNSET,
    ) -> PaymentHistory:
        """Edit a recorded payment and shift the parent sale's paid amount by the difference.

        Stored previous/new balance snapshots keep their values from the time
        the payment was recorded.
        """
        new_amount = None
        if amount is not None:
            new_amount = rules.to_money(amount, "Payment amount")
            if new_amount <= 0:
                raise ValidationError("Payment amount must be > 0.")

        with self.uow_factory() as uow:
            payment = self.repo.get_payment(payment_id, cur=uow.cur)
            if not payment:
                raise NotFoundError("Payment record not found.")
            if new_amount is None:
                new_amount = payment.amount
            diff = new_amount - payment.amount

            if diff:
                sale = self.repo.get_sale(payment.sale_id, cur=uow.cur)
                if not sale:
                    raise NotFoundError("Sale not found.")
                new_paid = max(rules.ZERO, sale.amount_paid + diff)
                if diff > 0 and new_paid > sale.total_amount and not self.policy.allow_overpayment:
                    raise ValidationError("Payment exceeds outstanding balance.")
                self.repo.update_sale_money(
                    uow.cur,
                    sale.id,
                    sale.total_amount,
                    new_paid,
                    rules.payment_status(sale.total_amount, new_paid),
                )

            self.repo.update_payment(
                uow.cur,
                payment_id,
                new_amount,
                (payment_method or payment.payment_method).strip() or payment.payment_method,
                payment.notes if notes is _UNSET else (notes or None),
            )
            updated = self.repo.get_payment(payment_id, cur=uow.cur)

        log.info(
            "payment_updated payment_id=%s sale_id=%s amount=%s->%s",
            payment_id, payment.sale_id, rules.money_str(payment.amount), rules.money_str(new_amount),
        )
        return updated

    def delete_payment_history(self, payment_id: str) -> bool:
        with self.uow_factory() as uow:
            payment = self.repo.get_payment(payment_id, cur=uow.cur)
            if not payment:
                return False
            sale = self.repo.get_sale(payment.sale_id, cur=uow.cur)
            if sale:
                new_paid = max(rules.ZERO, sale.amount_paid - payment.amount)
                self.repo.update_sale_money(
                    uow.cur,
                    sale.id,
                    sale.total_amount,
                    new_paid,
                    rules.payment_status(sale.total_amount, new_paid),
                )
            self.repo.delete_payment(uow.cur, payment_id)

        log.info(
            "payment_deleted payment_id=%s sale_id=%s amount=%s",
            payment_id, payment.sale_id, rules.money_str(payment.amount),
        )
        return True

    def list_payments_for_sale(self, sale_id: str) -> list[PaymentHistory]:
        return self.repo.list_payments_for_sale(sale_id)

    def list_payments_for_customer(self, customer_phone: str) -> list[PaymentHistory]:
        return self.repo.list_payments_for_customer(customer_phone)

    def list_all_payments(self) -> list[PaymentHistory]:
        return self.repo.list_all_payments()
