from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class Product:
    id: str
    company: str
    product_name: str
    created_at: str


@dataclass(frozen=True)
class Variant:
    id: str
    product_id: str
    packing_size: str
    rate: Decimal
    created_at: str
    product: Optional[Product] = None


@dataclass(frozen=True)
class Color:
    id: str
    variant_id: str
    color_name: str
    color_code: str
    stock_quantity: int
    rate_override: Optional[Decimal]
    created_at: str
    variant: Optional[Variant] = None

    @property
    def effective_rate(self) -> Optional[Decimal]:
        if self.rate_override is not None:
            return self.rate_override
        return self.variant.rate if self.variant else None


@dataclass(frozen=True)
class SaleItem:
    id: str
    sale_id: str
    color_id: str
    quantity: int
    rate: Decimal
    subtotal: Decimal


@dataclass(frozen=True)
class Sale:
    id: str
    customer_name: str
    customer_phone: str
    total_amount: Decimal
    amount_paid: Decimal
    payment_status: str
    due_date: Optional[str]
    is_manual_balance: bool
    notes: Optional[str]
    created_at: str
    items: tuple[SaleItem, ...] = ()

    @property
    def outstanding(self) -> Decimal:
        return self.total_amount - self.amount_paid


@dataclass(frozen=True)
class PaymentHistory:
    id: str
    sale_id: str
    customer_phone: str
    amount: Decimal
    previous_balance: Decimal
    new_balance: Decimal
    payment_method: str
    notes: Optional[str]
    created_at: str


@dataclass(frozen=True)
class ReturnItem:
    id: str
    return_id: str
    color_id: str
    sale_item_id: Optional[str]
    quantity: int
    rate: Decimal
    subtotal: Decimal
    stock_restored: bool


@dataclass(frozen=True)
class Return:
    id: str
    sale_id: Optional[str]
    customer_name: str
    customer_phone: str
    return_type: str
    total_refund: Decimal
    reason: Optional[str]
    status: str
    created_at: str
    items: tuple[ReturnItem, ...] = ()


@dataclass(frozen=True)
class StockInHistory:
    id: str
    color_id: str
    quantity: int
    previous_stock: int
    new_stock: int
    notes: Optional[str]
    stock_in_date: str
    created_at: str
    color: Optional[Color] = None


@dataclass(frozen=True)
class EditWindow:
    allowed: bool
    hours_remaining: float


@dataclass(frozen=True)
class StoreSettings:
    store_name: str
    permissions: dict[str, bool]
    audit_pin_hash: Optional[str]
    updated_at: str
