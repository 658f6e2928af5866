from .models import (
    Color,
    EditWindow,
    StoreSettings,
    PaymentHistory,
    Product,
    Return,
    ReturnItem,
    Sale,
    SaleItem,
    StockInHistory,
    Variant,
)
from .errors import (
    AppError,
    AuthorizationError,
    InconsistentStateError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)

__all__ = [
    "Product",
    "Variant",
    "Color",
    "Sale",
    "SaleItem",
    "PaymentHistory",
    "Return",
    "ReturnItem",
    "StockInHistory",
    "EditWindow",
    "StoreSettings",
    "AppError",
    "ValidationError",
    "NotFoundError",
    "InsufficientStockError",
    "InconsistentStateError",
    "AuthorizationError",
]
