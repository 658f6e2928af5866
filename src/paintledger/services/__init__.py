from .catalog_service import CatalogService
from .sales_service import SalesService
from .payment_service import PaymentService
from .returns_service import ReturnsService
from .stock_history_service import StockHistoryService
from .reporting_service import ReportingService
from .permission_service import PermissionCache, PermissionService

__all__ = [
    "CatalogService",
    "SalesService",
    "PaymentService",
    "ReturnsService",
    "StockHistoryService",
    "ReportingService",
    "PermissionCache",
    "PermissionService",
]
