from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from paintledger.config import LedgerPolicy
from paintledger.domain import rules
from paintledger.repositories.sqlite_repo import SqliteRepository
from paintledger.repositories.unit_of_work import RepositoryUnitOfWork
from paintledger.services.catalog_service import CatalogService
from paintledger.services.payment_service import PaymentService
from paintledger.services.permission_service import PermissionService
from paintledger.services.reporting_service import ReportingService
from paintledger.services.returns_service import ReturnsService
from paintledger.services.sales_service import SalesService
from paintledger.services.stock_history_service import StockHistoryService


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    policy: LedgerPolicy
    catalog: CatalogService
    sales: SalesService
    payments: PaymentService
    returns: ReturnsService
    stock_history: StockHistoryService
    reporting: ReportingService
    permissions: PermissionService


def build_container(
    db_path: Path | str,
    policy: LedgerPolicy | None = None,
    clock: rules.Clock | None = None,
) -> AppContainer:
    repo = SqliteRepository(db_path)
    repo.init_db()

    policy = policy or LedgerPolicy()
    clock = clock or rules.local_now

    def uow_factory() -> RepositoryUnitOfWork:
        return RepositoryUnitOfWork(repo)

    return AppContainer(
        repo=repo,
        policy=policy,
        catalog=CatalogService(repo, policy, clock, uow_factory),
        sales=SalesService(repo, policy, clock, uow_factory),
        payments=PaymentService(repo, policy, clock, uow_factory),
        returns=ReturnsService(repo, policy, clock, uow_factory),
        stock_history=StockHistoryService(repo, policy, clock, uow_factory),
        reporting=ReportingService(repo, policy, clock),
        permissions=PermissionService(repo, clock, uow_factory),
    )
