from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Optional, Sequence

from paintledger.application.container import AppContainer, build_container
from paintledger.config import LedgerPolicy, get_app_paths
from paintledger.domain import rules
from paintledger.domain.errors import AppError, ValidationError
from paintledger.logging_config import setup_logging

log = logging.getLogger(__name__)


def _json_default(value):
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "__dataclass_fields__"):
        return {k: getattr(value, k) for k in value.__dataclass_fields__}
    raise TypeError(f"Cannot serialize {type(value).__name__}")


def _parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(f"Expected a date as YYYY-MM-DD, got {value!r}") from e


def _cmd_init(c: AppContainer, args) -> int:
    print(f"Database ready at {c.repo.db_path} (schema v{c.repo.schema_version()})")
    return 0


def _cmd_dashboard(c: AppContainer, args) -> int:
    stats = c.reporting.dashboard_stats()
    print(json.dumps(stats, default=_json_default, indent=2))
    return 0


def _cmd_unpaid(c: AppContainer, args) -> int:
    for s in c.sales.list_unpaid_sales():
        print(f"{s.created_at[:10]}  {s.customer_name:<24} {s.customer_phone:<14} "
              f"total={s.total_amount} paid={s.amount_paid} due={s.outstanding} [{s.payment_status}]")
    return 0


def _cmd_export_sales(c: AppContainer, args) -> int:
    now = rules.store_now(c.reporting.clock, c.policy.timezone)
    tz = rules.zone(c.policy.timezone) if c.policy.timezone else None
    first = _parse_day(args.start) if args.start else now.date().replace(day=1)
    last = _parse_day(args.end) if args.end else now.date()
    start = rules.day_start_iso(first, tz)
    end = rules.day_start_iso(last + timedelta(days=1), tz)
    c.reporting.export_sales_report_excel(args.path, start, end)
    print(f"Sales report written to {args.path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="paintledger", description="Paint store ledger")
    parser.add_argument("--db", help="SQLite database path (defaults to the per-user app directory)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="create or migrate the database").set_defaults(func=_cmd_init)
    sub.add_parser("dashboard", help="print dashboard stats as JSON").set_defaults(func=_cmd_dashboard)
    sub.add_parser("unpaid", help="list bills with an outstanding balance").set_defaults(func=_cmd_unpaid)

    export = sub.add_parser("export-sales", help="export a sales and payments report to Excel")
    export.add_argument("path")
    export.add_argument("--start", help="first day, YYYY-MM-DD (default: first of this month)")
    export.add_argument("--end", help="last day inclusive, YYYY-MM-DD (default: today)")
    export.set_defaults(func=_cmd_export_sales)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    paths = get_app_paths(db_path=Path(args.db) if args.db else None)
    setup_logging(paths.logs_dir, level=logging.INFO)

    try:
        container = build_container(paths.db_path, policy=LedgerPolicy.from_env())
        return args.func(container, args)
    except AppError as e:
        log.error("command_failed command=%s error=%s", args.command, e)
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
