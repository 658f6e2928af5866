from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import os
import sys

from paintledger.domain.errors import ValidationError


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class LedgerPolicy:
    allow_negative_stock: bool = True
    allow_overpayment: bool = True
    return_edit_window_hours: int = 12
    low_stock_threshold: int = 10
    # IANA zone for "today" and "this month"; None uses the clock's local offset
    timezone: Optional[str] = None

    @classmethod
    def from_env(cls) -> "LedgerPolicy":
        default = cls()
        return cls(
            allow_negative_stock=_env_flag("PAINTLEDGER_ALLOW_NEGATIVE_STOCK", default.allow_negative_stock),
            allow_overpayment=_env_flag("PAINTLEDGER_ALLOW_OVERPAYMENT", default.allow_overpayment),
            return_edit_window_hours=_env_int(
                "PAINTLEDGER_RETURN_EDIT_WINDOW_HOURS", default.return_edit_window_hours
            ),
            low_stock_threshold=_env_int("PAINTLEDGER_LOW_STOCK_THRESHOLD", default.low_stock_threshold),
            timezone=os.environ.get("PAINTLEDGER_TIMEZONE", "").strip() or default.timezone,
        )


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ValidationError(f"{name} must be a boolean flag, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValidationError(f"{name} must be a whole number, got {raw!r}") from e
    if value < 0:
        raise ValidationError(f"{name} must be >= 0, got {value}")
    return value


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "PaintLedger", db_path: Optional[Path] = None) -> AppPaths:
    """Per-user data directory, or the directory of an explicit `db_path`."""
    if db_path is not None:
        base = db_path.parent
        logs = base / "logs"
        logs.mkdir(parents=True, exist_ok=True)
        return AppPaths(base_dir=base, db_path=db_path, logs_dir=logs)

    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    db = base / "ledger.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs)
