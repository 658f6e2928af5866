from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import time
from typing import Callable, Optional

from paintledger.domain import rules
from paintledger.domain.errors import AuthorizationError, ValidationError
from paintledger.repositories.sqlite_repo import PERMISSION_COLUMNS
from paintledger.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork

log = logging.getLogger(__name__)

PERMISSIONS = tuple(PERMISSION_COLUMNS)


class PermissionCache:
    """Holds the last loaded permission map for ``ttl_seconds``.

    One instance per service; writers call ``invalidate()`` after changing
    the settings row.
    """

    def __init__(
        self,
        loader: Callable[[], dict[str, bool]],
        ttl_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.loader = loader
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._value: Optional[dict[str, bool]] = None
        self._loaded_at = 0.0

    def get(self) -> dict[str, bool]:
        now = self.clock()
        if self._value is None or now - self._loaded_at >= self.ttl_seconds:
            self._value = dict(self.loader())
            self._loaded_at = now
        return dict(self._value)

    def invalidate(self) -> None:
        self._value = None


def _hash_pin(pin: str, *, rounds: int = 200_000, salt: str | None = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", pin.encode("utf-8"), bytes.fromhex(salt), rounds).hex()
    return f"pbkdf2_sha256${rounds}${salt}${digest}"


def _verify_pin(stored: str, provided: str) -> bool:
    if not stored.startswith("pbkdf2_sha256$"):
        return False
    try:
        _algo, rounds_s, salt, digest = stored.split("$", 3)
        rounds = int(rounds_s)
        candidate = hashlib.pbkdf2_hmac("sha256", provided.encode("utf-8"), bytes.fromhex(salt), rounds).hex()
    except ValueError:
        return False
    return hmac.compare_digest(candidate, digest)


class PermissionService:
    def __init__(
        self,
        repo,
        clock: rules.Clock | None = None,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        cache: PermissionCache | None = None,
    ):
        self.repo = repo
        self.clock = clock or rules.local_now
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))
        self.cache = cache or PermissionCache(lambda: self.repo.get_settings().permissions)

    def permissions(self) -> dict[str, bool]:
        return self.cache.get()

    def is_allowed(self, permission: str) -> bool:
        return bool(self.cache.get().get(permission, False))

    def require(self, *permissions: str) -> None:
        current = self.cache.get()
        denied = [p for p in permissions if not current.get(p, False)]
        if denied:
            raise AuthorizationError(f"Permission denied: {', '.join(denied)}.")

    def update_permissions(self, changes: dict[str, bool]) -> dict[str, bool]:
        unknown = sorted(set(changes) - set(PERMISSIONS))
        if unknown:
            raise ValidationError(f"Unknown permission: {', '.join(unknown)}.")
        columns = {PERMISSION_COLUMNS[p]: int(bool(v)) for p, v in changes.items()}
        with self.uow_factory() as uow:
            self.repo.update_settings(uow.cur, rules.timestamp(self.clock), **columns)
        self.cache.invalidate()
        log.info("permissions_updated %s", " ".join(f"{p}={bool(v)}" for p, v in sorted(changes.items())))
        return self.permissions()

    def set_audit_pin(self, pin: str) -> None:
        secret = (pin or "").strip()
        if len(secret) < 4 or not secret.isdigit():
            raise ValidationError("Audit PIN must be at least 4 digits.")
        with self.uow_factory() as uow:
            self.repo.update_settings(uow.cur, rules.timestamp(self.clock), audit_pin_hash=_hash_pin(secret))
        log.info("audit_pin_set")

    def verify_audit_pin(self, pin: str) -> None:
        stored = self.repo.get_settings().audit_pin_hash
        if not stored:
            raise AuthorizationError("Audit PIN is not configured.")
        if not _verify_pin(stored, (pin or "").strip()):
            log.warning("audit_pin_rejected")
            raise AuthorizationError("Invalid audit PIN.")
