from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import Optional, Protocol


class UnitOfWork(Protocol):
    cur: sqlite3.Cursor

    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...


@dataclass
class RepositoryUnitOfWork:
    """One SQLite transaction spanning a compound ledger mutation.

    Services read and write through ``cur`` while the block is open. The
    transaction commits when the block exits cleanly and rolls back on any
    exception, so stock, line items and sale money move together or not at all.
    """

    repo: object
    cur: Optional[sqlite3.Cursor] = field(default=None, init=False)
    _conn: Optional[sqlite3.Connection] = field(default=None, init=False, repr=False)

    def __enter__(self) -> "RepositoryUnitOfWork":
        self._conn = self.repo._conn()
        self.cur = self._conn.cursor()
        # write lock is taken at BEGIN, not at the first UPDATE
        self.cur.execute("BEGIN IMMEDIATE")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        conn = self._conn
        try:
            if exc_type is None:
                conn.commit()
            else:
                conn.rollback()
        finally:
            conn.close()
            self._conn = None
            self.cur = None
