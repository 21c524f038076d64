from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator

from domain.errors import StorageError


class SqliteRepository(ABC):
    """
    Shared plumbing for the SQLite-backed repositories.

    Each call opens its own connection to `db_path`. `_transaction` yields
    a cursor inside one transaction, commits on success, rolls back on any
    exception and reports driver failures as `StorageError`. Subclasses
    create their table in `_ensure_table`, which runs on construction.
    """

    timeout = 10.0

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._ensure_table()

    @abstractmethod
    def _ensure_table(self) -> None:
        ...

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=self.timeout)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self, action: str, immediate: bool = False) -> Iterator[sqlite3.Cursor]:
        """
        `immediate=True` takes the write lock up front, so a
        check-then-update inside the block cannot interleave with another
        writer.
        """

        try:
            conn = self._get_connection()
        except sqlite3.Error as exc:
            raise StorageError(f"{action} failed: {exc}") from exc

        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn.cursor()
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(f"{action} failed: {exc}") from exc
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()
