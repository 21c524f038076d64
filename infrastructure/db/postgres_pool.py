from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

import psycopg2
from psycopg2.pool import ThreadedConnectionPool

from domain.errors import StorageError

logger = logging.getLogger(__name__)


class PostgresPool:
    """
    Process-wide pool of Postgres connections shared by the repositories.

    Created once at startup from the configured DSN and closed on
    shutdown. `transaction` borrows a connection for one unit of work.
    """

    def __init__(self, dsn: str, minconn: int = 1, maxconn: int = 10) -> None:
        try:
            self._pool = ThreadedConnectionPool(minconn, maxconn, dsn)
        except psycopg2.Error as exc:
            raise StorageError(f"connecting to database failed: {exc}") from exc
        logger.info(f"Postgres pool ready ({minconn}-{maxconn} connections)")

    @contextmanager
    def transaction(self, action: str) -> Iterator["psycopg2.extensions.cursor"]:
        try:
            conn = self._pool.getconn()
        except psycopg2.Error as exc:
            raise StorageError(f"{action} failed: {exc}") from exc

        try:
            with conn.cursor() as cur:
                yield cur
            conn.commit()
        except psycopg2.Error as exc:
            conn.rollback()
            raise StorageError(f"{action} failed: {exc}") from exc
        except BaseException:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    def close(self) -> None:
        self._pool.closeall()
