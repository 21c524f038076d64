from __future__ import annotations

from typing import List, Optional

from psycopg2.errors import UniqueViolation

from domain.errors import Conflict
from domain.models import ROLE_AGENT, ROLE_OWNER, User
from domain.repositories import UserRepository
from infrastructure.db.postgres_pool import PostgresPool

_COLUMNS = "id, phone, password_hash, role, name, active, created_at"


class PostgresUserRepository(UserRepository):
    """
    Postgres-backed implementation of `UserRepository`.

    Owns the `users` table. The single-owner rule is backed by a partial
    unique index so that two concurrent bootstraps cannot both insert.
    """

    def __init__(self, pool: PostgresPool) -> None:
        self._pool = pool
        self._ensure_table()

    def _ensure_table(self) -> None:
        with self._pool.transaction("creating users table") as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id SERIAL PRIMARY KEY,
                    phone TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL CHECK (role IN ('owner', 'agent')),
                    name TEXT NOT NULL DEFAULT '',
                    active BOOLEAN NOT NULL DEFAULT TRUE,
                    created_at TIMESTAMP NOT NULL DEFAULT NOW()
                )
                """
            )
            cur.execute(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS users_single_owner
                ON users (role) WHERE role = 'owner'
                """
            )

    @staticmethod
    def _to_domain(row: tuple) -> User:
        return User(
            id=row[0],
            phone=row[1],
            password_hash=row[2],
            role=row[3],
            name=row[4],
            active=row[5],
            created_at=row[6],
        )

    def _fetch_one(self, where: str, params: tuple) -> Optional[User]:
        with self._pool.transaction("loading user") as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM users WHERE {where}", params)
            row = cur.fetchone()
            if not row:
                return None
            return self._to_domain(row)

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self._fetch_one("id = %s", (user_id,))

    def get_by_phone(self, phone: str) -> Optional[User]:
        return self._fetch_one("phone = %s", (phone,))

    def get_owner(self) -> Optional[User]:
        return self._fetch_one("role = %s", (ROLE_OWNER,))

    def add_user(self, user: User) -> User:
        with self._pool.transaction("creating user") as cur:
            try:
                cur.execute(
                    f"""
                    INSERT INTO users (phone, password_hash, role, name, active)
                    VALUES (%s, %s, %s, %s, %s)
                    RETURNING {_COLUMNS}
                    """,
                    (user.phone, user.password_hash, user.role, user.name, user.active),
                )
            except UniqueViolation as exc:
                if exc.diag.constraint_name == "users_single_owner":
                    raise Conflict("An owner is already registered.") from exc
                raise Conflict(f"Phone {user.phone} is already registered.") from exc
            return self._to_domain(cur.fetchone())

    def list_agents(self) -> List[User]:
        with self._pool.transaction("listing agents") as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM users WHERE role = %s ORDER BY name, id",
                (ROLE_AGENT,),
            )
            return [self._to_domain(row) for row in cur.fetchall()]

    def set_active(self, user_id: int, active: bool) -> bool:
        with self._pool.transaction("updating agent") as cur:
            cur.execute(
                "UPDATE users SET active = %s WHERE id = %s AND role = %s",
                (active, user_id, ROLE_AGENT),
            )
            return cur.rowcount > 0

    def delete_agent(self, user_id: int) -> Optional[int]:
        with self._pool.transaction("deleting agent") as cur:
            cur.execute(
                "SELECT id FROM users WHERE id = %s AND role = %s FOR UPDATE",
                (user_id, ROLE_AGENT),
            )
            if cur.fetchone() is None:
                return None

            cur.execute(
                """
                UPDATE cartelas
                SET issued = FALSE, game_id = NULL
                WHERE game_id IN (SELECT id FROM games WHERE agent_id = %s)
                """,
                (user_id,),
            )
            cur.execute("DELETE FROM games WHERE agent_id = %s", (user_id,))
            removed = cur.rowcount
            cur.execute("DELETE FROM users WHERE id = %s", (user_id,))
            return removed
