from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import List, Optional

from domain.errors import Conflict
from domain.models import ROLE_AGENT, ROLE_OWNER, User
from domain.repositories import UserRepository
from infrastructure.db.sqlite_base import SqliteRepository

_COLUMNS = "id, phone, password_hash, role, name, active, created_at"


class SqliteUserRepository(SqliteRepository, UserRepository):
    """
    SQLite-backed implementation of `UserRepository`.

    This repository owns the `users` table and maps rows to the `User`
    domain model. A partial unique index on `role` keeps the owner a
    singleton even under concurrent registration.
    """

    def _ensure_table(self) -> None:
        with self._transaction("creating users table") as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    phone TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL CHECK (role IN ('owner', 'agent')),
                    name TEXT NOT NULL DEFAULT '',
                    active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL
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
            id=int(row[0]),
            phone=row[1],
            password_hash=row[2],
            role=row[3],
            name=row[4],
            active=bool(row[5]),
            created_at=datetime.fromisoformat(row[6]) if row[6] else None,
        )

    def _fetch_one(self, where: str, params: tuple) -> Optional[User]:
        with self._transaction("loading user") as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM users WHERE {where}", params)
            row = cur.fetchone()
            if not row:
                return None
            return self._to_domain(row)

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self._fetch_one("id = ?", (user_id,))

    def get_by_phone(self, phone: str) -> Optional[User]:
        return self._fetch_one("phone = ?", (phone,))

    def get_owner(self) -> Optional[User]:
        return self._fetch_one("role = ?", (ROLE_OWNER,))

    def add_user(self, user: User) -> User:
        created_at = user.created_at or datetime.now()
        with self._transaction("creating user") as cur:
            try:
                cur.execute(
                    """
                    INSERT INTO users (phone, password_hash, role, name, active, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user.phone,
                        user.password_hash,
                        user.role,
                        user.name,
                        int(user.active),
                        created_at.isoformat(sep=" "),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                if "phone" in str(exc):
                    raise Conflict(f"Phone {user.phone} is already registered.") from exc
                raise Conflict("An owner is already registered.") from exc
            user_id = cur.lastrowid

        return User(
            id=user_id,
            phone=user.phone,
            password_hash=user.password_hash,
            role=user.role,
            name=user.name,
            active=user.active,
            created_at=created_at,
        )

    def list_agents(self) -> List[User]:
        with self._transaction("listing agents") as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM users WHERE role = ? ORDER BY name, id",
                (ROLE_AGENT,),
            )
            return [self._to_domain(row) for row in cur.fetchall()]

    def set_active(self, user_id: int, active: bool) -> bool:
        with self._transaction("updating agent") as cur:
            cur.execute(
                "UPDATE users SET active = ? WHERE id = ? AND role = ?",
                (int(active), user_id, ROLE_AGENT),
            )
            return cur.rowcount > 0

    def delete_agent(self, user_id: int) -> Optional[int]:
        with self._transaction("deleting agent", immediate=True) as cur:
            cur.execute(
                "SELECT id FROM users WHERE id = ? AND role = ?",
                (user_id, ROLE_AGENT),
            )
            if cur.fetchone() is None:
                return None

            cur.execute(
                """
                UPDATE cartelas
                SET issued = 0, game_id = NULL
                WHERE game_id IN (SELECT id FROM games WHERE agent_id = ?)
                """,
                (user_id,),
            )
            cur.execute("DELETE FROM games WHERE agent_id = ?", (user_id,))
            removed = cur.rowcount
            cur.execute("DELETE FROM users WHERE id = ?", (user_id,))
            return removed
