from __future__ import annotations

import json
import sqlite3
from typing import List, Optional, Sequence

from domain.errors import Conflict, NotFound
from domain.models import Cartela
from domain.repositories import CartelaRepository
from infrastructure.db.sqlite_base import SqliteRepository

_COLUMNS = "id, grid, issued, game_id"


def reserve_cartelas(cur: sqlite3.Cursor, cartela_ids: Sequence[int], game_id: int) -> None:
    """
    Issue `cartela_ids` to `game_id` inside the caller's transaction.

    The conditional update only touches unissued rows; a short row count
    means some card is missing or already held, and the caller's
    transaction is expected to roll back on the raised error.
    """

    ids = list(dict.fromkeys(cartela_ids))
    if not ids:
        return

    placeholders = ", ".join("?" for _ in ids)
    cur.execute(
        f"""
        UPDATE cartelas
        SET issued = 1, game_id = ?
        WHERE id IN ({placeholders}) AND issued = 0
        """,
        (game_id, *ids),
    )
    if cur.rowcount == len(ids):
        return

    cur.execute(f"SELECT id, game_id FROM cartelas WHERE id IN ({placeholders})", ids)
    holders = dict(cur.fetchall())
    missing = [cartela_id for cartela_id in ids if cartela_id not in holders]
    if missing:
        raise NotFound(f"Unknown cartela(s): {', '.join(map(str, missing))}")

    taken = [cartela_id for cartela_id in ids if holders[cartela_id] != game_id]
    raise Conflict(f"Cartela(s) already issued: {', '.join(map(str, taken))}")


def release_cartelas(cur: sqlite3.Cursor, game_id: int) -> int:
    cur.execute(
        "UPDATE cartelas SET issued = 0, game_id = NULL WHERE game_id = ?",
        (game_id,),
    )
    return cur.rowcount


class SqliteCartelaRepository(SqliteRepository, CartelaRepository):
    """
    SQLite-backed implementation of `CartelaRepository`.

    Owns the `cartelas` table. `issued` and `game_id` are kept in step by
    a CHECK constraint: a card is issued exactly when it points at a game.
    `game_id` references `games`, so the games table must exist first and
    a game cannot be deleted while it still holds cards.
    """

    def _ensure_table(self) -> None:
        with self._transaction("creating cartelas table") as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS cartelas (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    grid TEXT NOT NULL
                        CHECK (json_valid(grid) AND json_type(grid) = 'array'),
                    issued INTEGER NOT NULL DEFAULT 0,
                    game_id INTEGER REFERENCES games (id),
                    CHECK ((issued = 1) = (game_id IS NOT NULL))
                )
                """
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS cartelas_game_id ON cartelas (game_id)"
            )

    @staticmethod
    def _to_domain(row: tuple) -> Cartela:
        return Cartela(
            id=int(row[0]),
            grid=json.loads(row[1]),
            issued=bool(row[2]),
            game_id=row[3],
        )

    def add_cartela(self, grid: List[List[Optional[int]]]) -> Cartela:
        with self._transaction("creating cartela") as cur:
            cur.execute("INSERT INTO cartelas (grid) VALUES (?)", (json.dumps(grid),))
            return Cartela(id=cur.lastrowid, grid=grid)

    def list_available(self) -> List[Cartela]:
        with self._transaction("listing cartelas") as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM cartelas WHERE issued = 0 ORDER BY id")
            return [self._to_domain(row) for row in cur.fetchall()]

    def get_many(self, cartela_ids: Sequence[int]) -> List[Cartela]:
        ids = list(dict.fromkeys(cartela_ids))
        if not ids:
            return []

        placeholders = ", ".join("?" for _ in ids)
        with self._transaction("loading cartelas") as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM cartelas WHERE id IN ({placeholders}) ORDER BY id",
                ids,
            )
            return [self._to_domain(row) for row in cur.fetchall()]

    def get_for_game(self, game_id: int) -> List[Cartela]:
        with self._transaction("loading game cartelas") as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM cartelas WHERE game_id = ? ORDER BY id",
                (game_id,),
            )
            return [self._to_domain(row) for row in cur.fetchall()]

    def reserve(self, cartela_ids: Sequence[int], game_id: int) -> None:
        with self._transaction("reserving cartelas", immediate=True) as cur:
            reserve_cartelas(cur, cartela_ids, game_id)

    def release(self, game_id: int) -> int:
        with self._transaction("releasing cartelas") as cur:
            return release_cartelas(cur, game_id)
