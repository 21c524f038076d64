from __future__ import annotations

from typing import List, Optional, Sequence

from psycopg2.extras import Json

from domain.errors import Conflict, NotFound
from domain.models import Cartela
from domain.repositories import CartelaRepository
from infrastructure.db.postgres_pool import PostgresPool

_COLUMNS = "id, grid, issued, game_id"


def reserve_cartelas(cur, cartela_ids: Sequence[int], game_id: int) -> None:
    """
    Issue `cartela_ids` to `game_id` inside the caller's transaction.

    Row locks taken by the conditional update make a concurrent
    reservation of the same card wait and then skip it, so the short row
    count is seen by exactly one of two racing transactions.
    """

    ids = list(dict.fromkeys(cartela_ids))
    if not ids:
        return

    cur.execute(
        """
        UPDATE cartelas
        SET issued = TRUE, game_id = %s
        WHERE id = ANY(%s) AND issued = FALSE
        """,
        (game_id, ids),
    )
    if cur.rowcount == len(ids):
        return

    cur.execute("SELECT id, game_id FROM cartelas WHERE id = ANY(%s)", (ids,))
    holders = dict(cur.fetchall())
    missing = [cartela_id for cartela_id in ids if cartela_id not in holders]
    if missing:
        raise NotFound(f"Unknown cartela(s): {', '.join(map(str, missing))}")

    taken = [cartela_id for cartela_id in ids if holders[cartela_id] != game_id]
    raise Conflict(f"Cartela(s) already issued: {', '.join(map(str, taken))}")


def release_cartelas(cur, game_id: int) -> int:
    cur.execute(
        "UPDATE cartelas SET issued = FALSE, game_id = NULL WHERE game_id = %s",
        (game_id,),
    )
    return cur.rowcount


class PostgresCartelaRepository(CartelaRepository):
    """
    Postgres-backed implementation of `CartelaRepository`.

    Grids are stored as JSONB arrays. `game_id` references `games`, which
    must be created first.
    """

    def __init__(self, pool: PostgresPool) -> None:
        self._pool = pool
        self._ensure_table()

    def _ensure_table(self) -> None:
        with self._pool.transaction("creating cartelas table") as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS cartelas (
                    id SERIAL PRIMARY KEY,
                    grid JSONB NOT NULL CHECK (jsonb_typeof(grid) = 'array'),
                    issued BOOLEAN NOT NULL DEFAULT FALSE,
                    game_id INTEGER REFERENCES games (id),
                    CHECK (issued = (game_id IS NOT NULL))
                )
                """
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS cartelas_game_id ON cartelas (game_id)"
            )

    @staticmethod
    def _to_domain(row: tuple) -> Cartela:
        return Cartela(id=row[0], grid=row[1], issued=row[2], game_id=row[3])

    def add_cartela(self, grid: List[List[Optional[int]]]) -> Cartela:
        with self._pool.transaction("creating cartela") as cur:
            cur.execute(
                f"INSERT INTO cartelas (grid) VALUES (%s) RETURNING {_COLUMNS}",
                (Json(grid),),
            )
            return self._to_domain(cur.fetchone())

    def list_available(self) -> List[Cartela]:
        with self._pool.transaction("listing cartelas") as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM cartelas WHERE issued = FALSE ORDER BY id"
            )
            return [self._to_domain(row) for row in cur.fetchall()]

    def get_many(self, cartela_ids: Sequence[int]) -> List[Cartela]:
        ids = list(dict.fromkeys(cartela_ids))
        if not ids:
            return []

        with self._pool.transaction("loading cartelas") as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM cartelas WHERE id = ANY(%s) ORDER BY id",
                (ids,),
            )
            return [self._to_domain(row) for row in cur.fetchall()]

    def get_for_game(self, game_id: int) -> List[Cartela]:
        with self._pool.transaction("loading game cartelas") as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM cartelas WHERE game_id = %s ORDER BY id",
                (game_id,),
            )
            return [self._to_domain(row) for row in cur.fetchall()]

    def reserve(self, cartela_ids: Sequence[int], game_id: int) -> None:
        with self._pool.transaction("reserving cartelas") as cur:
            reserve_cartelas(cur, cartela_ids, game_id)

    def release(self, game_id: int) -> int:
        with self._pool.transaction("releasing cartelas") as cur:
            return release_cartelas(cur, game_id)
