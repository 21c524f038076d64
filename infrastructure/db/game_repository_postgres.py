from __future__ import annotations

from typing import List, Optional, Sequence

from psycopg2.extras import Json

from domain.models import ACTIVE_STATUSES, STATUS_CANCELLED, STATUS_COMPLETED, AgentGame, Game
from domain.repositories import GameRepository
from infrastructure.db.cartela_repository_postgres import release_cartelas, reserve_cartelas
from infrastructure.db.postgres_pool import PostgresPool

_COLUMNS = (
    "g.id, g.agent_id, g.owner_id, g.players, g.pot, g.entry_fee, g.win_mode, "
    "g.cartela_ids, g.called, g.winner_money, g.profit, g.status, g.created_at"
)


def _number(value) -> float:
    # NUMERIC columns come back as Decimal.
    return float(value) if value is not None else 0


class PostgresGameRepository(GameRepository):
    """
    Postgres-backed implementation of `GameRepository`.

    Called numbers and the cartela snapshot are JSONB arrays. Reservation
    runs in the same transaction as the insert.
    """

    def __init__(self, pool: PostgresPool) -> None:
        self._pool = pool
        self._ensure_table()

    def _ensure_table(self) -> None:
        with self._pool.transaction("creating games table") as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS games (
                    id SERIAL PRIMARY KEY,
                    agent_id INTEGER NOT NULL REFERENCES users (id) ON DELETE CASCADE,
                    owner_id INTEGER NOT NULL REFERENCES users (id),
                    players INTEGER NOT NULL CHECK (players >= 1),
                    pot NUMERIC(14, 2) NOT NULL CHECK (pot >= 0),
                    entry_fee NUMERIC(14, 2) NOT NULL CHECK (entry_fee >= 0),
                    win_mode TEXT NOT NULL DEFAULT '',
                    cartela_ids JSONB NOT NULL DEFAULT '[]'
                        CHECK (jsonb_typeof(cartela_ids) = 'array'),
                    called JSONB NOT NULL DEFAULT '[]'
                        CHECK (jsonb_typeof(called) = 'array'),
                    winner_money NUMERIC(14, 2) NOT NULL DEFAULT 0,
                    profit NUMERIC(14, 2) NOT NULL DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'created'
                        CHECK (status IN ('created', 'in-progress', 'completed', 'cancelled')),
                    created_at TIMESTAMP NOT NULL DEFAULT NOW()
                )
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS games_agent_id ON games (agent_id)")

    @staticmethod
    def _to_domain(row: tuple) -> Game:
        return Game(
            id=row[0],
            agent_id=row[1],
            owner_id=row[2],
            players=row[3],
            pot=_number(row[4]),
            entry_fee=_number(row[5]),
            win_mode=row[6],
            cartela_ids=list(row[7] or []),
            called=list(row[8] or []),
            winner_money=_number(row[9]),
            profit=_number(row[10]),
            status=row[11],
            created_at=row[12],
        )

    def create_game(self, game: Game) -> Game:
        with self._pool.transaction("creating game") as cur:
            cur.execute(
                """
                INSERT INTO games (
                    agent_id, owner_id, players, pot, entry_fee, win_mode,
                    cartela_ids, called, winner_money, profit, status, created_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, COALESCE(%s, NOW()))
                RETURNING id
                """,
                (
                    game.agent_id,
                    game.owner_id,
                    game.players,
                    game.pot,
                    game.entry_fee,
                    game.win_mode,
                    Json(game.cartela_ids),
                    Json(game.called),
                    game.winner_money,
                    game.profit,
                    game.status,
                    game.created_at,
                ),
            )
            game_id = cur.fetchone()[0]
            reserve_cartelas(cur, game.cartela_ids, game_id)

            cur.execute(f"SELECT {_COLUMNS} FROM games g WHERE g.id = %s", (game_id,))
            return self._to_domain(cur.fetchone())

    def get_game(self, game_id: int) -> Optional[Game]:
        with self._pool.transaction("loading game") as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM games g WHERE g.id = %s", (game_id,))
            row = cur.fetchone()
            if not row:
                return None
            return self._to_domain(row)

    def update_called(self, game_id: int, numbers: Sequence[float], status: str) -> bool:
        with self._pool.transaction("updating called numbers") as cur:
            cur.execute(
                "UPDATE games SET called = %s, status = %s WHERE id = %s AND status = ANY(%s)",
                (Json(list(numbers)), status, game_id, list(ACTIVE_STATUSES)),
            )
            return cur.rowcount > 0

    def settle(self, game_id: int, winner_money: float, profit: float) -> bool:
        with self._pool.transaction("settling game") as cur:
            cur.execute(
                """
                UPDATE games SET winner_money = %s, profit = %s, status = %s
                WHERE id = %s AND status <> %s
                """,
                (winner_money, profit, STATUS_COMPLETED, game_id, STATUS_CANCELLED),
            )
            if cur.rowcount == 0:
                return False
            release_cartelas(cur, game_id)
            return True

    def cancel(self, game_id: int) -> bool:
        with self._pool.transaction("cancelling game") as cur:
            cur.execute(
                "UPDATE games SET status = %s WHERE id = %s AND status = ANY(%s)",
                (STATUS_CANCELLED, game_id, list(ACTIVE_STATUSES)),
            )
            if cur.rowcount == 0:
                return False
            release_cartelas(cur, game_id)
            return True

    def list_by_agent(self, agent_id: int) -> List[Game]:
        with self._pool.transaction("listing games") as cur:
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM games g
                WHERE g.agent_id = %s
                ORDER BY g.created_at DESC, g.id DESC
                """,
                (agent_id,),
            )
            return [self._to_domain(row) for row in cur.fetchall()]

    def list_with_agents(self, status: Optional[str] = None) -> List[AgentGame]:
        where = "WHERE g.status = %s" if status else ""
        params = (status,) if status else ()
        with self._pool.transaction("listing games") as cur:
            cur.execute(
                f"""
                SELECT {_COLUMNS}, u.name, u.phone
                FROM games g
                JOIN users u ON u.id = g.agent_id
                {where}
                ORDER BY u.name, g.agent_id, g.created_at DESC, g.id DESC
                """,
                params,
            )
            return [
                AgentGame(game=self._to_domain(row), agent_name=row[13], agent_phone=row[14])
                for row in cur.fetchall()
            ]
