from __future__ import annotations

import json
from datetime import datetime
from typing import List, Optional, Sequence

from domain.models import (
    ACTIVE_STATUSES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    AgentGame,
    Game,
)
from domain.repositories import GameRepository
from infrastructure.db.cartela_repository_sqlite import release_cartelas, reserve_cartelas
from infrastructure.db.sqlite_base import SqliteRepository

_COLUMNS = (
    "g.id, g.agent_id, g.owner_id, g.players, g.pot, g.entry_fee, g.win_mode, "
    "g.cartela_ids, g.called, g.winner_money, g.profit, g.status, g.created_at"
)
_ACTIVE = ", ".join("?" for _ in ACTIVE_STATUSES)


class SqliteGameRepository(SqliteRepository, GameRepository):
    """
    SQLite-backed implementation of `GameRepository`.

    Owns the `games` table. Cartela issuance lives in the `cartelas`
    table, so a `SqliteCartelaRepository` must be set up on the same file
    before games are created.
    """

    def _ensure_table(self) -> None:
        with self._transaction("creating games table") as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS games (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    agent_id INTEGER NOT NULL REFERENCES users (id) ON DELETE CASCADE,
                    owner_id INTEGER NOT NULL REFERENCES users (id),
                    players INTEGER NOT NULL CHECK (players >= 1),
                    pot REAL NOT NULL CHECK (pot >= 0),
                    entry_fee REAL NOT NULL CHECK (entry_fee >= 0),
                    win_mode TEXT NOT NULL DEFAULT '',
                    cartela_ids TEXT NOT NULL DEFAULT '[]'
                        CHECK (json_valid(cartela_ids) AND json_type(cartela_ids) = 'array'),
                    called TEXT NOT NULL DEFAULT '[]'
                        CHECK (json_valid(called) AND json_type(called) = 'array'),
                    winner_money REAL NOT NULL DEFAULT 0,
                    profit REAL NOT NULL DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'created'
                        CHECK (status IN ('created', 'in-progress', 'completed', 'cancelled')),
                    created_at TEXT NOT NULL
                )
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS games_agent_id ON games (agent_id)")

    @staticmethod
    def _to_domain(row: tuple) -> Game:
        return Game(
            id=int(row[0]),
            agent_id=int(row[1]),
            owner_id=int(row[2]),
            players=int(row[3]),
            pot=row[4],
            entry_fee=row[5],
            win_mode=row[6],
            cartela_ids=json.loads(row[7]),
            called=json.loads(row[8]),
            winner_money=row[9],
            profit=row[10],
            status=row[11],
            created_at=datetime.fromisoformat(row[12]),
        )

    def create_game(self, game: Game) -> Game:
        created_at = game.created_at or datetime.now()
        with self._transaction("creating game", immediate=True) as cur:
            cur.execute(
                """
                INSERT INTO games (
                    agent_id, owner_id, players, pot, entry_fee, win_mode,
                    cartela_ids, called, winner_money, profit, status, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    game.agent_id,
                    game.owner_id,
                    game.players,
                    game.pot,
                    game.entry_fee,
                    game.win_mode,
                    json.dumps(game.cartela_ids),
                    json.dumps(game.called),
                    game.winner_money,
                    game.profit,
                    game.status,
                    created_at.isoformat(sep=" "),
                ),
            )
            game_id = cur.lastrowid
            reserve_cartelas(cur, game.cartela_ids, game_id)

        return Game(
            id=game_id,
            agent_id=game.agent_id,
            owner_id=game.owner_id,
            players=game.players,
            pot=game.pot,
            entry_fee=game.entry_fee,
            win_mode=game.win_mode,
            cartela_ids=list(game.cartela_ids),
            called=list(game.called),
            winner_money=game.winner_money,
            profit=game.profit,
            status=game.status,
            created_at=created_at,
        )

    def get_game(self, game_id: int) -> Optional[Game]:
        with self._transaction("loading game") as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM games g WHERE g.id = ?", (game_id,))
            row = cur.fetchone()
            if not row:
                return None
            return self._to_domain(row)

    def update_called(self, game_id: int, numbers: Sequence[float], status: str) -> bool:
        with self._transaction("updating called numbers") as cur:
            cur.execute(
                f"""
                UPDATE games SET called = ?, status = ?
                WHERE id = ? AND status IN ({_ACTIVE})
                """,
                (json.dumps(list(numbers)), status, game_id, *ACTIVE_STATUSES),
            )
            return cur.rowcount > 0

    def settle(self, game_id: int, winner_money: float, profit: float) -> bool:
        with self._transaction("settling game", immediate=True) as cur:
            cur.execute(
                """
                UPDATE games SET winner_money = ?, profit = ?, status = ?
                WHERE id = ? AND status <> ?
                """,
                (winner_money, profit, STATUS_COMPLETED, game_id, STATUS_CANCELLED),
            )
            if cur.rowcount == 0:
                return False
            release_cartelas(cur, game_id)
            return True

    def cancel(self, game_id: int) -> bool:
        with self._transaction("cancelling game", immediate=True) as cur:
            cur.execute(
                f"UPDATE games SET status = ? WHERE id = ? AND status IN ({_ACTIVE})",
                (STATUS_CANCELLED, game_id, *ACTIVE_STATUSES),
            )
            if cur.rowcount == 0:
                return False
            release_cartelas(cur, game_id)
            return True

    def list_by_agent(self, agent_id: int) -> List[Game]:
        with self._transaction("listing games") as cur:
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM games g
                WHERE g.agent_id = ?
                ORDER BY g.created_at DESC, g.id DESC
                """,
                (agent_id,),
            )
            return [self._to_domain(row) for row in cur.fetchall()]

    def list_with_agents(self, status: Optional[str] = None) -> List[AgentGame]:
        where = "WHERE g.status = ?" if status else ""
        params = (status,) if status else ()
        with self._transaction("listing games") as cur:
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
