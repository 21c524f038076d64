import random
import unittest
from datetime import datetime

from application.accounts import create_agent
from application.cartelas import (
    COLUMN_RANGES,
    cartelas_for_game,
    generate_grid,
    list_available,
    release_cartelas,
    seed_cartelas,
)
from application.games import (
    all_games,
    cancel_game,
    create_game,
    end_game,
    get_game,
    my_history,
    parse_game_date,
    record_called_numbers,
)
from domain.errors import BadRequest, Conflict, Forbidden, NoOwnerConfigured, NotFound
from domain.models import (
    ROLE_AGENT,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CREATED,
    STATUS_IN_PROGRESS,
    Identity,
)
from infrastructure.db.game_repository_sqlite import SqliteGameRepository
from infrastructure.db.user_repository_sqlite import SqliteUserRepository

from sqlite_support import SqliteTestCase


class ParseGameDateTests(unittest.TestCase):
    NOW = datetime(2024, 5, 1, 12, 30)

    def test_day_first_date_is_reinterpreted(self):
        self.assertEqual(parse_game_date("07/03/2024", self.NOW), datetime(2024, 3, 7))

    def test_iso_date_is_accepted(self):
        self.assertEqual(parse_game_date("2024-03-07", self.NOW), datetime(2024, 3, 7))

    def test_bad_or_missing_dates_degrade_to_now(self):
        for value in (None, "", "yesterday", "31/02/2024", 20240307):
            self.assertEqual(parse_game_date(value, self.NOW), self.NOW)


class CartelaSeedingTests(SqliteTestCase):
    def test_generated_grid_follows_column_ranges(self):
        grid = generate_grid(random.Random(7))

        self.assertEqual(len(grid), 5)
        self.assertIsNone(grid[2][2])
        for col, values in enumerate(COLUMN_RANGES):
            column = [row[col] for row in grid if row[col] is not None]
            self.assertTrue(all(n in values for n in column))
            self.assertEqual(len(set(column)), len(column))

    def test_seeded_cartelas_are_available(self):
        created = seed_cartelas(3, self.cartela_repo, random.Random(1))

        available = list_available(self.cartela_repo)
        self.assertEqual([c.id for c in available], [c.id for c in created])
        self.assertTrue(all(not c.issued and c.grid for c in available))


class GameEngineTests(SqliteTestCase):
    CONFIG = {"players": 10, "pot": 100, "entryFee": 10, "winMode": "full house"}

    def _create(self, **overrides):
        config = dict(self.CONFIG, **overrides)
        return create_game(self.agent.id, config, self.user_repo, self.game_repo)

    def test_create_game_starts_empty(self):
        game = self._create()

        self.assertEqual(game.status, STATUS_CREATED)
        self.assertEqual(game.called, [])
        self.assertEqual(game.profit, 0)
        self.assertEqual(game.owner_id, self.owner.id)

        stored = get_game(game.id, self.game_repo)
        self.assertEqual(stored.win_mode, "full house")
        self.assertEqual(stored.called, [])

    def test_create_game_requires_players_pot_and_fee(self):
        for missing in ("players", "pot", "entryFee"):
            config = dict(self.CONFIG)
            del config[missing]
            with self.assertRaises(BadRequest):
                create_game(self.agent.id, config, self.user_repo, self.game_repo)

    def test_create_game_rejects_negative_or_non_numeric_amounts(self):
        with self.assertRaises(BadRequest):
            self._create(pot=-1)
        with self.assertRaises(BadRequest):
            self._create(entryFee="ten")
        with self.assertRaises(BadRequest):
            self._create(players=0)

    def test_create_game_without_owner(self):
        user_repo = SqliteUserRepository(self.db_path + ".empty")
        game_repo = SqliteGameRepository(self.db_path + ".empty")
        with self.assertRaises(NoOwnerConfigured):
            create_game(1, dict(self.CONFIG), user_repo, game_repo)

    def test_create_game_reserves_cartelas(self):
        ids = self.add_cartelas(3)
        game = self._create(cartelas=ids[:2])

        self.assertEqual([c.id for c in list_available(self.cartela_repo)], [ids[2]])
        linked = cartelas_for_game(game.id, self.game_repo, self.cartela_repo)
        self.assertEqual([c.id for c in linked], ids[:2])
        self.assertTrue(all(c.issued and c.game_id == game.id for c in linked))

    def test_overlapping_cartelas_conflict_and_roll_back(self):
        ids = self.add_cartelas(3)
        self._create(cartelas=ids[:2])

        with self.assertRaises(Conflict):
            self._create(cartelas=ids[1:])

        # The failed game was not kept and the free cartela stayed free.
        self.assertEqual(len(my_history(self.agent.id, self.game_repo)), 1)
        self.assertEqual([c.id for c in list_available(self.cartela_repo)], [ids[2]])

    def test_unknown_cartela_is_not_found(self):
        with self.assertRaises(NotFound):
            self._create(cartelas=[999])
        self.assertEqual(my_history(self.agent.id, self.game_repo), [])

    def test_record_called_numbers_replaces_sequence(self):
        game = self._create()

        record_called_numbers(game.id, [5, 12, 40], self.game_repo)
        record_called_numbers(game.id, [5, 12, 40], self.game_repo)
        stored = get_game(game.id, self.game_repo)
        self.assertEqual(stored.called, [5, 12, 40])
        self.assertEqual(stored.status, STATUS_IN_PROGRESS)

        record_called_numbers(game.id, [7], self.game_repo)
        self.assertEqual(get_game(game.id, self.game_repo).called, [7])

    def test_record_called_numbers_keeps_duplicates_and_order(self):
        game = self._create()
        record_called_numbers(game.id, [90, 3, 3, 200], self.game_repo)
        self.assertEqual(get_game(game.id, self.game_repo).called, [90, 3, 3, 200])

    def test_record_called_numbers_validation(self):
        game = self._create()
        with self.assertRaises(BadRequest):
            record_called_numbers(game.id, "1,2,3", self.game_repo)
        with self.assertRaises(BadRequest):
            record_called_numbers(game.id, [1, "two"], self.game_repo)
        with self.assertRaises(NotFound):
            record_called_numbers(9999, [1], self.game_repo)

    def test_end_game_profit_is_pot_minus_payout(self):
        for payout, profit in ((60, 40), (0, 100), (150, -50)):
            game = self._create()
            settled = end_game(game.id, payout, self.game_repo)
            self.assertEqual(settled.profit, profit)

            stored = get_game(game.id, self.game_repo)
            self.assertEqual(stored.status, STATUS_COMPLETED)
            self.assertEqual(stored.profit, profit)
            self.assertEqual(stored.winner_money, payout)

    def test_end_game_last_write_wins(self):
        game = self._create()
        end_game(game.id, 60, self.game_repo)
        end_game(game.id, 30, self.game_repo)
        self.assertEqual(get_game(game.id, self.game_repo).profit, 70)

    def test_end_game_requires_payout(self):
        game = self._create()
        with self.assertRaises(BadRequest):
            end_game(game.id, None, self.game_repo)
        with self.assertRaises(NotFound):
            end_game(9999, 10, self.game_repo)

    def test_end_game_returns_cartelas_but_keeps_roster(self):
        ids = self.add_cartelas(2)
        game = self._create(cartelas=ids)
        end_game(game.id, 50, self.game_repo)

        self.assertEqual(len(list_available(self.cartela_repo)), 2)
        roster = cartelas_for_game(game.id, self.game_repo, self.cartela_repo)
        self.assertEqual([c.id for c in roster], ids)
        self.assertTrue(all(c.grid for c in roster))

    def test_cartelas_for_game_synthesizes_missing_records(self):
        ids = self.add_cartelas(1)
        game = self._create(cartelas=ids)
        release_cartelas(game.id, self.cartela_repo)

        # Snapshot also names a card that no longer exists.
        with self.game_repo._transaction("test") as cur:
            cur.execute(
                "UPDATE games SET cartela_ids = ? WHERE id = ?",
                (f"[12, {ids[0]}]", game.id),
            )

        roster = cartelas_for_game(game.id, self.game_repo, self.cartela_repo)
        self.assertEqual([c.id for c in roster], [ids[0], 12])
        self.assertTrue(roster[0].grid)
        self.assertEqual(roster[1].grid, [])
        self.assertFalse(roster[1].issued)

    def test_cancel_game_releases_cartelas(self):
        ids = self.add_cartelas(2)
        game = self._create(cartelas=ids)
        record_called_numbers(game.id, [1, 2], self.game_repo)

        cancelled = cancel_game(game.id, self.game_repo)
        self.assertEqual(cancelled.status, STATUS_CANCELLED)
        self.assertEqual(len(list_available(self.cartela_repo)), 2)

        with self.assertRaises(Conflict):
            cancel_game(game.id, self.game_repo)
        with self.assertRaises(Conflict):
            record_called_numbers(game.id, [3], self.game_repo)
        with self.assertRaises(Conflict):
            end_game(game.id, 10, self.game_repo)

        # The released cards can be used by the next round.
        self.assertEqual(self._create(cartelas=ids).cartela_ids, ids)

    def _run_after_next_read(self, action):
        """Run `action` right after the next `get_game` returns its snapshot."""

        original = self.game_repo.get_game

        def read_then_act(game_id):
            snapshot = original(game_id)
            self.game_repo.get_game = original
            action(game_id)
            return snapshot

        self.game_repo.get_game = read_then_act

    def test_called_numbers_after_concurrent_settlement_conflict(self):
        ids = self.add_cartelas(2)
        game = self._create(cartelas=ids)
        self._run_after_next_read(lambda game_id: end_game(game_id, 60, self.game_repo))

        with self.assertRaises(Conflict):
            record_called_numbers(game.id, [4, 9], self.game_repo)

        stored = get_game(game.id, self.game_repo)
        self.assertEqual(stored.status, STATUS_COMPLETED)
        self.assertEqual(stored.called, [])
        self.assertEqual(stored.profit, 40)
        self.assertEqual(len(list_available(self.cartela_repo)), 2)

    def test_settlement_after_concurrent_cancel_conflicts(self):
        game = self._create()
        self._run_after_next_read(lambda game_id: cancel_game(game_id, self.game_repo))

        with self.assertRaises(Conflict):
            end_game(game.id, 60, self.game_repo)
        self.assertEqual(get_game(game.id, self.game_repo).status, STATUS_CANCELLED)

    def test_cancel_after_concurrent_settlement_conflicts(self):
        game = self._create()
        self._run_after_next_read(lambda game_id: end_game(game_id, 10, self.game_repo))

        with self.assertRaises(Conflict):
            cancel_game(game.id, self.game_repo)
        self.assertEqual(get_game(game.id, self.game_repo).status, STATUS_COMPLETED)

    def test_non_finite_called_numbers_are_rejected(self):
        game = self._create()
        for value in (float("nan"), float("inf"), float("-inf")):
            with self.assertRaises(BadRequest):
                record_called_numbers(game.id, [1, value], self.game_repo)
        self.assertEqual(get_game(game.id, self.game_repo).called, [])

    def test_agents_cannot_touch_other_agents_games(self):
        game = self._create()
        intruder = Identity(id=self.agent.id + 100, phone="0933", role=ROLE_AGENT, name="X")

        with self.assertRaises(Forbidden):
            get_game(game.id, self.game_repo, intruder)
        with self.assertRaises(Forbidden):
            end_game(game.id, 10, self.game_repo, intruder)

    def test_history_is_newest_first(self):
        first = self._create(date="01/03/2024")
        second = self._create(date="2024-03-05")
        third = self._create(date="02/03/2024")

        history = my_history(self.agent.id, self.game_repo)
        self.assertEqual([g.id for g in history], [second.id, third.id, first.id])

    def test_all_games_ordered_by_agent_name_then_date(self):
        zed = self._agent_named("0944", "Zed")
        alem = self._agent_named("0955", "Alem")

        create_game(zed.id, dict(self.CONFIG, date="01/01/2024"), self.user_repo, self.game_repo)
        older = create_game(alem.id, dict(self.CONFIG, date="01/01/2024"), self.user_repo, self.game_repo)
        newer = create_game(alem.id, dict(self.CONFIG, date="05/01/2024"), self.user_repo, self.game_repo)

        rows = all_games(self.game_repo)
        self.assertEqual([r.agent_name for r in rows], ["Alem", "Alem", "Zed"])
        self.assertEqual([r.game.id for r in rows[:2]], [newer.id, older.id])
        self.assertEqual(rows[0].agent_phone, "0955")

    def _agent_named(self, phone, name):
        return create_agent(phone, "pw", name, self.user_repo, self.hasher)


if __name__ == "__main__":
    unittest.main()
