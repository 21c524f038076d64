from __future__ import annotations

import logging
import random
from typing import List, Optional

from application.games import get_game
from domain.models import Cartela, Identity
from domain.repositories import CartelaRepository, GameRepository

logger = logging.getLogger(__name__)

# 75-ball card: five columns of B-I-N-G-O, centre square is free.
COLUMN_RANGES = [
    range(1, 16),
    range(16, 31),
    range(31, 46),
    range(46, 61),
    range(61, 76),
]
GRID_SIZE = 5


def generate_grid(rng: Optional[random.Random] = None) -> List[List[Optional[int]]]:
    """Generate a 5x5 grid, row-major, with `None` in the free centre."""

    rng = rng or random.Random()
    columns = [sorted(rng.sample(list(values), GRID_SIZE)) for values in COLUMN_RANGES]
    grid = [[columns[col][row] for col in range(GRID_SIZE)] for row in range(GRID_SIZE)]
    grid[GRID_SIZE // 2][GRID_SIZE // 2] = None
    return grid


def seed_cartelas(
    count: int,
    cartela_repo: CartelaRepository,
    rng: Optional[random.Random] = None,
) -> List[Cartela]:
    rng = rng or random.Random()
    created = [cartela_repo.add_cartela(generate_grid(rng)) for _ in range(count)]
    logger.info(f"Seeded {len(created)} cartela(s)")
    return created


def list_available(cartela_repo: CartelaRepository) -> List[Cartela]:
    return cartela_repo.list_available()


def cartelas_for_game(
    game_id: int,
    game_repo: GameRepository,
    cartela_repo: CartelaRepository,
    caller: Optional[Identity] = None,
) -> List[Cartela]:
    """
    Return every cartela originally selected for a game, sorted by ID.

    Once a game stops holding its cards (settled, cancelled, or the card
    was reissued) the back-references are gone, so the roster is rebuilt
    from the game's own snapshot of cartela IDs. IDs that no longer exist
    at all are returned as placeholders with an empty grid.
    """

    game = get_game(game_id, game_repo, caller)

    linked = {cartela.id: cartela for cartela in cartela_repo.get_for_game(game_id)}
    expected = set(game.cartela_ids)

    if not expected.issubset(linked):
        missing = sorted(expected - set(linked))
        for cartela in cartela_repo.get_many(missing):
            linked[cartela.id] = cartela
        for cartela_id in missing:
            if cartela_id not in linked:
                linked[cartela_id] = Cartela(id=cartela_id)

    return [linked[cartela_id] for cartela_id in sorted(linked)]


def release_cartelas(game_id: int, cartela_repo: CartelaRepository) -> int:
    """Maintenance hook: free every cartela still linked to `game_id`."""

    released = cartela_repo.release(game_id)
    logger.info(f"Released {released} cartela(s) from game {game_id}")
    return released
