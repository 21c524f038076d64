from __future__ import annotations

import logging
import math
import re
from datetime import datetime
from typing import Any, List, Optional

from domain.errors import BadRequest, Conflict, Forbidden, NoOwnerConfigured, NotFound
from domain.models import (
    ROLE_OWNER,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CREATED,
    STATUS_IN_PROGRESS,
    AgentGame,
    Game,
    Identity,
)
from domain.repositories import GameRepository, UserRepository

logger = logging.getLogger(__name__)

_DAY_FIRST_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


def _pick(config: dict, *keys: str) -> Any:
    """Return the first present value among `keys` (clients use both spellings)."""

    for key in keys:
        if config.get(key) is not None:
            return config[key]
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_finite_number(value: Any) -> bool:
    return _is_number(value) and math.isfinite(value)


def _coerce_amount(value: Any, field: str) -> float:
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            raise BadRequest(f"{field} must be a number.") from None

    if not _is_finite_number(value):
        raise BadRequest(f"{field} must be a number.")
    if value < 0:
        raise BadRequest(f"{field} must not be negative.")
    return value


def _coerce_players(value: Any) -> int:
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value)
    if isinstance(value, float) and value.is_integer():
        value = int(value)

    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise BadRequest("players must be a positive whole number.")
    return value


def _coerce_cartela_ids(value: Any) -> List[int]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise BadRequest("cartelas must be a list of cartela IDs.")

    ids: List[int] = []
    for item in value:
        if isinstance(item, str) and item.strip().isdigit():
            item = int(item)
        if not isinstance(item, int) or isinstance(item, bool):
            raise BadRequest(f"Invalid cartela ID: {item!r}")
        if item not in ids:
            ids.append(item)
    return ids


def parse_game_date(value: Any, now: Optional[datetime] = None) -> datetime:
    """
    Interpret a client-supplied game date.

    `DD/MM/YYYY` is read day-first; ISO dates and timestamps are accepted
    as-is. Anything missing or unparseable degrades to `now` instead of
    being rejected.
    """

    now = now or datetime.now()
    if not isinstance(value, str) or not value.strip():
        return now

    text = value.strip()
    match = _DAY_FIRST_DATE.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        try:
            return datetime(year, month, day)
        except ValueError:
            return now

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return now
    # Stored timestamps are naive local time.
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def create_game(
    agent_id: int,
    config: dict,
    user_repo: UserRepository,
    game_repo: GameRepository,
    now: Optional[datetime] = None,
) -> Game:
    """
    Start a new round for `agent_id`.

    `config` carries players, pot, entryFee and optionally winMode,
    cartelas and date. The selected cartelas are reserved in the same
    transaction as the insert, so two rounds can never hold the same
    card.
    """

    config = config or {}
    players = _pick(config, "players")
    pot = _pick(config, "pot")
    entry_fee = _pick(config, "entryFee", "entryfee", "entry_fee")

    if players is None or pot is None or entry_fee is None:
        raise BadRequest("players, pot and entryFee are required.")

    owner = user_repo.get_owner()
    if owner is None:
        raise NoOwnerConfigured()

    win_mode = _pick(config, "winMode", "winmode", "win_mode") or ""

    game = Game(
        id=None,
        agent_id=agent_id,
        owner_id=owner.id,
        players=_coerce_players(players),
        pot=_coerce_amount(pot, "pot"),
        entry_fee=_coerce_amount(entry_fee, "entryFee"),
        win_mode=str(win_mode),
        cartela_ids=_coerce_cartela_ids(_pick(config, "cartelaIds", "cartelas")),
        called=[],
        winner_money=0,
        profit=0,
        status=STATUS_CREATED,
        created_at=parse_game_date(_pick(config, "date"), now),
    )

    game = game_repo.create_game(game)
    logger.info(
        f"Game {game.id} created by agent {agent_id} "
        f"with {len(game.cartela_ids)} cartela(s)"
    )
    return game


def _load_game(game_id: int, game_repo: GameRepository, caller: Optional[Identity]) -> Game:
    game = game_repo.get_game(game_id)
    if game is None:
        raise NotFound(f"Game {game_id} not found.")

    if caller is not None and caller.role != ROLE_OWNER and game.agent_id != caller.id:
        raise Forbidden("This game belongs to another agent.")
    return game


def _reject_stale_write(game_id: int, game_repo: GameRepository) -> None:
    """
    Explain a write the store refused: the game either vanished or changed
    state after it was read.
    """

    current = game_repo.get_game(game_id)
    if current is None:
        raise NotFound(f"Game {game_id} not found.")
    raise Conflict(f"Game {game_id} is {current.status}.")


def get_game(
    game_id: int,
    game_repo: GameRepository,
    caller: Optional[Identity] = None,
) -> Game:
    return _load_game(game_id, game_repo, caller)


def record_called_numbers(
    game_id: int,
    numbers: Any,
    game_repo: GameRepository,
    caller: Optional[Identity] = None,
) -> Game:
    """
    Replace the game's called numbers with `numbers`.

    Clients send the full sequence on each update, so retrying the same
    call leaves the game unchanged. Values are not range-checked or
    deduplicated.
    """

    if not isinstance(numbers, (list, tuple)) or not all(_is_finite_number(n) for n in numbers):
        raise BadRequest("numbers must be a list of numbers.")

    game = _load_game(game_id, game_repo, caller)
    if game.status in (STATUS_COMPLETED, STATUS_CANCELLED):
        raise Conflict(f"Game {game_id} is {game.status}.")

    status = game.status
    if numbers and status == STATUS_CREATED:
        status = STATUS_IN_PROGRESS

    if not game_repo.update_called(game_id, list(numbers), status):
        _reject_stale_write(game_id, game_repo)

    game.called = list(numbers)
    game.status = status
    return game


def end_game(
    game_id: int,
    winner_money: Any,
    game_repo: GameRepository,
    caller: Optional[Identity] = None,
) -> Game:
    """
    Settle a game: profit is the stored pot minus the payout.

    A payout above the pot is allowed and gives a negative profit.
    Settling again recomputes from the stored pot; the last payout wins.
    """

    if winner_money is None:
        raise BadRequest("winnerMoney is required.")
    if isinstance(winner_money, str):
        try:
            winner_money = float(winner_money)
        except ValueError:
            raise BadRequest("winnerMoney must be a number.") from None
    if not _is_finite_number(winner_money):
        raise BadRequest("winnerMoney must be a number.")

    game = _load_game(game_id, game_repo, caller)
    if game.status == STATUS_CANCELLED:
        raise Conflict(f"Game {game_id} was cancelled.")

    profit = game.pot - winner_money
    if not game_repo.settle(game_id, winner_money, profit):
        _reject_stale_write(game_id, game_repo)

    game.winner_money = winner_money
    game.profit = profit
    game.status = STATUS_COMPLETED
    logger.info(f"Game {game_id} completed: payout={winner_money} profit={profit}")
    return game


def cancel_game(
    game_id: int,
    game_repo: GameRepository,
    caller: Optional[Identity] = None,
) -> Game:
    """Abandon a running game and return its cartelas to the pool."""

    game = _load_game(game_id, game_repo, caller)
    if not game.is_active:
        raise Conflict(f"Game {game_id} is already {game.status}.")

    if not game_repo.cancel(game_id):
        _reject_stale_write(game_id, game_repo)

    game.status = STATUS_CANCELLED
    logger.info(f"Game {game_id} cancelled")
    return game


def my_history(agent_id: int, game_repo: GameRepository) -> List[Game]:
    return game_repo.list_by_agent(agent_id)


def all_games(game_repo: GameRepository) -> List[AgentGame]:
    return game_repo.list_with_agents()
