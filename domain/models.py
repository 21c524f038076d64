from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

ROLE_OWNER = "owner"
ROLE_AGENT = "agent"
ROLES = (ROLE_OWNER, ROLE_AGENT)

STATUS_CREATED = "created"
STATUS_IN_PROGRESS = "in-progress"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

# Games in these states hold their cartelas.
ACTIVE_STATUSES = (STATUS_CREATED, STATUS_IN_PROGRESS)


@dataclass
class User:
    """
    Staff member of a bingo hall: either the single owner or one of the
    agents that run games on the owner's behalf.

    The password hash never leaves the application layer; use
    `public_profile()` for anything that is sent to a client.
    """

    id: Optional[int]
    phone: str
    password_hash: str
    role: str
    name: str
    active: bool = True
    created_at: Optional[datetime] = None

    def public_profile(self) -> dict:
        return {
            "id": self.id,
            "phone": self.phone,
            "role": self.role,
            "name": self.name,
            "active": self.active,
        }


@dataclass
class Identity:
    """Verified caller identity carried inside a session token."""

    id: int
    phone: str
    role: str
    name: str


@dataclass
class Cartela:
    """
    A pre-printed bingo card.

    `grid` is fixed once created. `issued`/`game_id` track which game
    currently holds the card. Placeholder records (see
    `application.cartelas.cartelas_for_game`) have an empty grid.
    """

    id: int
    grid: List[List[Optional[int]]] = field(default_factory=list)
    issued: bool = False
    game_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "grid": self.grid,
            "issued": self.issued,
            "game_id": self.game_id,
        }


@dataclass
class Game:
    """
    A single bingo round run by an agent in the owner's hall.

    Configuration fields are a snapshot taken at creation time; `called`
    grows during the round and `winner_money`/`profit` are only meaningful
    once `status` is `completed`.
    """

    id: Optional[int]
    agent_id: int
    owner_id: int
    players: int
    pot: float
    entry_fee: float
    win_mode: str = ""
    cartela_ids: List[int] = field(default_factory=list)
    called: List[float] = field(default_factory=list)
    winner_money: float = 0
    profit: float = 0
    status: str = STATUS_CREATED
    created_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "owner_id": self.owner_id,
            "players": self.players,
            "pot": self.pot,
            "entry_fee": self.entry_fee,
            "win_mode": self.win_mode,
            "cartelas": list(self.cartela_ids),
            "called": list(self.called),
            "winner_money": self.winner_money,
            "profit": self.profit,
            "status": self.status,
            "date": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class AgentGame:
    """A game joined with the display details of the agent who ran it."""

    game: Game
    agent_name: str
    agent_phone: str

    def to_dict(self) -> dict:
        data = self.game.to_dict()
        data["agent_name"] = self.agent_name
        data["agent_phone"] = self.agent_phone
        return data
