from __future__ import annotations

from typing import List, Optional, Protocol, Sequence

from .models import AgentGame, Cartela, Game, User


class UserRepository(Protocol):
    """
    Abstraction over staff account persistence.

    Implementations are responsible for:
    - Mapping between database rows and the `User` domain model.
    - Enforcing phone uniqueness and the single-owner rule, reporting
      violations as `domain.errors.Conflict`.
    """

    def get_by_id(self, user_id: int) -> Optional[User]:
        ...

    def get_by_phone(self, phone: str) -> Optional[User]:
        ...

    def get_owner(self) -> Optional[User]:
        """Return the hall owner, or None if no owner has been registered."""

        ...

    def add_user(self, user: User) -> User:
        """Persist a new user and return it with its assigned ID."""

        ...

    def list_agents(self) -> List[User]:
        ...

    def set_active(self, user_id: int, active: bool) -> bool:
        """
        Set the active flag of an agent.

        Returns False if no agent with that ID exists.
        """

        ...

    def delete_agent(self, user_id: int) -> Optional[int]:
        """
        Delete an agent together with every game they ran, releasing any
        cartelas those games held. Returns the number of games removed, or
        None if no agent with that ID exists.
        """

        ...


class CartelaRepository(Protocol):
    """
    Persistence for pre-printed bingo cards and their issuance state.
    """

    def add_cartela(self, grid: List[List[Optional[int]]]) -> Cartela:
        ...

    def list_available(self) -> List[Cartela]:
        """Return every unissued cartela, ordered by ID."""

        ...

    def get_many(self, cartela_ids: Sequence[int]) -> List[Cartela]:
        """Return the cartelas that exist among `cartela_ids`, ordered by ID."""

        ...

    def get_for_game(self, game_id: int) -> List[Cartela]:
        """Return the cartelas currently linked to a game, ordered by ID."""

        ...

    def reserve(self, cartela_ids: Sequence[int], game_id: int) -> None:
        """
        Mark every listed cartela as issued to `game_id`.

        The check and the update are one atomic step: if any cartela is
        already issued, nothing is changed and `Conflict` is raised.
        """

        ...

    def release(self, game_id: int) -> int:
        """Clear issuance for every cartela linked to `game_id`."""

        ...


class GameRepository(Protocol):
    """
    Persistence for bingo games.

    Operations that touch cartela issuance (`create_game`, `settle`,
    `cancel`) run in a single transaction together with the game update.
    """

    def create_game(self, game: Game) -> Game:
        """
        Insert `game` and reserve `game.cartela_ids` for it atomically.

        On a reservation conflict the insert is rolled back and `Conflict`
        is raised; unknown cartela IDs raise `NotFound`.
        """

        ...

    def get_game(self, game_id: int) -> Optional[Game]:
        ...

    def update_called(self, game_id: int, numbers: Sequence[float], status: str) -> bool:
        """
        Replace the called-number sequence of a created or in-progress game.

        Returns False if the game is missing or no longer active.
        """

        ...

    def settle(self, game_id: int, winner_money: float, profit: float) -> bool:
        """
        Mark a game completed with its payout, releasing its cartelas.

        Returns False if the game is missing or was cancelled.
        """

        ...

    def cancel(self, game_id: int) -> bool:
        """
        Mark an active game cancelled, releasing its cartelas.

        Returns False if the game is missing or no longer active.
        """

        ...

    def list_by_agent(self, agent_id: int) -> List[Game]:
        """Return an agent's games, most recent first."""

        ...

    def list_with_agents(self, status: Optional[str] = None) -> List[AgentGame]:
        """
        Return games joined with their agent's name and phone, ordered by
        agent name and then most recent first. `status` filters if given.
        """

        ...
