from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from domain.errors import BadRequest, Conflict, Forbidden, NotFound, Unauthorized
from domain.models import ROLE_AGENT, ROLE_OWNER, Identity, User
from domain.repositories import UserRepository
from domain.security import PasswordHasher, TokenIssuer

logger = logging.getLogger(__name__)


@dataclass
class LoginResult:
    """Outcome of a successful login."""

    token: str
    user: User

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "role": self.user.role,
            "userId": self.user.id,
            "name": self.user.name,
        }


def _require_credentials(phone: Optional[str], password: Optional[str]) -> None:
    if not phone or not password:
        raise BadRequest("Phone and password are required.")


def create_owner(
    phone: str,
    password: str,
    name: str,
    user_repo: UserRepository,
    hasher: PasswordHasher,
) -> User:
    """
    Register the hall owner.

    Only one owner may ever exist; a second call fails with `Conflict`
    regardless of its input. The repository enforces the same rule at
    insert time so that concurrent bootstraps cannot both succeed.
    """

    if user_repo.get_owner() is not None:
        raise Conflict("An owner is already registered.")

    _require_credentials(phone, password)

    owner = user_repo.add_user(
        User(
            id=None,
            phone=phone,
            password_hash=hasher.hash(password),
            role=ROLE_OWNER,
            name=name or "",
        )
    )
    logger.info(f"Owner {owner.id} registered")
    return owner


def create_agent(
    phone: str,
    password: str,
    name: str,
    user_repo: UserRepository,
    hasher: PasswordHasher,
) -> User:
    """Register a new, active agent. Fails with `Conflict` on a known phone."""

    _require_credentials(phone, password)

    if user_repo.get_by_phone(phone) is not None:
        raise Conflict(f"Phone {phone} is already registered.")

    agent = user_repo.add_user(
        User(
            id=None,
            phone=phone,
            password_hash=hasher.hash(password),
            role=ROLE_AGENT,
            name=name or "",
        )
    )
    logger.info(f"Agent {agent.id} registered")
    return agent


def authenticate(
    phone: str,
    password: str,
    user_repo: UserRepository,
    hasher: PasswordHasher,
    tokens: TokenIssuer,
) -> LoginResult:
    """
    Verify a phone/password pair and issue a session token.

    A blocked account is reported as `Forbidden` before the password is
    checked, so it is distinguishable from a wrong password
    (`Unauthorized`).
    """

    _require_credentials(phone, password)

    user = user_repo.get_by_phone(phone)
    if user is None:
        raise NotFound("User not found.")

    if not user.active:
        logger.warning(f"Login attempt for blocked account {user.id}")
        raise Forbidden("Account is blocked.")

    if not hasher.verify(password, user.password_hash):
        logger.warning(f"Invalid password for account {user.id}")
        raise Unauthorized("Invalid password.")

    identity = Identity(id=user.id, phone=user.phone, role=user.role, name=user.name)
    return LoginResult(token=tokens.issue(identity), user=user)


def list_agents(user_repo: UserRepository) -> List[User]:
    return user_repo.list_agents()


def set_agent_active(user_id: int, active: bool, user_repo: UserRepository) -> User:
    """Block or unblock an agent. Owners cannot be toggled through here."""

    agent = _get_agent(user_id, user_repo)
    if not user_repo.set_active(agent.id, active):
        raise NotFound("Agent not found.")

    agent.active = active
    logger.info(f"Agent {agent.id} active={active}")
    return agent


def toggle_agent(user_id: int, user_repo: UserRepository) -> User:
    """Flip an agent's active flag."""

    agent = _get_agent(user_id, user_repo)
    return set_agent_active(agent.id, not agent.active, user_repo)


def delete_agent(user_id: int, user_repo: UserRepository) -> int:
    """
    Delete an agent and every game they ran.

    Returns the number of games removed with the agent.
    """

    removed = user_repo.delete_agent(user_id)
    if removed is None:
        raise NotFound("Agent not found.")

    logger.info(f"Agent {user_id} deleted with {removed} game(s)")
    return removed


def _get_agent(user_id: int, user_repo: UserRepository) -> User:
    user = user_repo.get_by_id(user_id)
    if user is None or user.role != ROLE_AGENT:
        raise NotFound("Agent not found.")
    return user
