from __future__ import annotations

from typing import Protocol

from .models import Identity


class PasswordHasher(Protocol):
    """Irreversible, salted password hashing."""

    def hash(self, password: str) -> str:
        ...

    def verify(self, password: str, password_hash: str) -> bool:
        ...


class TokenIssuer(Protocol):
    """
    Signs and verifies session tokens.

    `verify` raises `domain.errors.Forbidden` for any token that fails
    signature or expiry checks.
    """

    def issue(self, identity: Identity) -> str:
        ...

    def verify(self, token: str) -> Identity:
        ...
