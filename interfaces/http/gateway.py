from __future__ import annotations

from functools import wraps
from typing import Callable, Optional

from flask import g, request

from domain.errors import Forbidden, Unauthorized
from domain.models import Identity
from domain.repositories import UserRepository
from domain.security import TokenIssuer

# Any authenticated caller, whatever their role.
ANY_ROLE = None


class AccessGateway:
    """
    Authenticates bearer tokens and checks the role each operation declares.

    Views are wrapped with `requires(role)`; the check runs once, before
    the view body, and the verified identity is left on `flask.g.identity`.
    Token claims are re-checked against the stored account on every
    request, so deleting or blocking an agent ends their live sessions.
    """

    def __init__(self, tokens: TokenIssuer, user_repo: UserRepository) -> None:
        self._tokens = tokens
        self._user_repo = user_repo

    def authenticate(self, authorization: Optional[str]) -> Identity:
        if not authorization:
            raise Unauthorized("Missing token.")

        scheme, _, token = authorization.partition(" ")
        token = token.strip()
        if scheme.lower() != "bearer" or not token or " " in token:
            raise Unauthorized("Malformed authorization header.")

        claims = self._tokens.verify(token)
        user = self._user_repo.get_by_id(claims.id)
        if user is None:
            raise Unauthorized("Account no longer exists.")
        if not user.active:
            raise Forbidden("Account is blocked.")

        return Identity(id=user.id, phone=user.phone, role=user.role, name=user.name)

    @staticmethod
    def authorize(identity: Identity, role: Optional[str]) -> None:
        if role is not ANY_ROLE and identity.role != role:
            raise Forbidden(f"This operation requires the {role} role.")

    def requires(self, role: Optional[str] = ANY_ROLE) -> Callable:
        def decorator(view: Callable) -> Callable:
            @wraps(view)
            def wrapper(*args, **kwargs):
                identity = self.authenticate(request.headers.get("Authorization"))
                self.authorize(identity, role)
                g.identity = identity
                return view(*args, **kwargs)

            return wrapper

        return decorator
