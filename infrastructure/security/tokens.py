from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from domain.errors import Forbidden
from domain.models import ROLES, Identity
from domain.security import TokenIssuer

ALGORITHM = "HS256"


class JwtTokenIssuer(TokenIssuer):
    """
    Issues HS256 session tokens carrying {id, phone, role, name}.

    The secret and validity window are fixed for the lifetime of the
    process and handed in from `config.Settings`.
    """

    def __init__(self, secret: str, ttl: timedelta = timedelta(days=7)) -> None:
        if not secret:
            raise ValueError("A token signing secret is required.")
        self._secret = secret
        self._ttl = ttl

    def issue(self, identity: Identity, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        claims: Dict[str, Any] = {
            "sub": str(identity.id),
            "id": identity.id,
            "phone": identity.phone,
            "role": identity.role,
            "name": identity.name,
            "iat": now,
            "exp": now + self._ttl,
        }
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> Identity:
        try:
            claims = jwt.decode(token, self._secret, algorithms=[ALGORITHM])
        except JWTError as exc:
            raise Forbidden("Invalid token.") from exc

        if claims.get("role") not in ROLES or not isinstance(claims.get("id"), int):
            raise Forbidden("Invalid token.")

        return Identity(
            id=claims["id"],
            phone=claims.get("phone", ""),
            role=claims["role"],
            name=claims.get("name", ""),
        )
