"""Signed, time-limited session tokens.

Tokens are HS256 JSON Web Tokens carrying the owning user's id and an
expiry. Nothing is persisted: a token is valid exactly when its signature
checks out against the configured secret and it has not expired.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from .models import UserId

ALGORITHM = "HS256"
DEFAULT_TTL = timedelta(hours=1)


class InvalidToken(Exception):
    """Raised for any token that fails signature, format or expiry checks."""


@dataclass(frozen=True)
class TokenClaims:
    user_id: UserId
    expires_at: datetime


class TokenService:
    """Issue and verify bearer tokens for authenticated users."""

    def __init__(self, secret: str | None, *, ttl: timedelta = DEFAULT_TTL) -> None:
        if not secret:
            raise ValueError("A token signing secret must be provided")
        if ttl <= timedelta(0):
            raise ValueError("Token lifetime must be positive")
        self._secret = secret
        self._ttl = ttl

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, user_id: UserId) -> str:
        issued_at = self._now()
        payload = {
            "user_id": user_id,
            "iat": issued_at,
            "exp": issued_at + self._ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["exp", "user_id"]},
            )
        except jwt.PyJWTError as exc:
            raise InvalidToken(str(exc)) from exc

        user_id = payload["user_id"]
        if not isinstance(user_id, (int, str)) or isinstance(user_id, bool):
            raise InvalidToken("Token carries an unusable user id")
        expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        return TokenClaims(user_id=user_id, expires_at=expires_at)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)


__all__ = ["ALGORITHM", "DEFAULT_TTL", "InvalidToken", "TokenClaims", "TokenService"]
