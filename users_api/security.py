"""Security helpers for the user API."""
from __future__ import annotations

from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import AuthInvalid, AuthMissing
from .tokens import InvalidToken, TokenClaims, TokenService


class BearerTokenAuth:
    """Resolve ``Authorization: Bearer <token>`` into verified token claims.

    A missing header, a non-bearer scheme or an empty token raise
    :class:`AuthMissing` (401); a token that fails verification raises
    :class:`AuthInvalid` (403).
    """

    def __init__(self, tokens: TokenService) -> None:
        self._tokens = tokens
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> TokenClaims:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise AuthMissing()

        provided = credentials.credentials.strip()
        if not provided:
            raise AuthMissing()

        try:
            return self._tokens.verify(provided)
        except InvalidToken as exc:
            raise AuthInvalid() from exc


__all__ = ["BearerTokenAuth"]
