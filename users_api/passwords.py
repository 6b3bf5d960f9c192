"""Password hashing and verification."""
from __future__ import annotations

from passlib.context import CryptContext

DEFAULT_ROUNDS = 600_000


class PasswordHasher:
    """Salted PBKDF2-SHA256 hashing backed by a passlib :class:`CryptContext`."""

    def __init__(self, *, rounds: int = DEFAULT_ROUNDS) -> None:
        if rounds <= 0:
            raise ValueError("rounds must be positive")
        self._context = CryptContext(
            schemes=["pbkdf2_sha256"],
            deprecated="auto",
            pbkdf2_sha256__default_rounds=rounds,
        )

    def hash(self, password: str) -> str:
        if not password:
            raise ValueError("Password must not be empty")
        return self._context.hash(password)

    def verify(self, password: str, hashed: str) -> bool:
        """Return ``True`` if ``password`` matches ``hashed``; malformed hashes never match."""

        if not hashed:
            return False
        try:
            return self._context.verify(password, hashed)
        except (ValueError, TypeError):
            return False

    def dummy_verify(self) -> None:
        """Spend the time a real verification would, for callers with no hash to check."""

        self._context.dummy_verify()


__all__ = ["DEFAULT_ROUNDS", "PasswordHasher"]
