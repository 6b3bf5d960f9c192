"""Domain models for the user service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

UserId = Union[int, str]


@dataclass(frozen=True)
class User:
    """A stored user as seen by readers. The password hash never leaves the store."""

    id: UserId
    name: str
    email: str
    created_at: datetime


@dataclass(frozen=True)
class UserUpdate:
    """Fields supplied to a partial update; ``None`` means "leave untouched"."""

    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None

    def is_empty(self) -> bool:
        return self.name is None and self.email is None and self.password is None


def normalize_email(email: str) -> str:
    return email.strip().lower()


__all__ = ["User", "UserId", "UserUpdate", "normalize_email"]
