"""Storage contract for user records plus the document-style in-memory backend."""
from __future__ import annotations

import abc
import secrets
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import anyio

from .errors import DuplicateEmail
from .models import User, UserId, UserUpdate, normalize_email
from .passwords import PasswordHasher

DEFAULT_SEED_USERS: Sequence[Tuple[str, str]] = (
    ("Alice Smith", "alice@example.com"),
    ("Bob Johnson", "bob@example.com"),
    ("Charlie Brown", "charlie@example.com"),
)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


class UserStore(abc.ABC):
    """Persistence for user records.

    Subclasses implement the raw record operations; this base class owns
    everything that touches passwords so that a plaintext secret is hashed
    exactly once on its way in and a hash never travels back out through
    :class:`~users_api.models.User`.
    """

    def __init__(self, hasher: PasswordHasher) -> None:
        self._hasher = hasher

    def initialize(self) -> None:
        """Prepare the backing storage. Safe to call more than once."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @abc.abstractmethod
    async def list_users(self) -> List[User]:
        ...

    @abc.abstractmethod
    async def get_user(self, user_id: UserId) -> Optional[User]:
        ...

    @abc.abstractmethod
    async def delete_user(self, user_id: UserId) -> bool:
        ...

    async def create_user(self, name: str, email: str, password: Optional[str] = None) -> User:
        """Insert a new user; raises :class:`DuplicateEmail` if the email is taken."""

        password_hash = await self._hash_password(password) if password is not None else None
        return await self._insert_user(name, normalize_email(email), password_hash)

    async def update_user(self, user_id: UserId, changes: UserUpdate) -> Optional[User]:
        """Apply only the supplied fields; returns ``None`` if the user does not exist."""

        fields: Dict[str, str] = {}
        if changes.name is not None:
            fields["name"] = changes.name
        if changes.email is not None:
            fields["email"] = normalize_email(changes.email)
        if changes.password is not None:
            fields["password_hash"] = await self._hash_password(changes.password)

        if not fields:
            return await self.get_user(user_id)
        return await self._apply_update(user_id, fields)

    async def authenticate(self, email: str, password: str) -> Optional[User]:
        """Return the user owning ``email`` if ``password`` matches its stored hash."""

        found = await self._find_credentials(normalize_email(email))
        if found is None or not found[1]:
            await anyio.to_thread.run_sync(self._hasher.dummy_verify)
            return None

        user, password_hash = found
        matches = await anyio.to_thread.run_sync(self._hasher.verify, password, password_hash)
        return user if matches else None

    async def count_users(self) -> int:
        return len(await self.list_users())

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------
    @abc.abstractmethod
    async def _insert_user(self, name: str, email: str, password_hash: Optional[str]) -> User:
        ...

    @abc.abstractmethod
    async def _apply_update(self, user_id: UserId, fields: Dict[str, str]) -> Optional[User]:
        ...

    @abc.abstractmethod
    async def _find_credentials(self, email: str) -> Optional[Tuple[User, Optional[str]]]:
        ...

    async def _hash_password(self, password: str) -> str:
        return await anyio.to_thread.run_sync(self._hasher.hash, password)


@dataclass
class _Document:
    id: str
    name: str
    email: str
    password_hash: Optional[str]
    created_at: datetime

    def to_user(self) -> User:
        return User(id=self.id, name=self.name, email=self.email, created_at=self.created_at)


class MemoryUserStore(UserStore):
    """Document-style store keeping users in process memory.

    Ids are generated 24-character hex strings. A unique email index is
    maintained under a lock, so concurrent writers racing for the same
    address see exactly one success.
    """

    def __init__(self, hasher: PasswordHasher) -> None:
        super().__init__(hasher)
        self._documents: Dict[str, _Document] = {}
        self._email_index: Dict[str, str] = {}
        self._lock = threading.Lock()

    async def list_users(self) -> List[User]:
        with self._lock:
            return [document.to_user() for document in self._documents.values()]

    async def get_user(self, user_id: UserId) -> Optional[User]:
        with self._lock:
            document = self._documents.get(str(user_id))
            return document.to_user() if document is not None else None

    async def delete_user(self, user_id: UserId) -> bool:
        with self._lock:
            document = self._documents.pop(str(user_id), None)
            if document is None:
                return False
            self._email_index.pop(document.email, None)
            return True

    async def _insert_user(self, name: str, email: str, password_hash: Optional[str]) -> User:
        with self._lock:
            if email in self._email_index:
                raise DuplicateEmail()
            document_id = self._generate_id()
            document = _Document(
                id=document_id,
                name=name,
                email=email,
                password_hash=password_hash,
                created_at=_current_timestamp(),
            )
            self._documents[document_id] = document
            self._email_index[email] = document_id
            return document.to_user()

    async def _apply_update(self, user_id: UserId, fields: Dict[str, str]) -> Optional[User]:
        with self._lock:
            document = self._documents.get(str(user_id))
            if document is None:
                return None
            new_email = fields.get("email")
            if new_email is not None and self._email_index.get(new_email, document.id) != document.id:
                raise DuplicateEmail()

            updated = replace(document, **fields)
            self._documents[document.id] = updated
            if updated.email != document.email:
                self._email_index.pop(document.email, None)
                self._email_index[updated.email] = document.id
            return updated.to_user()

    async def _find_credentials(self, email: str) -> Optional[Tuple[User, Optional[str]]]:
        with self._lock:
            document_id = self._email_index.get(email)
            if document_id is None:
                return None
            document = self._documents[document_id]
            return document.to_user(), document.password_hash

    def _generate_id(self) -> str:
        while True:
            candidate = secrets.token_hex(12)
            if candidate not in self._documents:
                return candidate


async def seed_default_users(store: UserStore) -> int:
    """Insert the demo users when the store is empty; returns how many were added."""

    if await store.count_users() > 0:
        return 0
    for name, email in DEFAULT_SEED_USERS:
        await store.create_user(name, email)
    return len(DEFAULT_SEED_USERS)


__all__ = ["DEFAULT_SEED_USERS", "MemoryUserStore", "UserStore", "seed_default_users"]
