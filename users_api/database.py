"""SQLite-backed persistence for users."""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

import anyio

from .config import Settings, resolve_database_path
from .errors import DuplicateEmail, StorageError
from .models import User, UserId
from .passwords import PasswordHasher
from .store import MemoryUserStore, UserStore, _current_timestamp

logger = logging.getLogger("users_api.database")

_LEGACY_CREATED_AT = "1970-01-01T00:00:00+00:00"
_UPDATABLE_COLUMNS = ("name", "email", "password_hash")
_MIN_ROW_ID = -(2**63)
_MAX_ROW_ID = 2**63 - 1


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _coerce_id(user_id: UserId) -> Optional[int]:
    if isinstance(user_id, bool):
        return None
    if isinstance(user_id, int):
        row_id = user_id
    else:
        text = str(user_id)
        if not (text.isascii() and text.isdigit()):
            return None
        row_id = int(text)
    # SQLite INTEGER is a signed 64-bit value
    if not _MIN_ROW_ID <= row_id <= _MAX_ROW_ID:
        return None
    return row_id


class SQLiteUserStore(UserStore):
    """Relational store with integer auto-increment ids and a unique email column."""

    def __init__(self, path: Path, hasher: PasswordHasher) -> None:
        super().__init__(hasher)
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self._path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise StorageError(f"Could not open database at {self._path}") from exc
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.IntegrityError as exc:
            if "users.email" in str(exc):
                raise DuplicateEmail() from exc
            raise StorageError(str(exc)) from exc
        except sqlite3.Error as exc:
            logger.error("Database operation failed: %s", exc)
            raise StorageError(str(exc)) from exc
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the users table, upgrading a legacy table that predates passwords."""

        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT UNIQUE NOT NULL,
                    password_hash TEXT,
                    created_at TEXT NOT NULL
                );
                """
            )

            columns = {
                row["name"]
                for row in conn.execute("PRAGMA table_info(users)").fetchall()
            }
            if "password_hash" not in columns:
                conn.execute("ALTER TABLE users ADD COLUMN password_hash TEXT")
            if "created_at" not in columns:
                conn.execute(
                    f"ALTER TABLE users ADD COLUMN created_at TEXT NOT NULL DEFAULT '{_LEGACY_CREATED_AT}'"
                )
        logger.info("Users table ready at %s", self._path)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def list_users(self) -> List[User]:
        return await anyio.to_thread.run_sync(self._list_users)

    async def get_user(self, user_id: UserId) -> Optional[User]:
        row_id = _coerce_id(user_id)
        if row_id is None:
            return None
        return await anyio.to_thread.run_sync(self._get_user, row_id)

    async def count_users(self) -> int:
        return await anyio.to_thread.run_sync(self._count_users)

    def _list_users(self) -> List[User]:
        with self._connect() as conn:
            rows = conn.execute("SELECT id, name, email, created_at FROM users ORDER BY id").fetchall()
        return [self._row_to_user(row) for row in rows]

    def _get_user(self, row_id: int) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, name, email, created_at FROM users WHERE id = ?",
                (row_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def _count_users(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS count FROM users").fetchone()
        return int(row["count"])

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def delete_user(self, user_id: UserId) -> bool:
        row_id = _coerce_id(user_id)
        if row_id is None:
            return False
        return await anyio.to_thread.run_sync(self._delete_user, row_id)

    def _delete_user(self, row_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM users WHERE id = ?", (row_id,))
            return cursor.rowcount > 0

    async def _insert_user(self, name: str, email: str, password_hash: Optional[str]) -> User:
        return await anyio.to_thread.run_sync(self._insert_user_sync, name, email, password_hash)

    def _insert_user_sync(self, name: str, email: str, password_hash: Optional[str]) -> User:
        created_at = _current_timestamp()
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO users (name, email, password_hash, created_at) VALUES (?, ?, ?, ?)",
                (name, email, password_hash, _serialize_datetime(created_at)),
            )
            user_id = cursor.lastrowid
        return User(id=int(user_id), name=name, email=email, created_at=created_at)

    async def _apply_update(self, user_id: UserId, fields: Dict[str, str]) -> Optional[User]:
        row_id = _coerce_id(user_id)
        if row_id is None:
            return None
        return await anyio.to_thread.run_sync(self._apply_update_sync, row_id, fields)

    def _apply_update_sync(self, row_id: int, fields: Dict[str, str]) -> Optional[User]:
        updates: List[str] = []
        values: List[object] = []
        for column in _UPDATABLE_COLUMNS:
            if column not in fields:
                continue
            updates.append(f"{column} = ?")
            values.append(fields[column])

        if not updates:
            return self._get_user(row_id)

        values.append(row_id)
        query = f"UPDATE users SET {', '.join(updates)} WHERE id = ?"

        with self._connect() as conn:
            cursor = conn.execute(query, values)
            if cursor.rowcount == 0:
                return None

        return self._get_user(row_id)

    async def _find_credentials(self, email: str) -> Optional[Tuple[User, Optional[str]]]:
        return await anyio.to_thread.run_sync(self._find_credentials_sync, email)

    def _find_credentials_sync(self, email: str) -> Optional[Tuple[User, Optional[str]]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, name, email, created_at, password_hash FROM users WHERE email = ?",
                (email,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row), row["password_hash"]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )


def build_store(settings: Settings, *, hasher: PasswordHasher | None = None) -> UserStore:
    """Construct the store selected by ``settings`` without initialising it."""

    if hasher is None:
        hasher = PasswordHasher(rounds=settings.password_rounds)
    if settings.store_backend == "memory":
        return MemoryUserStore(hasher)
    return SQLiteUserStore(settings.database_path, hasher)


__all__ = ["SQLiteUserStore", "build_store", "resolve_database_path"]
