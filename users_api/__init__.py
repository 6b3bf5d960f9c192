"""User management API: CRUD over a persistent store with token sessions."""

from __future__ import annotations

from typing import Any

from .config import Settings, load_settings, resolve_database_path
from .database import SQLiteUserStore, build_store
from .store import MemoryUserStore, UserStore


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "MemoryUserStore",
    "SQLiteUserStore",
    "Settings",
    "UserStore",
    "build_store",
    "create_app",
    "load_settings",
    "resolve_database_path",
]
