"""Configuration management for the user service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

STORE_BACKENDS = ("sqlite", "memory")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

_ENV_KEYS = {
    "USERS_API_DB_PATH": "database_path",
    "USERS_API_STORE": "store_backend",
    "USERS_API_AUTH_ENABLED": "auth_enabled",
    "USERS_API_TOKEN_TTL_SECONDS": "token_ttl_seconds",
    "USERS_API_PASSWORD_ROUNDS": "password_rounds",
    "USERS_API_STATIC_DIR": "static_dir",
}
_PATH_FIELDS = {"database_path", "static_dir"}


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the user database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "users.sqlite3").resolve(strict=False)


def _parse_flag(value: object) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def _resolve_path(raw: object, base_path: Path | None) -> Path:
    path = Path(str(raw)).expanduser()
    if not path.is_absolute() and base_path is not None:
        path = base_path / path
    return path.resolve(strict=False)


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, loaded once before serving begins."""

    database_path: Path
    store_backend: str = "sqlite"
    auth_enabled: bool = True
    jwt_secret: Optional[str] = None
    token_ttl: timedelta = timedelta(hours=1)
    password_rounds: int = 600_000
    static_dir: Optional[Path] = None

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""

        raw_db_path = data.get("database_path")
        if raw_db_path:
            database_path = _resolve_path(raw_db_path, base_path)
        else:
            database_path = resolve_database_path(None)

        store_backend = str(data.get("store_backend") or "sqlite").strip().lower()
        if store_backend not in STORE_BACKENDS:
            raise ValueError(
                f"Unknown store backend '{store_backend}'; expected one of: {', '.join(STORE_BACKENDS)}"
            )

        ttl_seconds = int(data.get("token_ttl_seconds", 3600))
        if ttl_seconds <= 0:
            raise ValueError("token_ttl_seconds must be positive")

        rounds = int(data.get("password_rounds", 600_000))
        if rounds <= 0:
            raise ValueError("password_rounds must be positive")

        secret = data.get("jwt_secret")
        static_dir = data.get("static_dir")

        return Settings(
            database_path=database_path,
            store_backend=store_backend,
            auth_enabled=_parse_flag(data.get("auth_enabled", True)),
            jwt_secret=str(secret) if secret else None,
            token_ttl=timedelta(seconds=ttl_seconds),
            password_rounds=rounds,
            static_dir=_resolve_path(static_dir, base_path) if static_dir else None,
        )


def load_config_file(config_path: Path) -> Dict[str, object]:
    """Load raw settings from a YAML file."""
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a mapping at the top level")
    return raw


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build settings from the optional YAML file, overridden by environment variables."""

    env = os.environ if environ is None else environ

    data: Dict[str, object] = {}
    base_path: Path | None = None
    config_file = env.get("USERS_API_CONFIG")
    if config_file:
        config_path = Path(config_file).expanduser().resolve(strict=False)
        data.update(load_config_file(config_path))
        base_path = config_path.parent

    for env_key, field_name in _ENV_KEYS.items():
        value = env.get(env_key)
        if not value:
            continue
        if field_name in _PATH_FIELDS:
            # environment paths resolve against the working directory, not the config file
            value = str(Path(value).expanduser().resolve(strict=False))
        data[field_name] = value

    secret = env.get("USERS_API_JWT_SECRET") or env.get("JWT_SECRET")
    if secret:
        data["jwt_secret"] = secret

    return Settings.from_dict(data, base_path=base_path)


__all__ = ["STORE_BACKENDS", "Settings", "load_config_file", "load_settings", "resolve_database_path"]
