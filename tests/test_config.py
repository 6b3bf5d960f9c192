from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from users_api.config import Settings, load_settings, resolve_database_path


def test_defaults_without_environment() -> None:
    settings = load_settings({})

    assert settings.database_path == resolve_database_path(None)
    assert settings.database_path.name == "users.sqlite3"
    assert settings.store_backend == "sqlite"
    assert settings.auth_enabled is True
    assert settings.jwt_secret is None
    assert settings.token_ttl == timedelta(hours=1)
    assert settings.static_dir is None


def test_environment_overrides(tmp_path: Path) -> None:
    settings = load_settings(
        {
            "USERS_API_DB_PATH": str(tmp_path / "custom.sqlite3"),
            "USERS_API_STORE": "Memory",
            "USERS_API_AUTH_ENABLED": "off",
            "USERS_API_TOKEN_TTL_SECONDS": "120",
            "USERS_API_PASSWORD_ROUNDS": "5000",
            "USERS_API_JWT_SECRET": "primary",
            "JWT_SECRET": "fallback",
        }
    )

    assert settings.database_path == (tmp_path / "custom.sqlite3").resolve()
    assert settings.store_backend == "memory"
    assert settings.auth_enabled is False
    assert settings.token_ttl == timedelta(seconds=120)
    assert settings.password_rounds == 5000
    assert settings.jwt_secret == "primary"


def test_plain_jwt_secret_is_accepted() -> None:
    assert load_settings({"JWT_SECRET": "from-dotenv"}).jwt_secret == "from-dotenv"


def test_yaml_file_with_environment_override(tmp_path: Path) -> None:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    config_file = config_dir / "users.yaml"
    config_file.write_text(
        "database_path: data/users.sqlite3\n"
        "static_dir: public\n"
        "jwt_secret: from-file\n"
        "token_ttl_seconds: 900\n",
        encoding="utf-8",
    )

    settings = load_settings({"USERS_API_CONFIG": str(config_file), "USERS_API_JWT_SECRET": "from-env"})

    assert settings.database_path == (config_dir / "data" / "users.sqlite3").resolve()
    assert settings.static_dir == (config_dir / "public").resolve()
    assert settings.token_ttl == timedelta(seconds=900)
    assert settings.jwt_secret == "from-env"


def test_yaml_file_must_be_mapping(tmp_path: Path) -> None:
    config_file = tmp_path / "users.yaml"
    config_file.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_settings({"USERS_API_CONFIG": str(config_file)})


@pytest.mark.parametrize(
    "data",
    [
        {"store_backend": "postgres"},
        {"auth_enabled": "maybe"},
        {"token_ttl_seconds": 0},
        {"password_rounds": -1},
    ],
)
def test_invalid_values_are_rejected(data: dict) -> None:
    with pytest.raises(ValueError):
        Settings.from_dict(data)
