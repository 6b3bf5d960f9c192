"""Behaviour shared by every user store backend."""

from __future__ import annotations

from pathlib import Path

import anyio
import pytest

from users_api.database import SQLiteUserStore
from users_api.errors import DuplicateEmail
from users_api.models import UserUpdate
from users_api.passwords import PasswordHasher
from users_api.store import DEFAULT_SEED_USERS, MemoryUserStore, UserStore, seed_default_users

pytestmark = pytest.mark.anyio


@pytest.fixture(params=["sqlite", "memory"])
def store(request, tmp_path: Path, hasher: PasswordHasher) -> UserStore:
    if request.param == "sqlite":
        backend: UserStore = SQLiteUserStore(tmp_path / "users.sqlite3", hasher)
    else:
        backend = MemoryUserStore(hasher)
    backend.initialize()
    return backend


async def test_create_assigns_unique_ids(store: UserStore) -> None:
    first = await store.create_user("Alice", "alice@example.com", "pw")
    second = await store.create_user("Bob", "bob@example.com", "pw")

    assert first.id != second.id
    assert [user.id for user in await store.list_users()] == [first.id, second.id]


async def test_read_projection_has_no_password(store: UserStore) -> None:
    created = await store.create_user("Alice", "alice@example.com", "pw")
    fetched = await store.get_user(created.id)

    assert fetched == created
    assert not hasattr(fetched, "password")
    assert not hasattr(fetched, "password_hash")


async def test_email_is_normalised(store: UserStore) -> None:
    user = await store.create_user("Alice", "  Alice@Example.COM ")
    assert user.email == "alice@example.com"


async def test_duplicate_email_is_rejected(store: UserStore) -> None:
    await store.create_user("Alice", "alice@example.com")

    with pytest.raises(DuplicateEmail):
        await store.create_user("Impostor", "ALICE@example.com")

    assert await store.count_users() == 1


async def test_concurrent_creates_with_same_email(store: UserStore) -> None:
    outcomes: list = []

    async def attempt(name: str) -> None:
        try:
            outcomes.append(await store.create_user(name, "race@example.com"))
        except DuplicateEmail as exc:
            outcomes.append(exc)

    async with anyio.create_task_group() as task_group:
        task_group.start_soon(attempt, "First")
        task_group.start_soon(attempt, "Second")

    failures = [outcome for outcome in outcomes if isinstance(outcome, DuplicateEmail)]
    assert len(outcomes) == 2
    assert len(failures) == 1
    assert await store.count_users() == 1


async def test_get_missing_user_returns_none(store: UserStore) -> None:
    assert await store.get_user("999999") is None


async def test_partial_update_touches_only_supplied_fields(store: UserStore) -> None:
    user = await store.create_user("Alice", "alice@example.com", "pw")

    updated = await store.update_user(user.id, UserUpdate(name="Alice Smith"))

    assert updated is not None
    assert updated.name == "Alice Smith"
    assert updated.email == "alice@example.com"
    assert updated.id == user.id
    assert await store.authenticate("alice@example.com", "pw") is not None


async def test_empty_update_leaves_record_unchanged(store: UserStore) -> None:
    user = await store.create_user("Alice", "alice@example.com")
    assert await store.update_user(user.id, UserUpdate()) == user


async def test_update_email_collision(store: UserStore) -> None:
    await store.create_user("Alice", "alice@example.com")
    bob = await store.create_user("Bob", "bob@example.com")

    with pytest.raises(DuplicateEmail):
        await store.update_user(bob.id, UserUpdate(email="alice@example.com"))

    assert (await store.get_user(bob.id)).email == "bob@example.com"


async def test_update_to_own_email_is_allowed(store: UserStore) -> None:
    alice = await store.create_user("Alice", "alice@example.com")
    updated = await store.update_user(alice.id, UserUpdate(email="Alice@example.com", name="A"))
    assert updated is not None
    assert updated.email == "alice@example.com"


async def test_update_email_frees_old_address(store: UserStore) -> None:
    alice = await store.create_user("Alice", "alice@example.com")
    await store.update_user(alice.id, UserUpdate(email="b@example.com"))

    reused = await store.create_user("Newcomer", "alice@example.com")
    assert reused.id != alice.id


async def test_update_missing_user_returns_none(store: UserStore) -> None:
    assert await store.update_user("424242", UserUpdate(name="Ghost")) is None


async def test_password_update_rehashes(store: UserStore) -> None:
    user = await store.create_user("Alice", "alice@example.com", "old-password")

    await store.update_user(user.id, UserUpdate(password="new-password"))

    assert await store.authenticate("alice@example.com", "old-password") is None
    assert await store.authenticate("alice@example.com", "new-password") == user


async def test_authenticate_rejects_unknown_and_passwordless_users(store: UserStore) -> None:
    await store.create_user("No Password", "nopw@example.com")

    assert await store.authenticate("ghost@example.com", "pw") is None
    assert await store.authenticate("nopw@example.com", "pw") is None


async def test_delete(store: UserStore) -> None:
    user = await store.create_user("Alice", "alice@example.com")

    assert await store.delete_user(user.id) is True
    assert await store.get_user(user.id) is None
    assert await store.delete_user(user.id) is False


async def test_delete_missing_user_keeps_count(store: UserStore) -> None:
    await store.create_user("Alice", "alice@example.com")

    assert await store.delete_user("31337") is False
    assert await store.count_users() == 1


async def test_seed_default_users_only_when_empty(store: UserStore) -> None:
    assert await seed_default_users(store) == len(DEFAULT_SEED_USERS)
    assert await seed_default_users(store) == 0

    emails = sorted(user.email for user in await store.list_users())
    assert emails == sorted(email for _, email in DEFAULT_SEED_USERS)
