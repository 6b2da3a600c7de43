"""
User store tests
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from authapi.config import Settings
from authapi.models.user import UserCreate, UserRole
from authapi.utils.database import (
    MemoryUserStore, PostgresUserStore, create_user_store
)
from authapi.utils.errors import DuplicateUser, InvalidRole, NotFound, StoreError


def new_user(email="ann@example.com", role=UserRole.USER, user_id=None):
    return UserCreate(id=user_id, email=email, full_name="Ann", role=role)


class TestMemoryUserStore:
    async def test_create_and_find(self, store):
        user = await store.create(new_user(email="Ann@Example.com"))
        assert user.email == "ann@example.com"
        assert user.role == UserRole.USER
        assert user.created_at == user.updated_at
        assert await store.find_by_id(user.id) == user
        assert await store.find_by_email("ANN@example.com") == user

    async def test_create_keeps_given_id(self, store):
        user_id = str(uuid.uuid4())
        user = await store.create(new_user(user_id=user_id))
        assert user.id == user_id

    async def test_duplicate_email(self, store):
        await store.create(new_user())
        with pytest.raises(DuplicateUser):
            await store.create(new_user())

    async def test_lookups_return_none(self, store):
        assert await store.find_by_id(str(uuid.uuid4())) is None
        assert await store.find_by_email("nobody@example.com") is None

    async def test_update_role(self, store):
        user = await store.create(new_user())
        updated = await store.update_role(user.id, "admin")
        assert updated.role == UserRole.ADMIN
        assert updated.updated_at >= user.updated_at

    async def test_update_role_rejects_unknown_role(self, store):
        user = await store.create(new_user())
        with pytest.raises(InvalidRole):
            await store.update_role(user.id, "superuser")
        assert (await store.find_by_id(user.id)).role == UserRole.USER

    async def test_update_ignores_unknown_fields(self, store):
        user = await store.create(new_user())
        updated = await store.update(user.id, {"full_name": "Ann B", "created_at": "yesterday"})
        assert updated.full_name == "Ann B"
        assert updated.created_at == user.created_at

    async def test_update_missing_user(self, store):
        with pytest.raises(NotFound):
            await store.update(str(uuid.uuid4()), {"full_name": "X"})

    async def test_update_email_conflict(self, store):
        await store.create(new_user(email="a@example.com"))
        user = await store.create(new_user(email="b@example.com"))
        with pytest.raises(DuplicateUser):
            await store.update(user.id, {"email": "a@example.com"})

    async def test_delete(self, store):
        user = await store.create(new_user())
        await store.delete(user.id)
        assert await store.find_by_id(user.id) is None
        with pytest.raises(NotFound):
            await store.delete(user.id)

    async def test_find_all_newest_first(self, store):
        first = await store.create(new_user(email="first@example.com"))
        second = await store.create(new_user(email="second@example.com", role=UserRole.ADMIN))
        # Force distinct timestamps
        store._users[first.id] = first.model_copy(
            update={"created_at": first.created_at - timedelta(minutes=1)}
        )

        users = await store.find_all()
        assert [u.id for u in users] == [second.id, first.id]

        admins = await store.find_all(UserRole.ADMIN)
        assert [u.id for u in admins] == [second.id]

    async def test_ping(self, store):
        assert await store.ping() is True


@pytest.fixture
def pg_store():
    """PostgresUserStore over a mocked asyncpg pool"""
    store = PostgresUserStore("postgresql://localhost/test")
    conn = AsyncMock()
    pool = MagicMock()
    pool.acquire.return_value.__aenter__ = AsyncMock(return_value=conn)
    pool.acquire.return_value.__aexit__ = AsyncMock(return_value=None)
    store._pool = pool
    return store, conn


def user_row(**overrides):
    now = datetime.now(timezone.utc)
    row = {
        "id": uuid.uuid4(),
        "email": "ann@example.com",
        "full_name": "Ann",
        "avatar_url": None,
        "role": "user",
        "provider": "email",
        "provider_id": None,
        "created_at": now,
        "updated_at": now,
    }
    row.update(overrides)
    return row


class TestPostgresUserStore:
    async def test_find_by_id_converts_uuid(self, pg_store):
        store, conn = pg_store
        row = user_row()
        conn.fetchrow.return_value = row
        user = await store.find_by_id(str(row["id"]))
        assert user.id == str(row["id"])
        assert user.role == UserRole.USER

    async def test_find_by_id_invalid_uuid_skips_query(self, pg_store):
        store, conn = pg_store
        assert await store.find_by_id("not-a-uuid") is None
        conn.fetchrow.assert_not_called()

    async def test_find_by_email_lowercases(self, pg_store):
        store, conn = pg_store
        conn.fetchrow.return_value = None
        assert await store.find_by_email(" Ann@Example.com ") is None
        assert conn.fetchrow.call_args.args[1] == "ann@example.com"

    async def test_create_duplicate(self, pg_store):
        store, conn = pg_store
        conn.fetchrow.side_effect = asyncpg.UniqueViolationError("duplicate key")
        with pytest.raises(DuplicateUser):
            await store.create(new_user())

    async def test_query_failure(self, pg_store):
        store, conn = pg_store
        conn.fetchrow.side_effect = OSError("connection reset")
        with pytest.raises(StoreError):
            await store.find_by_email("ann@example.com")

    async def test_update_builds_query(self, pg_store):
        store, conn = pg_store
        row = user_row(role="admin")
        conn.fetchrow.return_value = row
        user = await store.update_role(str(row["id"]), UserRole.ADMIN)
        assert user.role == UserRole.ADMIN
        query, *values = conn.fetchrow.call_args.args
        assert "role = $1" in query
        assert "updated_at = $2" in query
        assert "WHERE id = $3" in query
        assert values[0] == "admin"
        assert values[2] == str(row["id"])

    async def test_update_missing_user(self, pg_store):
        store, conn = pg_store
        conn.fetchrow.return_value = None
        with pytest.raises(NotFound):
            await store.update(str(uuid.uuid4()), {"full_name": "X"})

    async def test_delete_missing_user(self, pg_store):
        store, conn = pg_store
        conn.fetchrow.return_value = None
        with pytest.raises(NotFound):
            await store.delete(str(uuid.uuid4()))

    async def test_delete_invalid_uuid(self, pg_store):
        store, conn = pg_store
        with pytest.raises(NotFound):
            await store.delete("not-a-uuid")
        conn.fetchrow.assert_not_called()

    async def test_find_all_with_role(self, pg_store):
        store, conn = pg_store
        conn.fetch.return_value = [user_row(role="admin")]
        users = await store.find_all(UserRole.ADMIN)
        assert len(users) == 1
        query, role = conn.fetch.call_args.args
        assert "ORDER BY created_at DESC" in query
        assert role == "admin"


def test_create_user_store_backend():
    settings = Settings(_env_file=None, jwt_secret="x", user_store_backend="memory")
    assert isinstance(create_user_store(settings), MemoryUserStore)

    settings = Settings(
        _env_file=None, jwt_secret="x", user_store_backend="postgres",
        database_url="postgresql://db/auth"
    )
    store = create_user_store(settings)
    assert isinstance(store, PostgresUserStore)
    assert store.dsn == "postgresql://db/auth"
