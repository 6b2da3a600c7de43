"""
User Store
Persistence for local user records, backed by PostgreSQL (asyncpg) or memory
"""

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional
import logging

import asyncpg

from authapi.config import Settings
from authapi.models.user import AuthProvider, User, UserCreate, UserRole
from authapi.utils.errors import DuplicateUser, InvalidRole, NotFound, StoreError

logger = logging.getLogger(__name__)

USER_COLUMNS = (
    "id, email, full_name, avatar_url, role, provider, provider_id, created_at, updated_at"
)

UPDATABLE_FIELDS = {"email", "full_name", "avatar_url", "role", "provider", "provider_id"}

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    email TEXT NOT NULL UNIQUE,
    full_name TEXT NOT NULL,
    avatar_url TEXT,
    role TEXT NOT NULL DEFAULT 'user' CHECK (role IN ('user', 'admin')),
    provider TEXT NOT NULL DEFAULT 'email' CHECK (provider IN ('google', 'email')),
    provider_id TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS users_created_at_idx ON users (created_at DESC);
"""


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
        return True
    except ValueError:
        return False


def _validate_role(role) -> UserRole:
    try:
        return UserRole(role)
    except ValueError:
        raise InvalidRole(role)


def _clean_updates(fields: Dict) -> Dict:
    updates = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
    if "role" in updates:
        updates["role"] = _validate_role(updates["role"]).value
    if "email" in updates:
        updates["email"] = updates["email"].strip().lower()
    if "provider" in updates:
        updates["provider"] = AuthProvider(updates["provider"]).value
    return updates


class UserStore:
    """
    CRUD over user records

    Lookups return None or an empty list when nothing matches; mutations on a
    missing id raise NotFound; unexpected backend failures raise StoreError.
    """

    async def init(self) -> None:
        """Prepare the backend (connections, schema)"""

    async def close(self) -> None:
        """Release backend resources"""

    async def ping(self) -> bool:
        raise NotImplementedError

    async def find_by_id(self, user_id: str) -> Optional[User]:
        raise NotImplementedError

    async def find_by_email(self, email: str) -> Optional[User]:
        raise NotImplementedError

    async def create(self, fields: UserCreate) -> User:
        raise NotImplementedError

    async def update(self, user_id: str, fields: Dict) -> User:
        raise NotImplementedError

    async def update_role(self, user_id: str, role) -> User:
        """
        Change a user's role

        Raises:
            InvalidRole: If role is not "user" or "admin"
            NotFound: If the user does not exist
        """
        role = _validate_role(role)
        return await self.update(user_id, {"role": role.value})

    async def delete(self, user_id: str) -> None:
        raise NotImplementedError

    async def find_all(self, role: Optional[UserRole] = None) -> List[User]:
        raise NotImplementedError


class PostgresUserStore(UserStore):
    """User store over an asyncpg connection pool"""

    def __init__(self, dsn: str, min_size: int = 1, max_size: int = 10, command_timeout: float = 30.0):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self._pool: Optional[asyncpg.Pool] = None

    async def init(self) -> None:
        """Initialize database connection pool and schema"""
        if self._pool is not None:
            return
        try:
            self._pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout
            )
            logger.info("Database connection pool initialized successfully")

            async with self._pool.acquire() as conn:
                await conn.execute(SCHEMA_SQL)
            logger.info("Users table ready")

        except (OSError, asyncpg.PostgresError) as e:
            logger.error(f"Failed to initialize database pool: {e}")
            raise StoreError("Database connection failed") from e

    async def close(self) -> None:
        """Close database connection pool"""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Database connection pool closed")

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            await self.init()
        return self._pool

    async def _fetchrow(self, query: str, *args) -> Optional[asyncpg.Record]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.fetchrow(query, *args)
        except asyncpg.UniqueViolationError as e:
            raise DuplicateUser("User with this email already exists") from e
        except (OSError, asyncpg.PostgresError) as e:
            logger.error(f"Database query failed: {e}")
            raise StoreError("Database operation failed") from e

    async def _fetch(self, query: str, *args) -> List[asyncpg.Record]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.fetch(query, *args)
        except (OSError, asyncpg.PostgresError) as e:
            logger.error(f"Database query failed: {e}")
            raise StoreError("Database operation failed") from e

    async def ping(self) -> bool:
        row = await self._fetchrow("SELECT 1 AS test")
        return row is not None and row["test"] == 1

    async def find_by_id(self, user_id: str) -> Optional[User]:
        if not _is_uuid(user_id):
            return None
        row = await self._fetchrow(
            f"SELECT {USER_COLUMNS} FROM users WHERE id = $1", str(user_id)
        )
        return User(**dict(row)) if row else None

    async def find_by_email(self, email: str) -> Optional[User]:
        row = await self._fetchrow(
            f"SELECT {USER_COLUMNS} FROM users WHERE email = $1", email.strip().lower()
        )
        return User(**dict(row)) if row else None

    async def create(self, fields: UserCreate) -> User:
        now = datetime.now(timezone.utc)
        user_id = fields.id if fields.id and _is_uuid(fields.id) else str(uuid.uuid4())
        query = f"""
        INSERT INTO users (id, email, full_name, avatar_url, role, provider,
                           provider_id, created_at, updated_at)
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $8)
        RETURNING {USER_COLUMNS}
        """
        row = await self._fetchrow(
            query,
            user_id,
            fields.email,
            fields.full_name,
            fields.avatar_url,
            fields.role.value,
            fields.provider.value,
            fields.provider_id,
            now,
        )
        logger.info(f"User created with ID: {row['id']}")
        return User(**dict(row))

    async def update(self, user_id: str, fields: Dict) -> User:
        updates = _clean_updates(fields)
        if not _is_uuid(user_id):
            raise NotFound("User not found")
        if not updates:
            user = await self.find_by_id(user_id)
            if not user:
                raise NotFound("User not found")
            return user

        # Build dynamic update query
        set_clauses = []
        values = []
        for key, value in updates.items():
            values.append(value)
            set_clauses.append(f"{key} = ${len(values)}")

        values.append(datetime.now(timezone.utc))
        set_clauses.append(f"updated_at = ${len(values)}")

        values.append(str(user_id))
        query = f"""
        UPDATE users
        SET {', '.join(set_clauses)}
        WHERE id = ${len(values)}
        RETURNING {USER_COLUMNS}
        """
        row = await self._fetchrow(query, *values)
        if not row:
            raise NotFound("User not found")
        return User(**dict(row))

    async def delete(self, user_id: str) -> None:
        if not _is_uuid(user_id):
            raise NotFound("User not found")
        row = await self._fetchrow(
            "DELETE FROM users WHERE id = $1 RETURNING id", str(user_id)
        )
        if not row:
            raise NotFound("User not found")
        logger.info(f"User deleted: {user_id}")

    async def find_all(self, role: Optional[UserRole] = None) -> List[User]:
        if role is not None:
            rows = await self._fetch(
                f"SELECT {USER_COLUMNS} FROM users WHERE role = $1 ORDER BY created_at DESC",
                _validate_role(role).value,
            )
        else:
            rows = await self._fetch(
                f"SELECT {USER_COLUMNS} FROM users ORDER BY created_at DESC"
            )
        return [User(**dict(row)) for row in rows]


class MemoryUserStore(UserStore):
    """In-process user store for local development and tests"""

    def __init__(self):
        self._users: Dict[str, User] = {}
        self._lock = asyncio.Lock()

    async def ping(self) -> bool:
        return True

    async def find_by_id(self, user_id: str) -> Optional[User]:
        return self._users.get(str(user_id))

    async def find_by_email(self, email: str) -> Optional[User]:
        email = email.strip().lower()
        for user in self._users.values():
            if user.email == email:
                return user
        return None

    async def create(self, fields: UserCreate) -> User:
        async with self._lock:
            if await self.find_by_email(fields.email):
                raise DuplicateUser("User with this email already exists")
            user_id = fields.id or str(uuid.uuid4())
            if user_id in self._users:
                raise DuplicateUser("User with this id already exists")

            now = datetime.now(timezone.utc)
            user = User(
                id=user_id,
                email=fields.email,
                full_name=fields.full_name,
                avatar_url=fields.avatar_url,
                role=fields.role,
                provider=fields.provider,
                provider_id=fields.provider_id,
                created_at=now,
                updated_at=now,
            )
            self._users[user.id] = user
        logger.info(f"User created with ID: {user.id}")
        return user

    async def update(self, user_id: str, fields: Dict) -> User:
        updates = _clean_updates(fields)
        async with self._lock:
            user = self._users.get(str(user_id))
            if not user:
                raise NotFound("User not found")
            if not updates:
                return user
            if "email" in updates:
                existing = await self.find_by_email(updates["email"])
                if existing and existing.id != user.id:
                    raise DuplicateUser("User with this email already exists")
            updated = user.model_copy(
                update={**updates, "updated_at": datetime.now(timezone.utc)}
            )
            # model_copy skips validation, so re-validate enum fields
            updated = User.model_validate(updated.model_dump())
            self._users[updated.id] = updated
        return updated

    async def delete(self, user_id: str) -> None:
        async with self._lock:
            if self._users.pop(str(user_id), None) is None:
                raise NotFound("User not found")
        logger.info(f"User deleted: {user_id}")

    async def find_all(self, role: Optional[UserRole] = None) -> List[User]:
        users = list(self._users.values())
        if role is not None:
            role = _validate_role(role)
            users = [u for u in users if u.role == role]
        return sorted(users, key=lambda u: u.created_at, reverse=True)


def create_user_store(settings: Settings) -> UserStore:
    """Build the user store selected by USER_STORE_BACKEND"""
    if settings.user_store_backend == "memory":
        logger.warning("Using in-memory user store; data is lost on restart")
        return MemoryUserStore()
    return PostgresUserStore(
        settings.postgres_dsn,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        command_timeout=settings.db_command_timeout,
    )
