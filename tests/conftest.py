"""
Pytest fixtures for Auth API tests
"""

import asyncio
import os
import uuid
from typing import Dict, Optional, Tuple

# Settings are read at import time by the module-level singletons
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("USER_STORE_BACKEND", "memory")
os.environ.setdefault("ENVIRONMENT", "testing")

import pytest
from fastapi.testclient import TestClient

from authapi.config import Settings
from authapi.main import create_app
from authapi.models.user import (
    AuthProvider, ProviderAuthResult, ProviderIdentity, ProviderSession,
    User, UserCreate, UserRole
)
from authapi.services.token_service import TokenService, get_token_service
from authapi.utils.database import MemoryUserStore
from authapi.utils.errors import IdentityProviderError
from authapi.utils.supabase_client import IdentityProvider, get_identity_provider


TEST_SECRET = "test-secret"


class FakeIdentityProvider(IdentityProvider):
    """In-memory stand-in for Supabase Auth"""

    def __init__(self):
        self.accounts: Dict[str, Tuple[str, str, str]] = {}
        self.oauth_sessions: Dict[str, ProviderIdentity] = {}
        self.confirm_email = False

    async def sign_up(self, email, password, full_name):
        if email in self.accounts:
            raise IdentityProviderError("User already registered", status_code=400)
        provider_id = str(uuid.uuid4())
        self.accounts[email] = (provider_id, password, full_name)
        identity = ProviderIdentity(provider_id=provider_id, email=email, full_name=full_name)
        session = None if self.confirm_email else ProviderSession(access_token=f"sb-{provider_id}")
        return ProviderAuthResult(identity=identity, session=session)

    async def sign_in_with_password(self, email, password):
        account = self.accounts.get(email)
        if not account or account[1] != password:
            raise IdentityProviderError("Invalid login credentials", status_code=401)
        provider_id, _, full_name = account
        return ProviderAuthResult(
            identity=ProviderIdentity(provider_id=provider_id, email=email, full_name=full_name),
            session=ProviderSession(access_token=f"sb-{provider_id}"),
        )

    async def get_oauth_url(self, provider="google"):
        return f"https://auth.example.com/authorize?provider={provider}"

    async def get_user(self, access_token):
        identity = self.oauth_sessions.get(access_token)
        if identity is None:
            raise IdentityProviderError("Invalid access token", status_code=401)
        return identity

    def add_google_user(
        self, access_token: str, email: str, full_name: str = "Google User",
        provider_id: Optional[str] = None
    ) -> ProviderIdentity:
        identity = ProviderIdentity(
            provider_id=provider_id or str(uuid.uuid4()),
            email=email,
            full_name=full_name,
            avatar_url="https://example.com/avatar.png",
            provider=AuthProvider.GOOGLE,
        )
        self.oauth_sessions[access_token] = identity
        return identity


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        jwt_secret=TEST_SECRET,
        user_store_backend="memory",
        environment="testing",
    )


@pytest.fixture
def store() -> MemoryUserStore:
    return MemoryUserStore()


@pytest.fixture
def provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(TEST_SECRET)


@pytest.fixture
def app(settings, store, provider, token_service):
    app = create_app(settings)
    app.state.user_store = store
    app.dependency_overrides[get_identity_provider] = lambda: provider
    app.dependency_overrides[get_token_service] = lambda: token_service
    return app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def seed_user(store, token_service):
    """Create a user directly in the store and return it with an access token"""

    def _seed(email: str, role: UserRole = UserRole.USER, full_name: str = "Test User"):
        user = asyncio.run(store.create(
            UserCreate(id=str(uuid.uuid4()), email=email, full_name=full_name, role=role)
        ))
        return user, token_service.issue(user).accessToken

    return _seed


@pytest.fixture
def admin(seed_user) -> Tuple[User, str]:
    return seed_user("admin@example.com", UserRole.ADMIN, "Admin")
