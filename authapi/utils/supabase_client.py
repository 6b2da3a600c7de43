"""
Supabase Client Configuration
Identity provider adapter for password and Google OAuth authentication
"""

import asyncio
from typing import Any, Mapping, Optional
import logging

from supabase import AuthError, Client, create_client
from supabase.lib.client_options import ClientOptions

from authapi.config import Settings, get_settings
from authapi.models.user import (
    AuthProvider, ProviderAuthResult, ProviderIdentity, ProviderSession
)
from authapi.utils.errors import IdentityProviderError

logger = logging.getLogger(__name__)

DEFAULT_FULL_NAME = "User"


def _metadata(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def normalize_provider_user(provider_user: Any) -> ProviderIdentity:
    """
    Normalize an identity provider user object into the local user shape

    Args:
        provider_user: Supabase user (id, email, user_metadata, app_metadata)

    Returns:
        ProviderIdentity: Normalized identity
    """
    user_metadata = _metadata(getattr(provider_user, "user_metadata", None))
    app_metadata = _metadata(getattr(provider_user, "app_metadata", None))

    email = getattr(provider_user, "email", None)
    if not email:
        raise IdentityProviderError("Identity provider did not return an email address")

    provider = (
        AuthProvider.GOOGLE
        if app_metadata.get("provider") == AuthProvider.GOOGLE.value
        else AuthProvider.EMAIL
    )

    return ProviderIdentity(
        provider_id=str(provider_user.id),
        email=email,
        full_name=user_metadata.get("full_name") or user_metadata.get("name") or DEFAULT_FULL_NAME,
        avatar_url=user_metadata.get("avatar_url") or user_metadata.get("picture"),
        provider=provider,
    )


def _normalize_session(session: Any) -> Optional[ProviderSession]:
    if not session or not getattr(session, "access_token", None):
        return None
    return ProviderSession(
        access_token=session.access_token,
        refresh_token=getattr(session, "refresh_token", None),
        expires_at=getattr(session, "expires_at", None),
    )


class IdentityProvider:
    """External identity service used for password and OAuth authentication"""

    async def sign_up(self, email: str, password: str, full_name: str) -> ProviderAuthResult:
        raise NotImplementedError

    async def sign_in_with_password(self, email: str, password: str) -> ProviderAuthResult:
        raise NotImplementedError

    async def get_oauth_url(self, provider: str = "google") -> str:
        raise NotImplementedError

    async def get_user(self, access_token: str) -> ProviderIdentity:
        raise NotImplementedError


class SupabaseClient(IdentityProvider):
    """Supabase client wrapper for authentication services"""

    def __init__(self, url: str, key: str, redirect_url: str):
        self.url = url
        self.key = key
        self.redirect_url = redirect_url
        self.client: Optional[Client] = None

        if self.url and self.key:
            self.client = create_client(
                self.url,
                self.key,
                options=ClientOptions(auto_refresh_token=False, persist_session=False),
            )
            logger.info("Supabase client initialized successfully")
        else:
            logger.warning("Supabase credentials not found in environment")

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseClient":
        return cls(
            url=settings.supabase_url,
            key=settings.supabase_anon_key,
            redirect_url=f"{settings.client_url.rstrip('/')}/auth/callback",
        )

    def is_available(self) -> bool:
        """Check if Supabase is available and configured"""
        return self.client is not None

    def _require_client(self) -> Client:
        if not self.client:
            raise IdentityProviderError(
                "Identity provider is not configured", status_code=503
            )
        return self.client

    async def sign_up(self, email: str, password: str, full_name: str) -> ProviderAuthResult:
        """
        Sign up a user with Supabase Auth

        Args:
            email: User email
            password: User password
            full_name: Stored as user metadata on the provider

        Returns:
            ProviderAuthResult: Identity, plus a session unless email confirmation is pending
        """
        client = self._require_client()
        try:
            response = await asyncio.to_thread(
                client.auth.sign_up,
                {
                    "email": email,
                    "password": password,
                    "options": {"data": {"full_name": full_name}},
                },
            )
        except AuthError as e:
            logger.warning(f"Supabase sign up rejected for {email}: {e.message}")
            raise IdentityProviderError(e.message, status_code=400)

        if not response.user:
            logger.error(f"Failed to sign up user: {email}")
            raise IdentityProviderError("Failed to create account", status_code=400)

        logger.info(f"User signed up with identity provider: {email}")
        return ProviderAuthResult(
            identity=normalize_provider_user(response.user),
            session=_normalize_session(response.session),
        )

    async def sign_in_with_password(self, email: str, password: str) -> ProviderAuthResult:
        """
        Sign in a user with Supabase Auth

        Args:
            email: User email
            password: User password

        Returns:
            ProviderAuthResult: Identity and provider session
        """
        client = self._require_client()
        try:
            response = await asyncio.to_thread(
                client.auth.sign_in_with_password,
                {"email": email, "password": password},
            )
        except AuthError as e:
            logger.warning(f"Supabase sign in rejected for {email}: {e.message}")
            raise IdentityProviderError(e.message, status_code=401)

        if not response.user or not response.session:
            logger.warning(f"Failed to sign in user: {email}")
            raise IdentityProviderError("Invalid credentials", status_code=401)

        logger.info(f"User signed in with identity provider: {email}")
        return ProviderAuthResult(
            identity=normalize_provider_user(response.user),
            session=_normalize_session(response.session),
        )

    async def get_oauth_url(self, provider: str = "google") -> str:
        """
        Build the provider OAuth redirect URL

        Args:
            provider: OAuth provider name

        Returns:
            str: URL the browser should navigate to
        """
        client = self._require_client()
        try:
            response = await asyncio.to_thread(
                client.auth.sign_in_with_oauth,
                {
                    "provider": provider,
                    "options": {
                        "redirect_to": self.redirect_url,
                        "query_params": {
                            "access_type": "offline",
                            "prompt": "consent",
                        },
                    },
                },
            )
        except AuthError as e:
            logger.warning(f"Supabase OAuth initiation failed: {e.message}")
            raise IdentityProviderError(e.message, status_code=400)

        if not response.url:
            raise IdentityProviderError("Failed to initiate Google OAuth", status_code=400)
        return response.url

    async def get_user(self, access_token: str) -> ProviderIdentity:
        """
        Exchange a provider access token for the provider's user

        Args:
            access_token: Supabase session access token

        Returns:
            ProviderIdentity: Normalized identity
        """
        client = self._require_client()
        try:
            response = await asyncio.to_thread(client.auth.get_user, access_token)
        except AuthError as e:
            logger.warning(f"Supabase token exchange failed: {e.message}")
            raise IdentityProviderError(e.message, status_code=401)

        if not response or not response.user:
            raise IdentityProviderError("Invalid access token", status_code=401)
        return normalize_provider_user(response.user)


_supabase_client: Optional[SupabaseClient] = None


def get_identity_provider() -> IdentityProvider:
    """Get identity provider instance"""
    global _supabase_client
    if _supabase_client is None:
        _supabase_client = SupabaseClient.from_settings(get_settings())
    return _supabase_client
