"""
Authentication Service
Sign up, sign in, OAuth callback, token refresh and sign out flows
"""

from typing import Optional
import logging

from pydantic import BaseModel

from authapi.models.user import AuthProvider, CurrentUser, ProviderIdentity, TokenPair, User
from authapi.services.token_service import REFRESH_TOKEN, TokenService
from authapi.utils.database import UserStore
from authapi.utils.errors import DuplicateUser, InvalidToken, NotFound, Unauthenticated
from authapi.utils.logger import get_audit_logger
from authapi.utils.supabase_client import DEFAULT_FULL_NAME, IdentityProvider

logger = logging.getLogger(__name__)


class AuthResult(BaseModel):
    """Outcome of a sign up, sign in or OAuth callback"""
    user: User
    tokens: Optional[TokenPair] = None
    confirmation_required: bool = False


class AuthService:
    """Orchestrates the identity provider, user store and token service"""

    def __init__(self, provider: IdentityProvider, store: UserStore, tokens: TokenService):
        self.provider = provider
        self.store = store
        self.tokens = tokens
        self.audit = get_audit_logger()

    async def ensure_local_user(self, identity: ProviderIdentity) -> User:
        """
        Find the local user for a provider identity, creating it if missing

        Matches by id first, then by email, so an existing account is reused
        whatever flow created it. New users always get the "user" role.

        Args:
            identity: Normalized identity provider user

        Returns:
            User: Existing or newly created local user
        """
        user = await self.store.find_by_id(identity.provider_id)
        if user:
            return user

        user = await self.store.find_by_email(identity.email)
        if user:
            return user

        try:
            user = await self.store.create(identity.to_user_create())
            logger.info(f"Local user created for {identity.email} via {identity.provider.value}")
            return user
        except DuplicateUser:
            # Lost a race with a concurrent request for the same account
            user = await self.store.find_by_email(identity.email)
            if user:
                return user
            raise

    async def sign_up(self, email: str, password: str, full_name: str) -> AuthResult:
        """
        Register a user with email and password

        Args:
            email: User email
            password: User password
            full_name: Display name

        Returns:
            AuthResult: Tokens are omitted while email confirmation is pending
        """
        result = await self.provider.sign_up(email, password, full_name)
        identity = result.identity
        if identity.full_name == DEFAULT_FULL_NAME:
            identity = identity.model_copy(update={"full_name": full_name})

        user = await self.ensure_local_user(identity)

        if result.session is None:
            logger.info(f"Sign up pending email confirmation: {email}")
            return AuthResult(user=user, confirmation_required=True)

        self.audit.log_auth_event("sign_up", user.email, user.provider.value)
        return AuthResult(user=user, tokens=self.tokens.issue(user))

    async def sign_in(self, email: str, password: str) -> AuthResult:
        """
        Authenticate a user with email and password

        Args:
            email: User email
            password: User password

        Returns:
            AuthResult: User and a fresh token pair
        """
        result = await self.provider.sign_in_with_password(email, password)
        user = await self.ensure_local_user(result.identity)

        self.audit.log_auth_event("sign_in", user.email, AuthProvider.EMAIL.value)
        return AuthResult(user=user, tokens=self.tokens.issue(user))

    async def sign_in_with_google(self) -> str:
        """Get the Google OAuth URL the browser should navigate to"""
        return await self.provider.get_oauth_url("google")

    async def handle_oauth_callback(
        self, access_token: str, refresh_token: Optional[str] = None
    ) -> AuthResult:
        """
        Complete an OAuth sign in using the provider's session tokens

        Args:
            access_token: Provider access token from the OAuth redirect
            refresh_token: Provider refresh token (accepted, not used)

        Returns:
            AuthResult: User and a locally issued token pair
        """
        identity = await self.provider.get_user(access_token)
        user = await self.ensure_local_user(identity)

        self.audit.log_auth_event("oauth_sign_in", user.email, identity.provider.value)
        return AuthResult(user=user, tokens=self.tokens.issue(user))

    async def refresh_tokens(self, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new token pair

        Args:
            refresh_token: Previously issued refresh token

        Returns:
            TokenPair: Fresh tokens carrying the user's current role

        Raises:
            Unauthenticated: If the refresh token is invalid or expired
            NotFound: If the user no longer exists
        """
        try:
            claims = self.tokens.verify(refresh_token, token_type=REFRESH_TOKEN)
        except InvalidToken:
            raise Unauthenticated("Invalid or expired refresh token")

        user = await self.store.find_by_id(claims.id)
        if not user:
            raise NotFound("User not found")

        return self.tokens.issue(user)

    async def get_profile(self, user_id: str) -> User:
        """Read the caller's current record from the store"""
        user = await self.store.find_by_id(user_id)
        if not user:
            raise NotFound("User not found")
        return user

    async def sign_out(self, current_user: CurrentUser) -> None:
        """
        Acknowledge sign out

        Tokens are not tracked server-side, so the client discards them.
        """
        self.audit.log_auth_event("sign_out", current_user.email)
