"""
FastAPI Dependencies
Service wiring plus the authenticate and admin-only gates
"""

from typing import Annotated, Optional
import logging

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from authapi.models.user import CurrentUser
from authapi.services.auth_service import AuthService
from authapi.services.token_service import ACCESS_TOKEN, TokenService, get_token_service
from authapi.services.user_service import UserService
from authapi.utils.database import UserStore
from authapi.utils.errors import Forbidden, InvalidToken, Unauthenticated
from authapi.utils.supabase_client import IdentityProvider, get_identity_provider

logger = logging.getLogger(__name__)

# Missing credentials are reported as 401 by authenticate(), not by HTTPBearer
security = HTTPBearer(auto_error=False)


def get_user_store(request: Request) -> UserStore:
    """User store created by create_app for this application"""
    return request.app.state.user_store


def get_auth_service(
    provider: IdentityProvider = Depends(get_identity_provider),
    store: UserStore = Depends(get_user_store),
    tokens: TokenService = Depends(get_token_service),
) -> AuthService:
    return AuthService(provider, store, tokens)


def get_user_service(store: UserStore = Depends(get_user_store)) -> UserService:
    return UserService(store)


async def authenticate(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    tokens: TokenService = Depends(get_token_service),
) -> CurrentUser:
    """
    Get current authenticated user from the bearer token

    Args:
        credentials: HTTP Authorization header with Bearer token

    Returns:
        CurrentUser: Identity decoded from the access token

    Raises:
        Unauthenticated: If the header is missing or the token is invalid
    """
    if credentials is None or not credentials.credentials:
        raise Unauthenticated("Access token is required")

    try:
        claims = tokens.verify(credentials.credentials, token_type=ACCESS_TOKEN)
    except InvalidToken as e:
        raise Unauthenticated(e.message)

    return CurrentUser(**claims.model_dump())


async def admin_only(current_user: CurrentUser = Depends(authenticate)) -> CurrentUser:
    """Reject non-admin callers with 403"""
    if not current_user.is_admin:
        logger.warning(f"Admin access denied for user: {current_user.email}")
        raise Forbidden("Admin access required")
    return current_user


# Type aliases for cleaner dependency injection
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
UserServiceDep = Annotated[UserService, Depends(get_user_service)]
StoreDep = Annotated[UserStore, Depends(get_user_store)]
CurrentUserDep = Annotated[CurrentUser, Depends(authenticate)]
AdminUserDep = Annotated[CurrentUser, Depends(admin_only)]
