"""
Authentication Routes
Email/password and Google OAuth sign in, token refresh, profile and sign out
"""

from fastapi import APIRouter, status
import logging

from authapi.models.user import (
    OAuthCallbackRequest, RefreshTokenRequest, SignInRequest, SignUpRequest, UserResponse
)
from authapi.services.auth_service import AuthResult
from authapi.utils.dependencies import AuthServiceDep, CurrentUserDep

logger = logging.getLogger(__name__)

router = APIRouter()


def _auth_payload(result: AuthResult) -> dict:
    data = {"user": UserResponse.from_user(result.user).model_dump(mode="json")}
    if result.tokens is not None:
        data["tokens"] = result.tokens.model_dump()
    return data


@router.get("/google")
async def sign_in_with_google(auth_service: AuthServiceDep):
    """
    Initiate Google OAuth

    Returns the provider URL; the browser navigates there and comes back
    to the client's /auth/callback page.
    """
    url = await auth_service.sign_in_with_google()
    return {
        "success": True,
        "message": "Google OAuth initiated",
        "data": {"url": url}
    }


# Sign up and sign in are the same provider flow
router.add_api_route("/google/signin", sign_in_with_google, methods=["GET"])


@router.post("/callback")
async def handle_oauth_callback(payload: OAuthCallbackRequest, auth_service: AuthServiceDep):
    """
    Handle OAuth callback

    Exchanges the provider session for the local user and issues our own tokens
    """
    result = await auth_service.handle_oauth_callback(
        payload.access_token, payload.refresh_token
    )
    return {
        "success": True,
        "message": "Authentication successful",
        "data": _auth_payload(result)
    }


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def sign_up(payload: SignUpRequest, auth_service: AuthServiceDep):
    """
    Register with email and password

    Tokens are only returned when the provider confirms the account immediately
    """
    result = await auth_service.sign_up(payload.email, payload.password, payload.full_name)

    if result.confirmation_required:
        message = "Account created. Please check your email to confirm your account."
    else:
        message = "Account created successfully"

    return {
        "success": True,
        "message": message,
        "data": _auth_payload(result)
    }


@router.post("/signin")
async def sign_in(payload: SignInRequest, auth_service: AuthServiceDep):
    """Sign in with email and password"""
    result = await auth_service.sign_in(payload.email, payload.password)
    return {
        "success": True,
        "message": "Signed in successfully",
        "data": _auth_payload(result)
    }


@router.post("/refresh")
async def refresh_token(payload: RefreshTokenRequest, auth_service: AuthServiceDep):
    """Exchange a refresh token for a new token pair"""
    tokens = await auth_service.refresh_tokens(payload.refreshToken)
    return {
        "success": True,
        "message": "Token refreshed successfully",
        "data": {"tokens": tokens.model_dump()}
    }


@router.get("/profile")
async def get_profile(current_user: CurrentUserDep, auth_service: AuthServiceDep):
    """Get current user profile"""
    user = await auth_service.get_profile(current_user.id)
    return {
        "success": True,
        "data": {"user": UserResponse.from_user(user).model_dump(mode="json")}
    }


@router.post("/signout")
async def sign_out(current_user: CurrentUserDep, auth_service: AuthServiceDep):
    """Sign out; the client discards its tokens"""
    await auth_service.sign_out(current_user)
    return {
        "success": True,
        "message": "Signed out successfully"
    }
