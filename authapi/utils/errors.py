"""
Error taxonomy
Every exception carries the HTTP status and stable error code it maps to
"""

from typing import Any, List, Optional


class AuthAPIError(Exception):
    """Base class for errors that are mapped onto the response envelope"""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        errors: Optional[List[dict]] = None,
        detail: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.errors = errors
        self.detail = detail


class ValidationError(AuthAPIError):
    """Malformed or missing request fields (400)"""
    status_code = 400
    error_code = "validation_error"


class InvalidRole(ValidationError):
    """Role outside the user/admin enum"""

    def __init__(self, role: Any = None):
        super().__init__('Invalid role. Must be "admin" or "user"', detail=role)


class Unauthenticated(AuthAPIError):
    """Missing, invalid or expired credentials (401)"""
    status_code = 401
    error_code = "unauthenticated"


class InvalidToken(Unauthenticated):
    """Token failed signature, issuer, audience, expiry or claim checks"""
    error_code = "invalid_token"


class Forbidden(AuthAPIError):
    """Role gate failed or self-modification attempted (403)"""
    status_code = 403
    error_code = "forbidden"


class NotFound(AuthAPIError):
    """Requested resource does not exist (404)"""
    status_code = 404
    error_code = "not_found"


class IdentityProviderError(AuthAPIError):
    """Identity provider rejected the request; message is passed through verbatim"""
    status_code = 400
    error_code = "identity_provider_error"


class RateLimited(AuthAPIError):
    """Too many requests from one client (429)"""
    status_code = 429
    error_code = "rate_limited"


class StoreError(AuthAPIError):
    """Unexpected persistence failure (500)"""
    status_code = 500
    error_code = "store_error"


class DuplicateUser(StoreError):
    """A user with the same email (or id) already exists"""
    status_code = 409
    error_code = "duplicate_user"


class InternalError(AuthAPIError):
    """Unexpected failure (500)"""
    status_code = 500
    error_code = "internal_error"
