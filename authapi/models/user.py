"""
User data schemas

Pydantic models for users, tokens and request/response validation.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import (
    BaseModel, ConfigDict, EmailStr, Field, HttpUrl, TypeAdapter, ValidationError, field_validator
)


class UserRole(str, Enum):
    """User role enumeration"""
    USER = "user"
    ADMIN = "admin"


class AuthProvider(str, Enum):
    """Identity provider used to create the account"""
    GOOGLE = "google"
    EMAIL = "email"


class User(BaseModel):
    """Local user record"""
    id: str
    email: str
    full_name: str
    avatar_url: Optional[str] = None
    role: UserRole = UserRole.USER
    provider: AuthProvider = AuthProvider.EMAIL
    provider_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator('id', 'provider_id', mode='before')
    @classmethod
    def stringify_uuid(cls, v):
        if isinstance(v, UUID):
            return str(v)
        return v

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class UserCreate(BaseModel):
    """Fields accepted by the user store when creating a user"""
    id: Optional[str] = None
    email: str
    full_name: str
    avatar_url: Optional[str] = None
    role: UserRole = UserRole.USER
    provider: AuthProvider = AuthProvider.EMAIL
    provider_id: Optional[str] = None

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()


class ProviderIdentity(BaseModel):
    """Identity provider user normalized into the local user shape"""
    provider_id: str
    email: str
    full_name: str = "User"
    avatar_url: Optional[str] = None
    provider: AuthProvider = AuthProvider.EMAIL

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()

    def to_user_create(self) -> UserCreate:
        # Role is never taken from the provider or the client
        return UserCreate(
            id=self.provider_id,
            email=self.email,
            full_name=self.full_name,
            avatar_url=self.avatar_url,
            role=UserRole.USER,
            provider=self.provider,
            provider_id=self.provider_id,
        )


class ProviderSession(BaseModel):
    """Session issued by the identity provider (not exposed to clients)"""
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None


class ProviderAuthResult(BaseModel):
    """Result of a password sign up / sign in against the identity provider"""
    identity: ProviderIdentity
    session: Optional[ProviderSession] = None


class TokenPair(BaseModel):
    """Locally issued access and refresh tokens"""
    accessToken: str
    refreshToken: str


class TokenClaims(BaseModel):
    """Identity claims embedded in every locally issued token"""
    id: str
    email: str
    role: UserRole


class CurrentUser(TokenClaims):
    """Identity attached to an authenticated request"""

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


# Request schemas

class SignUpRequest(BaseModel):
    """Schema for email/password sign up"""
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    full_name: str = Field(..., min_length=1, max_length=100)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        return v.lower()

    @field_validator('full_name')
    @classmethod
    def strip_full_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Full name is required')
        return v


class SignInRequest(BaseModel):
    """Schema for email/password sign in"""
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        return v.lower()


class OAuthCallbackRequest(BaseModel):
    """Provider session handed over by the browser after the OAuth redirect"""
    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None


class RefreshTokenRequest(BaseModel):
    refreshToken: str = Field(..., min_length=1)


_http_url = TypeAdapter(HttpUrl)


class UpdateRoleRequest(BaseModel):
    role: UserRole


class UpdateProfileRequest(BaseModel):
    """Schema for updating the caller's own profile"""
    full_name: Optional[str] = Field(None, min_length=2, max_length=100)
    avatar_url: Optional[str] = None

    @field_validator('full_name', mode='before')
    @classmethod
    def strip_full_name(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator('avatar_url')
    @classmethod
    def validate_avatar_url(cls, v):
        # Checked as a URL, stored exactly as sent
        if v is not None:
            try:
                _http_url.validate_python(v)
            except ValidationError:
                raise ValueError("Avatar URL must be a valid http(s) URL")
        return v

    def to_updates(self) -> Dict[str, Any]:
        updates: Dict[str, Any] = {}
        if self.full_name:
            updates['full_name'] = self.full_name
        if self.avatar_url:
            updates['avatar_url'] = self.avatar_url
        return updates


# Response schemas

class UserResponse(BaseModel):
    """Public view of a user"""
    id: str
    email: str
    full_name: str
    avatar_url: Optional[str] = None
    role: UserRole
    provider: AuthProvider
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            avatar_url=user.avatar_url,
            role=user.role,
            provider=user.provider,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class FieldError(BaseModel):
    field: str
    message: str


class Envelope(BaseModel):
    """Uniform response envelope"""
    success: bool
    message: Optional[str] = None
    data: Optional[Any] = None
    error: Optional[Any] = None
    errors: Optional[List[FieldError]] = None
