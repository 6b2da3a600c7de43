"""
Token Service
Signs and verifies the locally issued access and refresh tokens
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import logging

import jwt

from authapi.config import Settings, get_settings
from authapi.models.user import TokenClaims, TokenPair, User
from authapi.utils.errors import InvalidToken

logger = logging.getLogger(__name__)

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


class TokenService:
    """HS256 JWT issuer with a fixed issuer and audience"""

    REQUIRED_CLAIMS = ["exp", "iat", "iss", "aud", "id", "email", "role"]

    def __init__(
        self,
        secret: str,
        access_ttl: timedelta = timedelta(days=7),
        refresh_ttl: timedelta = timedelta(days=30),
        issuer: str = "authapi",
        audience: str = "authapi-client",
        algorithm: str = "HS256",
    ):
        if not secret:
            raise ValueError("Token signing secret must not be empty")
        self.secret = secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.issuer = issuer
        self.audience = audience
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            secret=settings.jwt_secret,
            access_ttl=settings.jwt_expires_in,
            refresh_ttl=settings.jwt_refresh_expires_in,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            algorithm=settings.jwt_algorithm,
        )

    def _encode(self, claims: TokenClaims, token_type: str, ttl: timedelta, now: datetime) -> str:
        payload = {
            "id": claims.id,
            "email": claims.email,
            "role": claims.role.value,
            "type": token_type,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": now,
            "exp": now + ttl,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def issue(self, user: User, now: Optional[datetime] = None) -> TokenPair:
        """
        Sign an access/refresh token pair for a user

        Args:
            user: User whose id, email and role are embedded
            now: Issue time, defaults to the current UTC time

        Returns:
            TokenPair: Signed tokens
        """
        now = now or datetime.now(timezone.utc)
        claims = TokenClaims(id=user.id, email=user.email, role=user.role)
        return TokenPair(
            accessToken=self._encode(claims, ACCESS_TOKEN, self.access_ttl, now),
            refreshToken=self._encode(claims, REFRESH_TOKEN, self.refresh_ttl, now),
        )

    def decode(self, token: str) -> Dict[str, Any]:
        """Decode and validate a token, returning the raw payload"""
        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                audience=self.audience,
                options={"require": self.REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError:
            logger.debug("Token has expired")
            raise InvalidToken("Token expired")
        except jwt.InvalidTokenError as e:
            logger.debug(f"Invalid token: {e}")
            raise InvalidToken("Invalid or expired token")

    def verify(self, token: str, token_type: Optional[str] = None) -> TokenClaims:
        """
        Verify a token's signature, issuer, audience and expiry

        Args:
            token: Encoded JWT
            token_type: Require the token to be an "access" or "refresh" token

        Returns:
            TokenClaims: The embedded identity

        Raises:
            InvalidToken: If any check fails
        """
        payload = self.decode(token)

        if token_type and payload.get("type") != token_type:
            raise InvalidToken("Invalid or expired token")

        try:
            return TokenClaims(
                id=payload["id"],
                email=payload["email"],
                role=payload["role"],
            )
        except ValueError:
            raise InvalidToken("Invalid token claims")


_token_service: Optional[TokenService] = None


def get_token_service() -> TokenService:
    """Get token service instance"""
    global _token_service
    if _token_service is None:
        _token_service = TokenService.from_settings(get_settings())
    return _token_service
