"""
Client Session Store
Last known user and token pair, kept in memory and mirrored to storage
"""

from enum import Enum
from typing import Optional, Tuple
import logging

from pydantic import ValidationError

from authapi.client.storage import MemoryStorage, Storage
from authapi.models.user import TokenPair, UserResponse

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "accessToken"
REFRESH_TOKEN_KEY = "refreshToken"
USER_KEY = "user"


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


class ClientSession:
    """
    Explicit session state machine

    unauthenticated -> authenticating -> authenticated -> unauthenticated

    A session restored from storage starts as authenticated when both the
    access token and the user are present.
    """

    def __init__(self, storage: Optional[Storage] = None):
        self.storage = storage or MemoryStorage()
        self.user: Optional[UserResponse] = None
        self.tokens: Optional[TokenPair] = None
        self.state = SessionState.UNAUTHENTICATED
        self._previous: Optional[Tuple[SessionState, Optional[UserResponse], Optional[TokenPair]]] = None
        self._restore()

    def _restore(self) -> None:
        access_token = self.storage.get(ACCESS_TOKEN_KEY)
        refresh_token = self.storage.get(REFRESH_TOKEN_KEY)
        raw_user = self.storage.get(USER_KEY)
        if not (access_token and raw_user):
            return

        try:
            self.user = UserResponse.model_validate_json(raw_user)
        except ValidationError:
            logger.warning("Stored user is unreadable, starting signed out")
            self.clear()
            return

        self.tokens = TokenPair(accessToken=access_token, refreshToken=refresh_token or "")
        self.state = SessionState.AUTHENTICATED

    @property
    def is_authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED

    @property
    def access_token(self) -> Optional[str]:
        return self.tokens.accessToken if self.tokens else None

    @property
    def refresh_token(self) -> Optional[str]:
        if self.tokens and self.tokens.refreshToken:
            return self.tokens.refreshToken
        return None

    def begin(self) -> None:
        """Mark a sign in / sign up / OAuth exchange as in flight"""
        self._previous = (self.state, self.user, self.tokens)
        self.state = SessionState.AUTHENTICATING

    def establish(self, user: UserResponse, tokens: TokenPair) -> None:
        """Store a freshly authenticated user and token pair"""
        self.user = user
        self.tokens = tokens
        self.storage.set(ACCESS_TOKEN_KEY, tokens.accessToken)
        self.storage.set(REFRESH_TOKEN_KEY, tokens.refreshToken)
        self.storage.set(USER_KEY, user.model_dump_json())
        self.state = SessionState.AUTHENTICATED
        self._previous = None

    def abandon(self) -> None:
        """
        End an authentication attempt that produced no session

        A session that was signed in before begin() keeps its user and tokens;
        otherwise it returns to signed out.
        """
        if self.state != SessionState.AUTHENTICATING:
            return

        previous_state, user, tokens = self._previous or (SessionState.UNAUTHENTICATED, None, None)
        self._previous = None
        if previous_state == SessionState.AUTHENTICATED and user and tokens:
            self.user = user
            self.tokens = tokens
            self.state = SessionState.AUTHENTICATED
        else:
            self.clear()

    def update_tokens(self, tokens: TokenPair) -> None:
        self.tokens = tokens
        self.storage.set(ACCESS_TOKEN_KEY, tokens.accessToken)
        self.storage.set(REFRESH_TOKEN_KEY, tokens.refreshToken)

    def update_user(self, user: UserResponse) -> None:
        self.user = user
        self.storage.set(USER_KEY, user.model_dump_json())

    def clear(self) -> None:
        """Forget the user and tokens, locally and in storage"""
        self.user = None
        self.tokens = None
        for key in (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, USER_KEY):
            self.storage.remove(key)
        self.state = SessionState.UNAUTHENTICATED
        self._previous = None
