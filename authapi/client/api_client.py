"""
Auth API HTTP Client
Async client for the Auth API that keeps a ClientSession in sync

Authenticated calls attach the stored access token. A 401 triggers exactly
one token refresh and one retry; if the refresh fails the session is cleared
and SessionExpiredError is raised.
"""

import inspect
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
import logging

import httpx

from authapi.client.session import ClientSession
from authapi.models.user import TokenPair, UserResponse, UserRole

logger = logging.getLogger(__name__)

SessionExpiredCallback = Callable[[], Union[None, Awaitable[None]]]


class APIError(Exception):
    """Error response from the Auth API"""

    def __init__(
        self,
        status_code: Optional[int],
        message: str,
        errors: Optional[List[Dict[str, str]]] = None,
        error: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.errors = errors or []
        self.error = error


class SessionExpiredError(APIError):
    """Refresh failed; the local session has been cleared"""

    def __init__(self, message: str = "Session expired, please sign in again"):
        super().__init__(401, message)


class AuthAPIClient:
    """
    HTTP client for Auth API operations.

    Lifecycle:
        - Use as an async context manager, or call aclose() when done
    """

    # Timeout settings
    CONNECT_TIMEOUT = 5.0
    READ_TIMEOUT = 30.0
    WRITE_TIMEOUT = 5.0
    POOL_TIMEOUT = 30.0

    def __init__(
        self,
        base_url: str,
        session: Optional[ClientSession] = None,
        on_session_expired: Optional[SessionExpiredCallback] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.session = session or ClientSession()
        self.on_session_expired = on_session_expired

        timeout = httpx.Timeout(
            connect=self.CONNECT_TIMEOUT,
            read=self.READ_TIMEOUT,
            write=self.WRITE_TIMEOUT,
            pool=self.POOL_TIMEOUT
        )
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport
        )

    async def __aenter__(self) -> "AuthAPIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(
        self, method: str, endpoint: str, token: Optional[str] = None, **kwargs
    ) -> httpx.Response:
        headers = dict(kwargs.pop('headers', None) or {})
        if token:
            headers['Authorization'] = f"Bearer {token}"
        try:
            return await self._client.request(method, endpoint, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Auth API request failed: {method} {endpoint} - {e}")
            raise APIError(None, f"Network error: {e}") from e

    @staticmethod
    def _parse(response: httpx.Response) -> Any:
        """Return the envelope's data, or raise APIError for error responses"""
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.is_error or body.get('success') is False:
            raise APIError(
                response.status_code,
                body.get('message') or response.reason_phrase or "Request failed",
                errors=body.get('errors'),
                error=body.get('error'),
            )
        return body.get('data')

    async def request(self, method: str, endpoint: str, **kwargs) -> Any:
        """Unauthenticated request"""
        response = await self._send(method, endpoint, **kwargs)
        return self._parse(response)

    async def authenticated_request(self, method: str, endpoint: str, **kwargs) -> Any:
        """
        Request with the session's access token

        Raises:
            SessionExpiredError: If the token was rejected and could not be refreshed
            APIError: For any other error response; the session is left untouched
        """
        response = await self._send(method, endpoint, self.session.access_token, **kwargs)

        if response.status_code == 401:
            await self.refresh()
            response = await self._send(method, endpoint, self.session.access_token, **kwargs)

        return self._parse(response)

    async def refresh(self) -> TokenPair:
        """Exchange the stored refresh token for a new pair, expiring the session on failure"""
        refresh_token = self.session.refresh_token
        if not refresh_token:
            raise await self._expire()

        try:
            data = await self.request('POST', '/auth/refresh', json={'refreshToken': refresh_token})
            tokens = TokenPair(**data['tokens'])
        except (APIError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Token refresh failed: {e}")
            raise await self._expire() from e

        self.session.update_tokens(tokens)
        return tokens

    async def _expire(self) -> SessionExpiredError:
        """Clear the session, notify the callback and return the error to raise"""
        self.session.clear()
        if self.on_session_expired is not None:
            result = self.on_session_expired()
            if inspect.isawaitable(result):
                await result
        return SessionExpiredError()

    async def _authenticate(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Run a sign in style call, establishing the session when tokens come back"""
        self.session.begin()
        try:
            data = await self.request('POST', endpoint, json=payload)
        except APIError:
            self.session.abandon()
            raise

        if data.get('tokens'):
            self.session.establish(
                UserResponse(**data['user']), TokenPair(**data['tokens'])
            )
        else:
            # Email confirmation pending
            self.session.abandon()
        return data

    # Authentication

    async def sign_up(self, email: str, password: str, full_name: str) -> Dict[str, Any]:
        return await self._authenticate(
            '/auth/signup',
            {'email': email, 'password': password, 'full_name': full_name},
        )

    async def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        return await self._authenticate(
            '/auth/signin', {'email': email, 'password': password}
        )

    async def get_google_oauth_url(self) -> str:
        data = await self.request('GET', '/auth/google')
        return data['url']

    async def handle_oauth_callback(
        self, access_token: str, refresh_token: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._authenticate(
            '/auth/callback',
            {'access_token': access_token, 'refresh_token': refresh_token},
        )

    async def get_profile(self) -> UserResponse:
        data = await self.authenticated_request('GET', '/auth/profile')
        user = UserResponse(**data['user'])
        self.session.update_user(user)
        return user

    async def update_profile(
        self, full_name: Optional[str] = None, avatar_url: Optional[str] = None
    ) -> UserResponse:
        payload = {}
        if full_name is not None:
            payload['full_name'] = full_name
        if avatar_url is not None:
            payload['avatar_url'] = avatar_url

        data = await self.authenticated_request('PATCH', '/users/profile/me', json=payload)
        user = UserResponse(**data['user'])
        self.session.update_user(user)
        return user

    async def sign_out(self) -> None:
        """Notify the server, then always clear the local session"""
        try:
            await self.authenticated_request('POST', '/auth/signout')
        except APIError as e:
            logger.warning(f"Sign out request failed: {e.message}")
        finally:
            self.session.clear()

    # User management (admin)

    async def list_users(self, role: Optional[Union[UserRole, str]] = None) -> List[UserResponse]:
        params = {}
        if role is not None:
            params['role'] = UserRole(role).value
        data = await self.authenticated_request('GET', '/users', params=params)
        return [UserResponse(**user) for user in data['users']]

    async def get_user(self, user_id: str) -> UserResponse:
        data = await self.authenticated_request('GET', f'/users/{user_id}')
        return UserResponse(**data['user'])

    async def update_user_role(self, user_id: str, role: Union[UserRole, str]) -> UserResponse:
        data = await self.authenticated_request(
            'PATCH', f'/users/{user_id}/role', json={'role': str(getattr(role, 'value', role))}
        )
        return UserResponse(**data['user'])

    async def delete_user(self, user_id: str) -> None:
        await self.authenticated_request('DELETE', f'/users/{user_id}')

    # Health

    async def health(self) -> Dict[str, Any]:
        return await self.request('GET', '/health')
