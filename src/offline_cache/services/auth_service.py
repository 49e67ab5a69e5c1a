"""Authentication service.

Holds the session token, persists it in the key store and notifies
subscribers on every session change. A session change to anonymous is what
triggers the client's logout teardown.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

import pydantic

from offline_cache.dto import AuthResult, ResetTokenResult
from offline_cache.entities import AuthSession
from offline_cache.errors import PersistenceError
from offline_cache.protocols import KeyStore
from offline_cache.repositories import AuthApi
from offline_cache.utils import resolve

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"


@dataclass(frozen=True)
class AuthOutcome:
    """Result of an account operation that does not change the session."""

    success: bool
    message: str | None = None
    error: str | None = None


class AuthService:
    """Login, signup and password reset against the remote API."""

    def __init__(self, api: AuthApi, store: KeyStore) -> None:
        self._api = api
        self._store = store
        self._session = AuthSession.anonymous()
        self._listeners: list[Callable[[AuthSession], None]] = []
        self._loading = False
        self._error: str | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def session(self) -> AuthSession:
        return self._session

    @property
    def token(self) -> str:
        return self._session.token

    @property
    def is_authenticated(self) -> bool:
        return self._session.is_authenticated

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> str | None:
        return self._error

    def clear_error(self) -> None:
        self._error = None

    def subscribe(self, listener: Callable[[AuthSession], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def load(self) -> AuthSession:
        """Restore the session from the key store."""
        try:
            token = await resolve(self._store.get_item(TOKEN_KEY))
        except PersistenceError as e:
            logger.warning("Failed to read stored token: %s", e)
            token = None
        if token:
            self._set_session(AuthSession(token=token))
        return self._session

    async def login(self, username: str, password: str) -> bool:
        self._loading = True
        self._error = None
        try:
            response = await self._api.login(username, password)
            if not response.ok:
                self._error = "Invalid credentials" if response.is_unauthorized else response.error
                return False
            result = self._parse(AuthResult, response.data)
            if result is None or not result.token:
                self._error = (result.error if result else None) or "Login failed"
                return False
            await self._store_token(result.token)
            self._set_session(AuthSession(token=result.token))
            logger.info("Logged in as %s", username)
            return True
        finally:
            self._loading = False

    async def signup(self, username: str, password: str, email: str | None = None) -> AuthOutcome:
        self._loading = True
        self._error = None
        try:
            response = await self._api.signup(username, password, email)
            if not response.ok:
                self._error = response.error
                return AuthOutcome(success=False, error=response.error)
            result = self._parse(AuthResult, response.data)
            if result is None or not result.success:
                self._error = (result.error if result else None) or "Signup failed"
                return AuthOutcome(success=False, error=self._error)
            return AuthOutcome(success=True, message="Registration successful! Please log in.")
        finally:
            self._loading = False

    async def forgot_password(self, email: str) -> AuthOutcome:
        self._loading = True
        self._error = None
        try:
            response = await self._api.forgot_password(email)
            if not response.ok:
                self._error = response.error
                return AuthOutcome(success=False, error=response.error)
            result = self._parse(AuthResult, response.data)
            return AuthOutcome(success=True, message=result.message if result else None)
        finally:
            self._loading = False

    async def reset_password(self, token: str, password: str) -> AuthOutcome:
        self._loading = True
        self._error = None
        try:
            response = await self._api.reset_password(token, password)
            if not response.ok:
                self._error = response.error
                return AuthOutcome(success=False, error=response.error)
            result = self._parse(AuthResult, response.data)
            return AuthOutcome(success=True, message=result.message if result else None)
        finally:
            self._loading = False

    async def validate_reset_token(self, token: str) -> AuthOutcome:
        response = await self._api.validate_reset_token(token)
        result = self._parse(ResetTokenResult, response.data)
        if not response.ok or result is None or not result.valid:
            error = (result.error if result else None) or response.error or "Invalid or expired token"
            return AuthOutcome(success=False, error=error)
        return AuthOutcome(success=True)

    async def logout(self) -> None:
        """End the session and forget the stored token."""
        self._set_session(AuthSession.anonymous())
        await self._remove_token()

    def handle_unauthorized(self) -> None:
        """Log out after the server rejected the token.

        Safe to call from synchronous callbacks: the session ends immediately,
        the stored token is removed in the background.
        """
        if not self.is_authenticated:
            return
        logger.warning("Session rejected by the server, logging out")
        self._set_session(AuthSession.anonymous())
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._remove_token())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _store_token(self, token: str) -> None:
        try:
            await resolve(self._store.set_item(TOKEN_KEY, token))
        except PersistenceError as e:
            logger.warning("Failed to store token: %s", e)

    async def _remove_token(self) -> None:
        try:
            await resolve(self._store.remove_item(TOKEN_KEY))
        except PersistenceError as e:
            logger.warning("Failed to remove stored token: %s", e)

    def _set_session(self, session: AuthSession) -> None:
        if session == self._session:
            return
        self._session = session
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception:
                logger.exception("Session listener failed")

    @staticmethod
    def _parse(model: type[pydantic.BaseModel], data):
        if not isinstance(data, dict):
            return None
        try:
            return model.model_validate(data)
        except pydantic.ValidationError:
            logger.debug("Unexpected %s payload: %r", model.__name__, data)
            return None
