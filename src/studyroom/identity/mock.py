"""In-memory auth provider for development and testing."""

from __future__ import annotations

import hashlib
import hmac
import logging
import os
from collections.abc import Callable

from studyroom.core.errors import AuthenticationError, ValidationFailedError
from studyroom.identity.base import AuthProvider, AuthStateCallback
from studyroom.models.enums import AuthEvent
from studyroom.models.identity import Session, User

logger = logging.getLogger("studyroom.identity")

MIN_PASSWORD_LENGTH = 6
_PBKDF2_ITERATIONS = 100_000


def _hash_password(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode(), salt, _PBKDF2_ITERATIONS)


class InMemoryAuthProvider(AuthProvider):
    """Keeps accounts in a dict with salted PBKDF2 password hashes."""

    def __init__(self) -> None:
        self._accounts: dict[str, tuple[User, bytes, bytes]] = {}
        self._session: Session | None = None
        self._listeners: list[AuthStateCallback] = []

    async def sign_in(self, email: str, password: str) -> Session:
        account = self._accounts.get(email.strip().lower())
        if account is None:
            raise AuthenticationError("Invalid login credentials")
        user, salt, digest = account
        if not hmac.compare_digest(_hash_password(password, salt), digest):
            raise AuthenticationError("Invalid login credentials")
        return self._set_session(Session(user=user))

    async def sign_up(self, email: str, password: str) -> Session:
        email = email.strip().lower()
        if "@" not in email:
            raise ValidationFailedError("A valid email address is required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationFailedError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        if email in self._accounts:
            raise AuthenticationError("User already registered")
        salt = os.urandom(16)
        user = User(email=email)
        self._accounts[email] = (user, salt, _hash_password(password, salt))
        return self._set_session(Session(user=user))

    async def sign_out(self) -> None:
        if self._session is None:
            return
        self._session = None
        self._notify(AuthEvent.SIGNED_OUT, None)

    async def get_session(self) -> Session | None:
        return self._session

    def on_auth_state_change(self, callback: AuthStateCallback) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _set_session(self, session: Session) -> Session:
        self._session = session
        self._notify(AuthEvent.SIGNED_IN, session)
        return session

    def _notify(self, event: AuthEvent, session: Session | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception("Auth state listener failed for %s", event)
