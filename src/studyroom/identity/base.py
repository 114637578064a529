"""Abstract base class for account authentication."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable

from studyroom.models.enums import AuthEvent
from studyroom.models.identity import Session

AuthStateCallback = Callable[[AuthEvent, Session | None], None]


class AuthProvider(ABC):
    """Email/password accounts with session change notifications.

    Guests never touch this; their name lives only in device storage.
    """

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> Session:
        """Sign in and return the new session.

        Raises:
            AuthenticationError: If the credentials are rejected.
        """
        ...

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> Session:
        """Create an account, sign it in and return the session."""
        ...

    @abstractmethod
    async def sign_out(self) -> None:
        """End the current session."""
        ...

    @abstractmethod
    async def get_session(self) -> Session | None:
        """Return the current session, or ``None`` when signed out."""
        ...

    @abstractmethod
    def on_auth_state_change(self, callback: AuthStateCallback) -> Callable[[], None]:
        """Register *callback* for sign-in/sign-out. Returns an unsubscribe function."""
        ...
