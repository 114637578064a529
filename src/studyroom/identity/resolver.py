"""Resolve the display name for the current device session."""

from __future__ import annotations

import logging
from collections.abc import Callable

from studyroom.core.errors import ValidationFailedError
from studyroom.identity.base import AuthProvider
from studyroom.models.enums import AuthEvent
from studyroom.models.identity import Session, User
from studyroom.store.local import GUEST_NAME_KEY, DeviceStorage

logger = logging.getLogger("studyroom.identity")

MIN_NAME_LENGTH = 2


def normalize_name(name: str) -> str:
    """Trim a display name and reject empty or too-short values."""
    name = name.strip()
    if not name:
        raise ValidationFailedError("Please enter a name")
    if len(name) < MIN_NAME_LENGTH:
        raise ValidationFailedError(f"Name must be at least {MIN_NAME_LENGTH} characters")
    return name


class IdentityResolver:
    """Combines the signed-in account with the device's guest name.

    The account wins: an authenticated user is named after their email's
    local part, otherwise the locally stored guest name is used.
    """

    def __init__(self, auth: AuthProvider, storage: DeviceStorage) -> None:
        self._auth = auth
        self._storage = storage
        self._session: Session | None = None
        self._guest_name = storage.get_item(GUEST_NAME_KEY)
        self._unsubscribe: Callable[[], None] | None = None

    async def start(self) -> None:
        """Load the current session and follow later sign-ins and sign-outs."""
        self._session = await self._auth.get_session()
        if self._unsubscribe is None:
            self._unsubscribe = self._auth.on_auth_state_change(self._on_auth_change)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_auth_change(self, event: AuthEvent, session: Session | None) -> None:
        logger.debug("Auth state changed: %s", event)
        self._session = session

    @property
    def user(self) -> User | None:
        return self._session.user if self._session is not None else None

    @property
    def guest_name(self) -> str | None:
        return self._guest_name

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def is_guest(self) -> bool:
        return self.user is None and self._guest_name is not None

    @property
    def display_name(self) -> str | None:
        if self.user is not None:
            return self.user.derived_name
        return self._guest_name

    def set_guest_name(self, name: str) -> str:
        name = normalize_name(name)
        self._storage.set_item(GUEST_NAME_KEY, name)
        self._guest_name = name
        return name

    def clear_guest_name(self) -> None:
        self._storage.remove_item(GUEST_NAME_KEY)
        self._guest_name = None

    async def sign_in(self, email: str, password: str) -> User:
        self._session = await self._auth.sign_in(email, password)
        return self._session.user

    async def sign_up(self, email: str, password: str) -> User:
        self._session = await self._auth.sign_up(email, password)
        return self._session.user

    async def sign_out(self) -> None:
        await self._auth.sign_out()
        self._session = None
