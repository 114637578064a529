"""Account and session models."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, Field


class User(BaseModel):
    """An authenticated account."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    email: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def derived_name(self) -> str:
        """Display name derived from the email's local part."""
        return self.email.split("@")[0]


class Session(BaseModel):
    """A signed-in session."""

    access_token: str = Field(default_factory=lambda: uuid4().hex)
    user: User
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
