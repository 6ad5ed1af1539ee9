"""User domain models."""

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, Field

from snappy.domain.base import WireModel


class User(WireModel):
    """Signed-in user as returned by the auth endpoints."""

    id: str = Field(..., validation_alias=AliasChoices("id", "_id"), description="User ID")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Email address")
    avatar_url: str | None = None
    settings: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None


class AuthSession(WireModel):
    """Response of login and register."""

    user: User
    token: str
    refresh_token: str | None = None
