"""Pydantic models for creating records through the API."""

import re
from datetime import datetime

from pydantic import Field, field_validator

from snappy.domain.base import WireModel
from snappy.domain.template import TaskBlueprint, TemplateCategory
from snappy.domain.todo import SubStep
from snappy.domain.todo_list import CollaboratorRole


class TodoCreate(WireModel):
    """Payload for POST /todos."""

    title: str = Field(..., min_length=1, max_length=200, description="Todo title")
    note: str | None = Field(default=None, max_length=5000, description="Free-form note")
    list_id: str | None = Field(default=None, description="List the todo belongs to")
    tags: list[str] | None = None
    priority: int | None = Field(default=None, ge=0, le=3)
    due_at: datetime | None = None
    sub_steps: list[SubStep] | None = None
    energy_level: str | None = None
    effort_minutes: int | None = Field(default=None, ge=1, le=480)
    location: str | None = None
    mood: str | None = None
    source: str | None = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        """Reject titles that are only whitespace."""
        stripped = v.strip()
        if not stripped:
            msg = "Title is required"
            raise ValueError(msg)
        return stripped

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: list[str] | None) -> list[str] | None:
        """Tags are stored trimmed and lowercase."""
        if v is None:
            return None
        return [tag.strip().lower() for tag in v if tag.strip()]


class ListCreate(WireModel):
    """Payload for POST /lists."""

    name: str = Field(..., min_length=1, max_length=100, description="List name")
    icon: str | None = None
    color: str | None = None
    is_private: bool | None = None

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: str | None) -> str | None:
        """Validate color is a #RRGGBB hex code."""
        if v is not None and not re.match(r"^#[0-9A-Fa-f]{6}$", v):
            msg = "Color must be a valid hex code"
            raise ValueError(msg)
        return v


class CollaboratorInvite(WireModel):
    """Payload for POST /lists/{id}/invite."""

    email: str = Field(..., description="Email of the user to invite")
    role: CollaboratorRole = Field(default=CollaboratorRole.EDITOR)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Basic shape check; the server resolves the user."""
        v = v.strip()
        if not re.match(r"^[^@\s]+@[^@\s]+\.[^@\s]+$", v):
            msg = "Email address is not valid"
            raise ValueError(msg)
        return v.lower()


class TemplateCreate(WireModel):
    """Payload for POST /templates."""

    name: str = Field(..., min_length=1, max_length=100, description="Template name")
    description: str | None = Field(default=None, max_length=500)
    icon: str | None = None
    template: TaskBlueprint = Field(..., description="The todo the template produces")
    is_public: bool | None = None
    category: TemplateCategory | None = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            msg = "Template name is required"
            raise ValueError(msg)
        return stripped
