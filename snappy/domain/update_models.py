"""Pydantic models for partial updates sent through the API."""

from datetime import datetime

from pydantic import Field

from snappy.domain.base import WireModel
from snappy.domain.template import TaskBlueprint, TemplateCategory
from snappy.domain.todo import SubStep, TodoStatus


class TodoUpdate(WireModel):
    """Payload for PATCH /todos/{id}. Only fields that were set are sent."""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    note: str | None = Field(default=None, max_length=5000)
    status: TodoStatus | None = None
    priority: int | None = Field(default=None, ge=0, le=3)
    list_id: str | None = None
    tags: list[str] | None = None
    due_at: datetime | None = None
    sub_steps: list[SubStep] | None = None
    energy_level: str | None = None
    effort_minutes: int | None = Field(default=None, ge=1, le=480)
    location: str | None = None
    mood: str | None = None


class ListUpdate(WireModel):
    """Payload for PATCH /lists/{id}."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    icon: str | None = None
    color: str | None = None
    is_private: bool | None = None


class TemplateUpdate(WireModel):
    """Payload for PATCH /templates/{id}. Owner only."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    icon: str | None = None
    template: TaskBlueprint | None = None
    is_public: bool | None = None
    category: TemplateCategory | None = None
