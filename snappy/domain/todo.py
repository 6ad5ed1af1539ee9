"""Todo domain models and the status/completion rule."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from snappy.core.config import constants
from snappy.domain.base import WireModel, coerce_reference


class TodoStatus(StrEnum):
    """Todo lifecycle status."""

    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"


class SubStep(WireModel):
    """Checklist item inside a todo."""

    title: str
    completed: bool = False
    order: int = 0


class FocusSession(WireModel):
    """One focus-timer session logged against a todo."""

    id: str | None = Field(default=None, validation_alias=AliasChoices("_id", "id"))
    todo_id: str | None = Field(default=None, description="Set on entries of the flattened session history")
    todo_title: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    duration: int | None = Field(default=None, description="Session length in minutes")
    interrupted: bool = False


class Todo(WireModel):
    """Todo as cached on the client. Unknown server fields are preserved."""

    id: str = Field(
        ...,
        validation_alias=AliasChoices("_id", "id"),
        serialization_alias="_id",
        description="Server id, or temp-<ms> until the create is confirmed",
    )
    title: str = Field(..., description="Todo title")
    note: str = Field(default="", description="Free-form note")
    status: TodoStatus = Field(default=TodoStatus.TODO, description="Current status")
    priority: int = Field(default=2, ge=0, le=3, description="0 low .. 3 high")
    list_id: str | None = Field(default=None, description="Owning list, if any")
    owner: str | None = Field(default=None, description="Owner user ID")
    created_at: datetime | None = Field(default=None, description="Creation timestamp")
    completed_at: datetime | None = Field(default=None, description="Set while status is done")

    # Optional attributes
    due_at: datetime | None = None
    tags: list[str] = Field(default_factory=list)
    sub_steps: list[SubStep] = Field(default_factory=list)
    links: list[dict[str, Any]] = Field(default_factory=list)
    comments: list[dict[str, Any]] = Field(default_factory=list)
    focus_sessions: list[FocusSession] = Field(default_factory=list)
    total_focus_time: int = Field(default=0, description="Accumulated focus minutes")
    effort_minutes: int | None = None
    energy_level: str | None = None
    location: str | None = None
    mood: str | None = None

    @field_validator("owner", "list_id", mode="before")
    @classmethod
    def collapse_reference(cls, v: Any) -> Any:
        return coerce_reference(v)

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(constants.TEMP_ID_PREFIX)

    @property
    def active_focus_session(self) -> FocusSession | None:
        return next((session for session in self.focus_sessions if session.ended_at is None), None)

    def matches_filters(self, filters: dict[str, Any]) -> bool:
        """Check the todo against query filters keyed by their wire names."""
        if "status" in filters and self.status != filters["status"]:
            return False
        if "listId" in filters and self.list_id != filters["listId"]:
            return False
        return not ("tag" in filters and filters["tag"] not in self.tags)


class Pagination(WireModel):
    """Pagination block returned alongside todo pages."""

    total: int = 0
    limit: int = 100
    skip: int = 0
    has_more: bool = False


class TodoPage(WireModel):
    """Cached value of a todos query."""

    todos: list[Todo] = Field(default_factory=list)
    pagination: Pagination | None = None


def apply_status(todo: Todo, status: TodoStatus, now: datetime | None = None) -> Todo:
    """Return a copy of the todo moved to `status`.

    Moving to done stamps completed_at (an already-done todo keeps its
    original stamp); any other status clears it. Every client-side status
    change goes through here.
    """
    if status is TodoStatus.DONE:
        if todo.status is TodoStatus.DONE and todo.completed_at is not None:
            completed_at = todo.completed_at
        else:
            completed_at = now or datetime.now(UTC)
    else:
        completed_at = None
    return todo.model_copy(update={"status": status, "completed_at": completed_at})
