"""Activity feed models."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from snappy.domain.base import WireModel, coerce_reference
from snappy.domain.todo import Pagination


class ActivityAction(StrEnum):
    """Actions the server records in the feed."""

    CREATE_TODO = "create_todo"
    UPDATE_TODO = "update_todo"
    COMPLETE_TODO = "complete_todo"
    DELETE_TODO = "delete_todo"
    CREATE_LIST = "create_list"
    UPDATE_LIST = "update_list"
    DELETE_LIST = "delete_list"
    INVITE_USER = "invite_user"


class ActivityTarget(StrEnum):
    TODO = "todo"
    LIST = "list"
    USER = "user"


class ActivityActor(WireModel):
    """User who performed an activity, as populated by the server."""

    id: str = Field(..., validation_alias=AliasChoices("_id", "id"))
    name: str | None = None
    email: str | None = None
    avatar_url: str | None = None


class Activity(WireModel):
    """One feed entry.

    ``action`` and ``target_type`` stay plain strings so that entries written
    by a newer server still load; compare them against the enums above.
    """

    id: str = Field(..., validation_alias=AliasChoices("_id", "id"))
    actor: ActivityActor | None = None
    action: str
    target_type: str
    target_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None

    @field_validator("actor", mode="before")
    @classmethod
    def expand_actor(cls, v: Any) -> Any:
        # Unpopulated actors arrive as a bare id
        if isinstance(v, str):
            return {"_id": v}
        return v

    @field_validator("target_id", mode="before")
    @classmethod
    def collapse_target(cls, v: Any) -> Any:
        return coerce_reference(v)

    @property
    def is_completion(self) -> bool:
        return self.action == ActivityAction.COMPLETE_TODO


class ActivityPage(WireModel):
    """Cached value of an activity feed query."""

    activities: list[Activity] = Field(default_factory=list)
    pagination: Pagination | None = None
