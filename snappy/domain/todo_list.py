"""List domain models and collaborator permissions."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from snappy.core.config import constants
from snappy.domain.base import WireModel, coerce_reference


class CollaboratorRole(StrEnum):
    """What a collaborator may do with a list's todos."""

    EDITOR = "editor"
    VIEWER = "viewer"


class Collaborator(WireModel):
    """A user sharing a list."""

    user_id: str = Field(..., description="Collaborator user ID")
    role: CollaboratorRole = Field(default=CollaboratorRole.EDITOR, description="editor or viewer")
    added_at: datetime | None = None

    @field_validator("user_id", mode="before")
    @classmethod
    def collapse_reference(cls, v: Any) -> Any:
        return coerce_reference(v)


class TodoList(WireModel):
    """A named collection of todos, optionally shared."""

    id: str = Field(..., validation_alias=AliasChoices("_id", "id"), serialization_alias="_id")
    name: str = Field(..., description="List name")
    icon: str = Field(default="📝")
    color: str = Field(default="#3B82F6")
    owner: str | None = Field(default=None, description="Owner user ID")
    is_private: bool = True
    collaborators: list[Collaborator] = Field(default_factory=list)
    created_at: datetime | None = None

    @field_validator("owner", mode="before")
    @classmethod
    def collapse_reference(cls, v: Any) -> Any:
        return coerce_reference(v)

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(constants.TEMP_ID_PREFIX)

    def find_collaborator(self, user_id: str) -> Collaborator | None:
        return next((c for c in self.collaborators if c.user_id == user_id), None)

    def has_access(self, user_id: str) -> bool:
        return self.owner == user_id or self.find_collaborator(user_id) is not None

    def can_edit(self, user_id: str) -> bool:
        """Owner and editors may change the list's todos; viewers may only read."""
        if self.owner == user_id:
            return True
        collaborator = self.find_collaborator(user_id)
        return collaborator is not None and collaborator.role is CollaboratorRole.EDITOR

    def can_manage(self, user_id: str) -> bool:
        """Only the owner may delete the list or manage collaborators."""
        return self.owner == user_id


class ListPage(WireModel):
    """Cached value of the lists query."""

    lists: list[TodoList] = Field(default_factory=list)
