"""Task templates: reusable todo blueprints with ``[PLACEHOLDER]`` slots in the title."""

import re
from datetime import date, datetime
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from snappy.core.config import constants
from snappy.domain.base import WireModel, coerce_reference
from snappy.domain.todo import SubStep


PLACEHOLDER_PATTERN = re.compile(r"\[([A-Z\s]+)\]")
DATE_PLACEHOLDER = "DATE"


class TemplateCategory(StrEnum):
    WORK = "work"
    PERSONAL = "personal"
    STUDY = "study"
    HEALTH = "health"
    CREATIVE = "creative"
    OTHER = "other"


class TaskBlueprint(WireModel):
    """The todo a template produces."""

    title: str = Field(..., min_length=1, description="Todo title, may contain [PLACEHOLDER] slots")
    note: str | None = None
    sub_steps: list[SubStep] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    priority: int = Field(default=2, ge=0, le=3)
    effort_minutes: int | None = None
    energy_level: str | None = None
    location: str | None = None
    mood: str | None = None
    best_time_to_complete: str | None = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            msg = "Template title is required"
            raise ValueError(msg)
        return stripped


class Template(WireModel):
    """Template as listed by GET /templates. Public templates may belong to other users."""

    id: str = Field(..., validation_alias=AliasChoices("_id", "id"), serialization_alias="_id")
    name: str
    description: str = ""
    icon: str = "📝"
    template: TaskBlueprint
    owner: str | None = None
    is_public: bool = False
    category: TemplateCategory = TemplateCategory.OTHER
    usage_count: int = 0
    created_at: datetime | None = None

    @field_validator("owner", mode="before")
    @classmethod
    def collapse_owner(cls, v: Any) -> Any:
        return coerce_reference(v)

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(constants.TEMP_ID_PREFIX)

    def placeholders(self) -> list[str]:
        """Placeholder names the caller has to fill, in title order. [DATE] is filled automatically."""
        names = PLACEHOLDER_PATTERN.findall(self.template.title)
        return list(dict.fromkeys(name for name in names if name != DATE_PLACEHOLDER))

    def fill_title(self, values: dict[str, str] | None = None, *, today: date | None = None) -> str:
        """Substitute placeholder values into the title. [DATE] becomes today's ISO date.

        Raises:
            ValueError: If a placeholder has no value
        """
        values = values or {}
        missing = [name for name in self.placeholders() if name not in values]
        if missing:
            msg = f"Missing values for: {', '.join(missing)}"
            raise ValueError(msg)

        title = self.template.title
        for name, value in values.items():
            title = title.replace(f"[{name}]", value)
        return title.replace(f"[{DATE_PLACEHOLDER}]", (today or date.today()).isoformat())


class TemplatePage(WireModel):
    """Cached value of a templates query."""

    templates: list[Template] = Field(default_factory=list)
