"""Wire models for the focus and activity statistics endpoints."""

from enum import StrEnum

from pydantic import Field

from snappy.domain.base import WireModel
from snappy.domain.todo import FocusSession


class StatsPeriod(StrEnum):
    """Look-back window accepted by the statistics endpoints."""

    DAY = "24h"
    WEEK = "7d"
    MONTH = "30d"


class ActiveFocus(WireModel):
    """Result of GET /focus/{todo_id}/active."""

    active: bool = False
    session: FocusSession | None = None


class FocusSessionPage(WireModel):
    """Flattened focus history across the user's todos, newest first."""

    sessions: list[FocusSession] = Field(default_factory=list)
    total: int = 0


class FocusStats(WireModel):
    """Focus totals for a period. Times are in minutes."""

    total_sessions: int = 0
    total_focus_time: int = 0
    completed_sessions: int = 0
    interrupted_sessions: int = 0
    average_session_length: int = 0
    by_day: dict[str, int] = Field(default_factory=dict, description="Focus minutes keyed by ISO date")
    most_productive_time: str | None = Field(default=None, description="Hour with the most sessions, e.g. 9:00")


class ActivityStats(WireModel):
    """Activity counts for a period."""

    total: int = 0
    by_action: dict[str, int] = Field(default_factory=dict)
    by_day: dict[str, int] = Field(default_factory=dict)
    most_active: str | None = Field(default=None, description="ISO date with the most activity")
