"""Read-only activity feed and activity statistics."""

import logging
from typing import Any

from pydantic import Field

from snappy.core.gateway import HttpGateway
from snappy.core.logging import span
from snappy.core.mutations import MutationController
from snappy.core.query_cache import QueryCache, QueryKey, make_query_key
from snappy.domain.activity import ActivityPage, ActivityTarget
from snappy.domain.base import WireModel
from snappy.domain.stats import ActivityStats, StatsPeriod


logger = logging.getLogger(__name__)


ACTIVITIES_PREFIX: QueryKey = ("activities",)


class ActivityFilters(WireModel):
    """Query parameters accepted by GET /activities."""

    target_type: ActivityTarget | None = None
    target_id: str | None = None
    limit: int | None = Field(default=None, ge=1)
    skip: int | None = Field(default=None, ge=0)


class ActivityService:
    """Cached reads of what the user (or a shared list) has been doing."""

    def __init__(self, *, gateway: HttpGateway, cache: QueryCache, mutations: MutationController) -> None:
        self.gateway = gateway
        self.cache = cache
        self.mutations = mutations

    def query_key(self, filters: ActivityFilters | None = None) -> QueryKey:
        return make_query_key("activities", filters.to_wire() if filters else None)

    async def _get(self, path: str, params: dict[str, Any] | None) -> ActivityPage:
        data = await self.gateway.get(path, params=params)
        return ActivityPage.model_validate(data or {})

    async def fetch_activities(self, filters: ActivityFilters | None = None, *, force: bool = False) -> ActivityPage:
        """The signed-in user's own feed, newest first."""
        params = filters.to_wire() if filters else None
        with span("activity_service.fetch_activities"):
            return await self.cache.fetch_query(
                self.query_key(filters), lambda: self._get("/activities", params), force=force
            )

    async def read_activities(self, filters: ActivityFilters | None = None) -> ActivityPage:
        """Cached feed right away, refetched in the background when stale."""
        params = filters.to_wire() if filters else None
        return await self.cache.read_query(self.query_key(filters), lambda: self._get("/activities", params))

    async def fetch_list_activities(
        self, list_id: str, *, limit: int = 50, skip: int = 0, force: bool = False
    ) -> ActivityPage:
        """Everything that happened to a list and its todos, by any collaborator."""
        params = {"limit": limit, "skip": skip}
        key = make_query_key("activities", {"listId": list_id, **params})
        with span("activity_service.fetch_list_activities"):
            return await self.cache.fetch_query(
                key, lambda: self._get(f"/activities/list/{list_id}", params), force=force
            )

    async def fetch_activity_stats(self, period: StatsPeriod = StatsPeriod.WEEK) -> ActivityStats:
        async def fetch() -> ActivityStats:
            data = await self.gateway.get("/activities/stats", params={"period": period.value})
            return ActivityStats.model_validate((data or {}).get("stats", {}))

        return await self.cache.fetch_query(make_query_key("activities", {"stats": period.value}), fetch)

    async def cleanup_activities(self, days: int = 90) -> int:
        """Delete the user's activities older than `days`. Returns how many were removed."""
        if days < 1:
            msg = "days must be at least 1"
            raise ValueError(msg)

        async def dispatch() -> int:
            response = await self.gateway.delete("/activities/cleanup", params={"days": days})
            return int((response or {}).get("deleted", 0))

        with span("activity_service.cleanup_activities"):
            deleted = await self.mutations.mutate(
                name="cleanup_activities",
                query_prefix=ACTIVITIES_PREFIX,
                dispatch=dispatch,
                error_message="Failed to clean up activity history",
            )
            logger.info("Cleaned up activities", extra={"days": days, "deleted": deleted})
            return deleted
