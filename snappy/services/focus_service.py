"""Focus-timer sessions logged against todos.

Starting and stopping a session updates the todo's session log in every
cached todos query right away; a failed request rolls the log back. The
focus queries (active session, history, statistics) are cached under the
``("focus",)`` prefix and go stale whenever a session starts or stops.
"""

import logging
from datetime import UTC, datetime

from snappy.core.gateway import HttpGateway
from snappy.core.logging import span
from snappy.core.mutations import MutationController
from snappy.core.query_cache import QueryCache, QueryKey, make_query_key
from snappy.domain.stats import ActiveFocus, FocusSessionPage, FocusStats, StatsPeriod
from snappy.domain.todo import FocusSession, Todo
from snappy.services.todo_service import TODOS_PREFIX, TodoService, map_todos


logger = logging.getLogger(__name__)


FOCUS_PREFIX: QueryKey = ("focus",)


def active_focus_key(todo_id: str) -> QueryKey:
    return (*FOCUS_PREFIX, "active", todo_id)


def _open_session(todo: Todo, now: datetime) -> Todo:
    return todo.model_copy(update={"focus_sessions": [*todo.focus_sessions, FocusSession(started_at=now)]})


def _close_session(todo: Todo, now: datetime, *, interrupted: bool) -> Todo:
    """End the open session, counting whole minutes like the server does."""
    sessions = []
    added_minutes = 0
    for session in todo.focus_sessions:
        if session.ended_at is not None:
            sessions.append(session)
            continue
        added_minutes = max(0, int((now - (session.started_at or now)).total_seconds() // 60))
        sessions.append(
            session.model_copy(update={"ended_at": now, "duration": added_minutes, "interrupted": interrupted})
        )
    return todo.model_copy(
        update={"focus_sessions": sessions, "total_focus_time": todo.total_focus_time + added_minutes}
    )


class FocusService:
    """Start, stop and inspect focus sessions."""

    def __init__(
        self,
        *,
        gateway: HttpGateway,
        cache: QueryCache,
        mutations: MutationController,
        todos: TodoService,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.mutations = mutations
        self.todos = todos

    def _require_saved_todo(self, todo_id: str) -> Todo | None:
        todo = self.todos.find_todo(todo_id)
        if todo is not None and todo.is_temporary:
            msg = "This todo is still being saved, try again in a moment"
            raise ValueError(msg)
        return todo

    async def start_focus(self, todo_id: str) -> FocusSession:
        """Start a session on a todo.

        Raises:
            ValueError: If the cached todo already has a session running or is not saved yet
        """
        with span("focus_service.start_focus"):
            todo = self._require_saved_todo(todo_id)
            if todo is not None and todo.active_focus_session is not None:
                msg = "Focus session already in progress"
                raise ValueError(msg)
            now = datetime.now(UTC)

            async def dispatch() -> FocusSession:
                response = await self.gateway.post(f"/focus/{todo_id}/start")
                return FocusSession.model_validate({**response["session"], "todo_id": todo_id})

            try:
                session = await self.mutations.mutate(
                    name="start_focus",
                    query_prefix=TODOS_PREFIX,
                    dispatch=dispatch,
                    optimistic=lambda _key, old: map_todos(old, todo_id, lambda item: _open_session(item, now)),
                    error_message="Failed to start focus session",
                    success_message="Focus session started",
                )
            finally:
                self.cache.invalidate_queries(FOCUS_PREFIX)
            self.cache.set_query_data(active_focus_key(todo_id), ActiveFocus(active=True, session=session))
            return session

    async def stop_focus(self, todo_id: str, *, interrupted: bool = False) -> FocusSession:
        """End the running session on a todo and add its minutes to the todo's focus total."""
        with span("focus_service.stop_focus"):
            self._require_saved_todo(todo_id)
            now = datetime.now(UTC)

            async def dispatch() -> FocusSession:
                response = await self.gateway.post(f"/focus/{todo_id}/stop", json={"interrupted": interrupted})
                session = FocusSession.model_validate({**response["session"], "todo_id": todo_id})
                logger.info(
                    "Focus session ended",
                    extra={
                        "todo_id": todo_id,
                        "duration": session.duration,
                        "interrupted": interrupted,
                        "total_focus_time": response.get("totalFocusTime"),
                    },
                )
                return session

            try:
                session = await self.mutations.mutate(
                    name="stop_focus",
                    query_prefix=TODOS_PREFIX,
                    dispatch=dispatch,
                    optimistic=lambda _key, old: map_todos(
                        old, todo_id, lambda item: _close_session(item, now, interrupted=interrupted)
                    ),
                    error_message="Failed to stop focus session",
                    success_message=None if interrupted else "Focus session complete!",
                )
            finally:
                self.cache.invalidate_queries(FOCUS_PREFIX)
            self.cache.set_query_data(active_focus_key(todo_id), ActiveFocus(active=False))
            return session

    async def cancel_focus(self, todo_id: str) -> FocusSession:
        """Abandon the running session. It is kept in the log as interrupted."""
        return await self.stop_focus(todo_id, interrupted=True)

    async def get_active_focus(self, todo_id: str, *, force: bool = False) -> ActiveFocus:
        async def fetch() -> ActiveFocus:
            data = await self.gateway.get(f"/focus/{todo_id}/active")
            return ActiveFocus.model_validate(data or {})

        return await self.cache.fetch_query(active_focus_key(todo_id), fetch, force=force)

    async def fetch_focus_sessions(self, *, limit: int = 50, skip: int = 0) -> FocusSessionPage:
        """Focus history across all of the user's todos, newest first."""
        params = {"limit": limit, "skip": skip}

        async def fetch() -> FocusSessionPage:
            data = await self.gateway.get("/focus/sessions", params=params)
            return FocusSessionPage.model_validate(data or {})

        with span("focus_service.fetch_focus_sessions"):
            return await self.cache.fetch_query(make_query_key("focus", {"history": True, **params}), fetch)

    async def fetch_focus_stats(self, period: StatsPeriod = StatsPeriod.WEEK) -> FocusStats:
        async def fetch() -> FocusStats:
            data = await self.gateway.get("/focus/stats", params={"period": period.value})
            return FocusStats.model_validate((data or {}).get("stats", {}))

        with span("focus_service.fetch_focus_stats"):
            return await self.cache.fetch_query(make_query_key("focus", {"stats": period.value}), fetch)
