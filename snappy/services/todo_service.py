"""Todo queries and optimistic todo mutations."""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import Field

from snappy.core.config import constants
from snappy.core.gateway import HttpGateway
from snappy.core.logging import span
from snappy.core.mutations import MutationController
from snappy.core.query_cache import QueryCache, QueryKey, key_filters, make_query_key
from snappy.domain.base import WireModel
from snappy.domain.create_models import TodoCreate
from snappy.domain.todo import Todo, TodoPage, TodoStatus, apply_status
from snappy.domain.update_models import TodoUpdate
from snappy.services.list_service import find_cached_list


logger = logging.getLogger(__name__)


TODOS_PREFIX: QueryKey = ("todos",)


class TodoFilters(WireModel):
    """Query parameters accepted by GET /todos."""

    status: TodoStatus | None = None
    list_id: str | None = None
    tag: str | None = None
    limit: int | None = Field(default=None, ge=1)
    skip: int | None = Field(default=None, ge=0)


def map_todos(page: TodoPage, todo_id: str, change: Callable[[Todo], Todo]) -> TodoPage:
    return page.model_copy(update={"todos": [change(todo) if todo.id == todo_id else todo for todo in page.todos]})


def _merge(todo: Todo, fields: dict[str, Any]) -> Todo:
    if not fields:
        return todo
    return Todo.model_validate({**todo.model_dump(), **fields})


class TodoService:
    """Reads todos through the query cache and mutates them optimistically.

    Creates get a temporary id until the server confirms them. Deleting a
    todo whose create is still in flight removes it immediately and sends the
    DELETE once the create has settled (nothing is sent if the create failed).
    """

    def __init__(
        self,
        *,
        gateway: HttpGateway,
        cache: QueryCache,
        mutations: MutationController,
        current_user_id: Callable[[], str | None] | None = None,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.mutations = mutations
        self._current_user_id = current_user_id or (lambda: None)
        self._pending_creates: dict[str, asyncio.Future[str | None]] = {}
        self._last_temp_ms = 0

    def query_key(self, filters: TodoFilters | None = None) -> QueryKey:
        return make_query_key("todos", filters.to_wire() if filters else None)

    async def _get_todos(self, filters: TodoFilters | None) -> TodoPage:
        data = await self.gateway.get("/todos", params=filters.to_wire() if filters else None)
        self._prune_settled_creates()
        return TodoPage.model_validate(data or {})

    async def fetch_todos(self, filters: TodoFilters | None = None, *, force: bool = False) -> TodoPage:
        """Return todos for the filters, fetching when the cache is stale."""
        with span("todo_service.fetch_todos"):
            return await self.cache.fetch_query(
                self.query_key(filters), lambda: self._get_todos(filters), force=force
            )

    async def read_todos(self, filters: TodoFilters | None = None) -> TodoPage:
        """Return cached todos immediately, refetching in the background when stale."""
        return await self.cache.read_query(self.query_key(filters), lambda: self._get_todos(filters))

    def find_todo(self, todo_id: str) -> Todo | None:
        """Look a todo up across every cached todos query."""
        for key in self.cache.find_keys(TODOS_PREFIX):
            page = self.cache.get_query_data(key)
            if page is None:
                continue
            for todo in page.todos:
                if todo.id == todo_id:
                    return todo
        return None

    def _ensure_can_edit(self, list_id: str | None) -> None:
        user_id = self._current_user_id()
        if list_id is None or user_id is None:
            return
        todo_list = find_cached_list(self.cache, list_id)
        if todo_list is not None and not todo_list.can_edit(user_id):
            msg = f"You have view-only access to '{todo_list.name}'"
            raise PermissionError(msg)

    def _next_temp_id(self) -> str:
        now_ms = max(int(time.time() * 1000), self._last_temp_ms + 1)
        self._last_temp_ms = now_ms
        return f"{constants.TEMP_ID_PREFIX}{now_ms}"

    def _prune_settled_creates(self, *, keep_visible: bool = False) -> None:
        """Forget settled creates. With keep_visible, placeholders still shown in the cache stay resolvable."""
        for temp_id, future in list(self._pending_creates.items()):
            if future.done() and not (keep_visible and self.find_todo(temp_id) is not None):
                del self._pending_creates[temp_id]

    async def create_todo(self, data: TodoCreate) -> Todo:
        """Create a todo, prepending a temporary copy to matching cached pages."""
        with span("todo_service.create_todo"):
            self._ensure_can_edit(data.list_id)
            placeholder = Todo.model_validate(
                {
                    **data.model_dump(exclude_none=True),
                    "id": self._next_temp_id(),
                    "created_at": datetime.now(UTC),
                    "status": TodoStatus.TODO,
                }
            )
            confirmed: asyncio.Future[str | None] = asyncio.get_running_loop().create_future()
            self._pending_creates[placeholder.id] = confirmed

            def optimistic(key: QueryKey, old: TodoPage | None) -> TodoPage:
                page = old or TodoPage()
                if not placeholder.matches_filters(key_filters(key)):
                    return page
                return page.model_copy(update={"todos": [placeholder, *page.todos]})

            async def dispatch() -> Todo:
                response = await self.gateway.post("/todos", json=data.to_wire())
                return Todo.model_validate(response["todo"])

            server_id = None
            try:
                todo = await self.mutations.mutate(
                    name="create_todo",
                    query_prefix=TODOS_PREFIX,
                    dispatch=dispatch,
                    optimistic=optimistic,
                    error_message="Failed to create todo",
                    success_message="Todo created!",
                    creates_data=True,
                )
                server_id = todo.id
                return todo
            finally:
                confirmed.set_result(server_id)
                self._prune_settled_creates(keep_visible=True)

    async def update_todo(self, todo_id: str, data: TodoUpdate) -> Todo:
        """Patch a todo. Setting status applies the same completion rule as toggling."""
        with span("todo_service.update_todo"):
            return await self._patch(todo_id, data, name="update_todo", error_message="Failed to update todo")

    async def set_todo_status(self, todo_id: str, status: TodoStatus) -> Todo:
        with span("todo_service.set_todo_status"):
            return await self._patch(
                todo_id,
                TodoUpdate(status=status),
                name="set_todo_status",
                error_message="Failed to update todo",
            )

    async def toggle_todo_status(self, todo_id: str) -> Todo:
        """Flip a cached todo between done and todo.

        Raises:
            KeyError: If the todo is not in any cached query
        """
        existing = self.find_todo(todo_id)
        if existing is None:
            msg = f"Todo {todo_id} not found in cache"
            raise KeyError(msg)
        status = TodoStatus.TODO if existing.status is TodoStatus.DONE else TodoStatus.DONE
        return await self.set_todo_status(todo_id, status)

    async def _patch(self, todo_id: str, data: TodoUpdate, *, name: str, error_message: str) -> Todo:
        existing = self.find_todo(todo_id)
        self._ensure_can_edit(existing.list_id if existing else data.list_id)

        fields = data.model_dump(exclude_unset=True)
        status = fields.pop("status", None)
        now = datetime.now(UTC)

        def change(todo: Todo) -> Todo:
            updated = _merge(todo, fields)
            return apply_status(updated, status, now) if status is not None else updated

        async def dispatch() -> Todo:
            response = await self.gateway.patch(f"/todos/{todo_id}", json=data.to_wire())
            return Todo.model_validate(response["todo"])

        return await self.mutations.mutate(
            name=name,
            query_prefix=TODOS_PREFIX,
            dispatch=dispatch,
            optimistic=lambda _key, old: map_todos(old, todo_id, change),
            error_message=error_message,
        )

    async def delete_todo(self, todo_id: str) -> None:
        """Delete a todo, removing it from every cached page immediately."""
        with span("todo_service.delete_todo"):
            existing = self.find_todo(todo_id)
            self._ensure_can_edit(existing.list_id if existing else None)
            pending_create = self._pending_creates.get(todo_id)

            def optimistic(_key: QueryKey, old: TodoPage) -> TodoPage:
                return old.model_copy(update={"todos": [todo for todo in old.todos if todo.id != todo_id]})

            async def dispatch() -> Any:
                target_id: str | None = todo_id
                if pending_create is not None:
                    target_id = await asyncio.shield(pending_create)
                    self._pending_creates.pop(todo_id, None)
                    if target_id is None:
                        logger.info("Create was rolled back, skipping delete", extra={"todo_id": todo_id})
                        return None
                return await self.gateway.delete(f"/todos/{target_id}")

            await self.mutations.mutate(
                name="delete_todo",
                query_prefix=TODOS_PREFIX,
                dispatch=dispatch,
                optimistic=optimistic,
                error_message="Failed to delete todo",
                success_message="Todo deleted",
            )

    async def add_comment(self, todo_id: str, text: str) -> Todo:
        """Comment on a todo. The cached todo is replaced with the server copy."""
        with span("todo_service.add_comment"):

            async def dispatch() -> Todo:
                response = await self.gateway.post(f"/todos/{todo_id}/comments", json={"text": text})
                todo = Todo.model_validate(response["todo"])
                self._replace_cached(todo)
                return todo

            return await self.mutations.mutate(
                name="add_comment",
                query_prefix=TODOS_PREFIX,
                dispatch=dispatch,
                error_message="Failed to add comment",
            )

    def _replace_cached(self, todo: Todo) -> None:
        for key in self.cache.find_keys(TODOS_PREFIX):
            if self.cache.get_query_data(key) is not None:
                self.cache.set_query_data(key, lambda old: map_todos(old, todo.id, lambda _: todo))
