"""List queries, optimistic list mutations and collaborator management."""

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from snappy.core.config import constants
from snappy.core.gateway import HttpGateway
from snappy.core.logging import span
from snappy.core.mutations import MutationController
from snappy.core.query_cache import QueryCache, QueryKey, make_query_key
from snappy.domain.create_models import CollaboratorInvite, ListCreate
from snappy.domain.todo_list import CollaboratorRole, ListPage, TodoList
from snappy.domain.update_models import ListUpdate


logger = logging.getLogger(__name__)


LISTS_KEY: QueryKey = make_query_key("lists")


def find_cached_list(cache: QueryCache, list_id: str) -> TodoList | None:
    """Look a list up in the cached lists query."""
    page = cache.get_query_data(LISTS_KEY)
    if page is None:
        return None
    return next((todo_list for todo_list in page.lists if todo_list.id == list_id), None)


def _map_lists(page: ListPage, list_id: str, change: Callable[[TodoList], TodoList]) -> ListPage:
    return page.model_copy(
        update={"lists": [change(todo_list) if todo_list.id == list_id else todo_list for todo_list in page.lists]}
    )


class ListService:
    """Reads and mutates lists through the mutation controller."""

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
        self._last_temp_ms = 0

    async def _get_lists(self) -> ListPage:
        data = await self.gateway.get("/lists")
        return ListPage.model_validate(data or {})

    async def fetch_lists(self, *, force: bool = False) -> ListPage:
        """Return lists, fetching when the cache is stale."""
        with span("list_service.fetch_lists"):
            return await self.cache.fetch_query(LISTS_KEY, self._get_lists, force=force)

    async def read_lists(self) -> ListPage:
        """Return cached lists immediately, refetching in the background when stale."""
        return await self.cache.read_query(LISTS_KEY, self._get_lists)

    def find_list(self, list_id: str) -> TodoList | None:
        return find_cached_list(self.cache, list_id)

    def _ensure_permission(self, list_id: str, check: str, action: str) -> None:
        user_id = self._current_user_id()
        todo_list = self.find_list(list_id)
        if user_id is None or todo_list is None:
            return
        if not getattr(todo_list, check)(user_id):
            logger.info("List action denied", extra={"list_id": list_id, "user_id": user_id, "action": action})
            msg = f"You don't have permission to {action} '{todo_list.name}'"
            raise PermissionError(msg)

    def _next_temp_id(self) -> str:
        now_ms = max(int(time.time() * 1000), self._last_temp_ms + 1)
        self._last_temp_ms = now_ms
        return f"{constants.TEMP_ID_PREFIX}{now_ms}"

    async def create_list(self, data: ListCreate) -> TodoList:
        """Create a list, showing it at the end of the cached lists immediately."""
        with span("list_service.create_list"):
            placeholder = TodoList.model_validate(
                {
                    **data.model_dump(exclude_none=True),
                    "id": self._next_temp_id(),
                    "owner": self._current_user_id(),
                    "created_at": datetime.now(UTC),
                }
            )

            def optimistic(_key: QueryKey, old: ListPage | None) -> ListPage:
                page = old or ListPage()
                return page.model_copy(update={"lists": [*page.lists, placeholder]})

            async def dispatch() -> TodoList:
                response = await self.gateway.post("/lists", json=data.to_wire())
                return TodoList.model_validate(response["list"])

            return await self.mutations.mutate(
                name="create_list",
                query_prefix=LISTS_KEY,
                dispatch=dispatch,
                optimistic=optimistic,
                error_message="Failed to create list",
                success_message="List created!",
                creates_data=True,
            )

    async def update_list(self, list_id: str, data: ListUpdate) -> TodoList:
        """Rename or restyle a list. Owner and editors only."""
        with span("list_service.update_list"):
            self._ensure_permission(list_id, "can_edit", "edit")
            changes = data.model_dump(exclude_unset=True)

            def optimistic(_key: QueryKey, old: ListPage) -> ListPage:
                return _map_lists(old, list_id, lambda todo_list: todo_list.model_copy(update=changes))

            async def dispatch() -> TodoList:
                response = await self.gateway.patch(f"/lists/{list_id}", json=data.to_wire())
                return TodoList.model_validate(response["list"])

            return await self.mutations.mutate(
                name="update_list",
                query_prefix=LISTS_KEY,
                dispatch=dispatch,
                optimistic=optimistic,
                error_message="Failed to update list",
                success_message="List updated!",
            )

    async def delete_list(self, list_id: str) -> None:
        """Delete a list. Owner only."""
        with span("list_service.delete_list"):
            self._ensure_permission(list_id, "can_manage", "delete")

            def optimistic(_key: QueryKey, old: ListPage) -> ListPage:
                return old.model_copy(update={"lists": [item for item in old.lists if item.id != list_id]})

            await self.mutations.mutate(
                name="delete_list",
                query_prefix=LISTS_KEY,
                dispatch=lambda: self.gateway.delete(f"/lists/{list_id}"),
                optimistic=optimistic,
                error_message="Failed to delete list",
                success_message="List deleted",
            )

    async def invite_collaborator(
        self, list_id: str, email: str, role: CollaboratorRole = CollaboratorRole.EDITOR
    ) -> TodoList:
        """Invite a user by email. The cached list is replaced with the server copy."""
        with span("list_service.invite_collaborator"):
            self._ensure_permission(list_id, "can_manage", "share")
            invite = CollaboratorInvite(email=email, role=role)

            async def dispatch() -> TodoList:
                response = await self.gateway.post(f"/lists/{list_id}/invite", json=invite.to_wire())
                todo_list = TodoList.model_validate(response["list"])
                self._replace_cached(todo_list)
                return todo_list

            return await self.mutations.mutate(
                name="invite_collaborator",
                query_prefix=LISTS_KEY,
                dispatch=dispatch,
                error_message="Failed to invite collaborator",
                success_message=f"Invited {invite.email}",
            )

    async def remove_collaborator(self, list_id: str, user_id: str) -> Any:
        """Remove a collaborator from a list. Owner only."""
        with span("list_service.remove_collaborator"):
            self._ensure_permission(list_id, "can_manage", "manage collaborators of")

            def drop(todo_list: TodoList) -> TodoList:
                remaining = [c for c in todo_list.collaborators if c.user_id != user_id]
                return todo_list.model_copy(update={"collaborators": remaining})

            return await self.mutations.mutate(
                name="remove_collaborator",
                query_prefix=LISTS_KEY,
                dispatch=lambda: self.gateway.delete(f"/lists/{list_id}/collaborators/{user_id}"),
                optimistic=lambda _key, old: _map_lists(old, list_id, drop),
                error_message="Failed to remove collaborator",
            )

    async def update_collaborator_role(self, list_id: str, user_id: str, role: CollaboratorRole) -> Any:
        """Switch a collaborator between editor and viewer. Owner only."""
        with span("list_service.update_collaborator_role"):
            self._ensure_permission(list_id, "can_manage", "manage collaborators of")

            def change_role(todo_list: TodoList) -> TodoList:
                collaborators = [
                    c.model_copy(update={"role": role}) if c.user_id == user_id else c
                    for c in todo_list.collaborators
                ]
                return todo_list.model_copy(update={"collaborators": collaborators})

            return await self.mutations.mutate(
                name="update_collaborator_role",
                query_prefix=LISTS_KEY,
                dispatch=lambda: self.gateway.patch(
                    f"/lists/{list_id}/collaborators/{user_id}", json={"role": role.value}
                ),
                optimistic=lambda _key, old: _map_lists(old, list_id, change_role),
                error_message="Failed to update collaborator role",
            )

    def _replace_cached(self, todo_list: TodoList) -> None:
        if self.cache.get_query_data(LISTS_KEY) is None:
            return
        self.cache.set_query_data(LISTS_KEY, lambda old: _map_lists(old, todo_list.id, lambda _: todo_list))
