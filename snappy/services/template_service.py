"""Task templates: cached queries, optimistic template edits and applying a template as a new todo."""

import logging
import time
from collections.abc import Callable
from datetime import UTC, date, datetime

from snappy.core.config import constants
from snappy.core.errors import GatewayError
from snappy.core.gateway import HttpGateway
from snappy.core.logging import span
from snappy.core.mutations import MutationController
from snappy.core.query_cache import QueryCache, QueryKey, key_filters, make_query_key
from snappy.domain.create_models import TemplateCreate, TodoCreate
from snappy.domain.template import Template, TemplateCategory, TemplatePage
from snappy.domain.todo import Todo
from snappy.domain.update_models import TemplateUpdate
from snappy.services.todo_service import TodoService


logger = logging.getLogger(__name__)


TEMPLATES_PREFIX: QueryKey = ("templates",)


def _map_templates(page: TemplatePage, template_id: str, change: Callable[[Template], Template]) -> TemplatePage:
    return page.model_copy(
        update={"templates": [change(item) if item.id == template_id else item for item in page.templates]}
    )


def build_todo(
    template: Template,
    values: dict[str, str] | None = None,
    *,
    list_id: str | None = None,
    today: date | None = None,
) -> TodoCreate:
    """Turn a template into a todo payload. Sub-steps always start unchecked.

    Raises:
        ValueError: If a placeholder has no value
    """
    blueprint = template.template
    fields = {
        "title": template.fill_title(values, today=today),
        "note": blueprint.note,
        "list_id": list_id,
        "tags": blueprint.tags or None,
        "priority": blueprint.priority,
        "sub_steps": [step.model_copy(update={"completed": False}) for step in blueprint.sub_steps] or None,
        "effort_minutes": blueprint.effort_minutes,
        "energy_level": blueprint.energy_level,
        "location": blueprint.location,
        "mood": blueprint.mood,
    }
    # Unset fields stay out of the POST body
    return TodoCreate.model_validate({name: value for name, value in fields.items() if value is not None})


class TemplateService:
    """Reads and edits the user's templates and creates todos from them."""

    def __init__(
        self,
        *,
        gateway: HttpGateway,
        cache: QueryCache,
        mutations: MutationController,
        todos: TodoService,
        current_user_id: Callable[[], str | None] | None = None,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.mutations = mutations
        self.todos = todos
        self._current_user_id = current_user_id or (lambda: None)
        self._last_temp_ms = 0

    def query_key(self, category: TemplateCategory | None = None) -> QueryKey:
        return make_query_key("templates", {"category": category.value if category else None})

    async def fetch_templates(
        self, category: TemplateCategory | None = None, *, force: bool = False
    ) -> TemplatePage:
        """The user's own templates plus public ones, most used first."""
        params = {"category": category.value} if category else None

        async def fetch() -> TemplatePage:
            data = await self.gateway.get("/templates", params=params)
            return TemplatePage.model_validate(data or {})

        with span("template_service.fetch_templates"):
            return await self.cache.fetch_query(self.query_key(category), fetch, force=force)

    async def fetch_popular_templates(self, limit: int = 10) -> TemplatePage:
        async def fetch() -> TemplatePage:
            data = await self.gateway.get("/templates/popular", params={"limit": limit})
            return TemplatePage.model_validate(data or {})

        return await self.cache.fetch_query(make_query_key("templates", {"popular": limit}), fetch)

    def find_template(self, template_id: str) -> Template | None:
        for key in self.cache.find_keys(TEMPLATES_PREFIX):
            page = self.cache.get_query_data(key)
            if page is None:
                continue
            for template in page.templates:
                if template.id == template_id:
                    return template
        return None

    async def get_template(self, template_id: str) -> Template:
        """Return a cached template, or fetch it."""
        cached = self.find_template(template_id)
        if cached is not None:
            return cached
        data = await self.gateway.get(f"/templates/{template_id}")
        return Template.model_validate(data["template"])

    def _ensure_owner(self, template_id: str, action: str) -> None:
        user_id = self._current_user_id()
        template = self.find_template(template_id)
        if user_id is None or template is None or template.owner is None:
            return
        if template.owner != user_id:
            msg = f"You can only {action} your own templates"
            raise PermissionError(msg)

    def _next_temp_id(self) -> str:
        now_ms = max(int(time.time() * 1000), self._last_temp_ms + 1)
        self._last_temp_ms = now_ms
        return f"{constants.TEMP_ID_PREFIX}{now_ms}"

    async def create_template(self, data: TemplateCreate) -> Template:
        """Save a template, appending it to the cached template pages it belongs in."""
        with span("template_service.create_template"):
            placeholder = Template.model_validate(
                {
                    **data.model_dump(exclude_none=True),
                    "id": self._next_temp_id(),
                    "owner": self._current_user_id(),
                    "created_at": datetime.now(UTC),
                }
            )

            def optimistic(key: QueryKey, old: TemplatePage | None) -> TemplatePage:
                page = old or TemplatePage()
                filters = key_filters(key)
                if "popular" in filters or filters.get("category", placeholder.category) != placeholder.category:
                    return page
                return page.model_copy(update={"templates": [*page.templates, placeholder]})

            async def dispatch() -> Template:
                response = await self.gateway.post("/templates", json=data.to_wire())
                return Template.model_validate(response["template"])

            return await self.mutations.mutate(
                name="create_template",
                query_prefix=TEMPLATES_PREFIX,
                dispatch=dispatch,
                optimistic=optimistic,
                error_message="Failed to save template",
                success_message="Template saved!",
                creates_data=True,
            )

    async def update_template(self, template_id: str, data: TemplateUpdate) -> Template:
        with span("template_service.update_template"):
            self._ensure_owner(template_id, "edit")
            changes = data.model_dump(exclude_unset=True)

            def change(template: Template) -> Template:
                return Template.model_validate({**template.model_dump(), **changes})

            async def dispatch() -> Template:
                response = await self.gateway.patch(f"/templates/{template_id}", json=data.to_wire())
                return Template.model_validate(response["template"])

            return await self.mutations.mutate(
                name="update_template",
                query_prefix=TEMPLATES_PREFIX,
                dispatch=dispatch,
                optimistic=lambda _key, old: _map_templates(old, template_id, change),
                error_message="Failed to update template",
            )

    async def delete_template(self, template_id: str) -> None:
        with span("template_service.delete_template"):
            self._ensure_owner(template_id, "delete")

            def optimistic(_key: QueryKey, old: TemplatePage) -> TemplatePage:
                return old.model_copy(update={"templates": [t for t in old.templates if t.id != template_id]})

            await self.mutations.mutate(
                name="delete_template",
                query_prefix=TEMPLATES_PREFIX,
                dispatch=lambda: self.gateway.delete(f"/templates/{template_id}"),
                optimistic=optimistic,
                error_message="Failed to delete template",
                success_message="Template deleted",
            )

    async def apply_template(
        self,
        template_id: str,
        values: dict[str, str] | None = None,
        *,
        list_id: str | None = None,
        today: date | None = None,
    ) -> Todo:
        """Create a todo from a template and count the use.

        The todo goes through the optimistic create. Failing to record the use
        afterwards only costs the usage counter, so it is logged rather than
        raised.

        Raises:
            ValueError: If a placeholder has no value
        """
        with span("template_service.apply_template"):
            template = await self.get_template(template_id)
            todo = await self.todos.create_todo(build_todo(template, values, list_id=list_id, today=today))

            def count_use(item: Template) -> Template:
                return item.model_copy(update={"usage_count": item.usage_count + 1})

            try:
                await self.mutations.mutate(
                    name="record_template_use",
                    query_prefix=TEMPLATES_PREFIX,
                    dispatch=lambda: self.gateway.post(f"/templates/{template_id}/use"),
                    optimistic=lambda _key, old: _map_templates(old, template_id, count_use),
                    error_message="Couldn't update template usage",
                )
            except GatewayError as e:
                logger.warning(
                    "Failed to record template use", extra={"template_id": template_id, "error": str(e)}
                )
            return todo
