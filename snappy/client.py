"""Client facade wiring storage, gateway, cache and services together."""

import logging

import httpx

from snappy.core.config import Settings, get_settings
from snappy.core.gateway import AuthFailureHandler, GatewayState, HttpGateway
from snappy.core.logging import configure_logfire
from snappy.core.mutations import MutationController
from snappy.core.query_cache import QueryCache
from snappy.core.secure_storage import FileStorage, KeyValueStorage, MemoryStorage, SecureStorage
from snappy.interface.notifier import Notifier
from snappy.services.activity_service import ActivityService
from snappy.services.auth_service import AuthService
from snappy.services.focus_service import FocusService
from snappy.services.list_service import ListService
from snappy.services.template_service import TemplateService
from snappy.services.todo_service import TodoService


logger = logging.getLogger(__name__)


def _default_backend(settings: Settings) -> KeyValueStorage:
    if settings.token_storage_path is not None:
        return FileStorage(settings.token_storage_path)
    return MemoryStorage()


class SnappyClient:
    """One signed-in client session.

    Usage:
        async with SnappyClient() as client:
            await client.auth.login(email, password)
            page = await client.todos.fetch_todos()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        storage: SecureStorage | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        on_auth_failure: AuthFailureHandler | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        if self.settings.logfire_auto_configure:
            configure_logfire(self.settings)
        self.storage = storage if storage is not None else SecureStorage(_default_backend(self.settings))
        self.gateway = HttpGateway(
            settings=self.settings,
            storage=self.storage,
            state=GatewayState(),
            transport=transport,
            on_auth_failure=on_auth_failure,
        )
        self.cache = QueryCache(stale_seconds=self.settings.query_stale_seconds)
        self.notifier = Notifier(history_limit=self.settings.notification_history_limit)
        self.mutations = MutationController(self.cache, self.notifier)

        self.auth = AuthService(gateway=self.gateway, storage=self.storage, cache=self.cache, settings=self.settings)
        self.lists = ListService(
            gateway=self.gateway,
            cache=self.cache,
            mutations=self.mutations,
            current_user_id=self.auth.get_current_user_id,
        )
        self.todos = TodoService(
            gateway=self.gateway,
            cache=self.cache,
            mutations=self.mutations,
            current_user_id=self.auth.get_current_user_id,
        )
        self.focus = FocusService(gateway=self.gateway, cache=self.cache, mutations=self.mutations, todos=self.todos)
        self.templates = TemplateService(
            gateway=self.gateway,
            cache=self.cache,
            mutations=self.mutations,
            todos=self.todos,
            current_user_id=self.auth.get_current_user_id,
        )
        self.activities = ActivityService(gateway=self.gateway, cache=self.cache, mutations=self.mutations)

    async def __aenter__(self) -> "SnappyClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop background fetches and close the HTTP connection pool."""
        self.cache.clear()
        await self.gateway.aclose()
        logger.debug("Client closed")
