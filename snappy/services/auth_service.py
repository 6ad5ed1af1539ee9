"""Login, registration and session teardown."""

import logging

from snappy.core.config import Settings
from snappy.core.config import settings as default_settings
from snappy.core.gateway import HttpGateway
from snappy.core.logging import span
from snappy.core.query_cache import QueryCache
from snappy.core.secure_storage import SecureStorage
from snappy.domain.user import AuthSession, User


logger = logging.getLogger(__name__)


class AuthService:
    """Owns the signed-in user and the stored credentials."""

    def __init__(
        self,
        *,
        gateway: HttpGateway,
        storage: SecureStorage,
        cache: QueryCache,
        settings: Settings | None = None,
    ) -> None:
        self.gateway = gateway
        self.storage = storage
        self.cache = cache
        self.settings = settings or default_settings
        self.current_user: User | None = None

    def get_current_user_id(self) -> str | None:
        return self.current_user.id if self.current_user else None

    def _start_session(self, session: AuthSession) -> User:
        self.storage.set_token(session.token, self.settings.token_ttl_seconds)
        if session.refresh_token:
            self.storage.set_refresh_token(session.refresh_token)
        self.current_user = session.user
        logger.info("Session started", extra={"user_id": session.user.id})
        return session.user

    async def login(self, email: str, password: str) -> User:
        """Sign in and store the issued credentials.

        Raises:
            GatewayError: If the server rejects the credentials
        """
        with span("auth_service.login"):
            data = await self.gateway.post("/auth/login", json={"email": email, "password": password})
            return self._start_session(AuthSession.model_validate(data))

    async def register(self, name: str, email: str, password: str) -> User:
        with span("auth_service.register"):
            data = await self.gateway.post(
                "/auth/register", json={"name": name, "email": email, "password": password}
            )
            return self._start_session(AuthSession.model_validate(data))

    async def get_me(self) -> User:
        """Reload the signed-in user from the server."""
        with span("auth_service.get_me"):
            data = await self.gateway.get("/auth/me")
            self.current_user = User.model_validate(data["user"])
            return self.current_user

    def logout(self) -> None:
        """Forget credentials and every cached query."""
        self.storage.remove_token()
        self.cache.clear()
        self.current_user = None
        logger.info("Logged out")
