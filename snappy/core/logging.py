"""Logfire setup for the client.

Modules log through ``logging.getLogger(__name__)`` with structured ``extra``
fields. Once Logfire is configured it picks those records up and nests them
under the spans opened by the services and the mutation controller.
"""

import logging

import logfire

from snappy.core.config import Settings, settings


logger = logging.getLogger(__name__)

_configured = False


def configure_logfire(config: Settings | None = None, *, force: bool = False) -> bool:
    """Configure Logfire once per process.

    Spans and logs are only exported when a token is set.

    Returns:
        True if this call configured Logfire
    """
    global _configured
    if _configured and not force:
        return False

    config = config or settings
    logfire.configure(
        token=config.logfire_token,
        service_name="snappy-client",
        service_version="0.1.0",
        environment=config.environment,
        send_to_logfire="if-token-present",
    )
    _configured = True
    logger.info("Logfire configured", extra={"environment": config.environment})
    return True


def span(name: str) -> logfire.LogfireSpan:
    """Open a Logfire span named after the operation, e.g. ``todo_service.create_todo``."""
    return logfire.span(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    **context: object,
) -> None:
    """Log ``message`` at ``level`` with ``context`` passed as structured extra fields."""
    log_method = getattr(logger, level.lower())
    log_method(message, extra=context)
