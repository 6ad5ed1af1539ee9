"""Optimistic mutation controller on top of the query cache."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from snappy.core.errors import GatewayError, describe_error
from snappy.core.logging import log_with_context, span
from snappy.core.query_cache import QueryCache, QueryKey
from snappy.interface.notifier import Notifier


logger = logging.getLogger(__name__)

T = TypeVar("T")

OptimisticUpdater = Callable[[QueryKey, Any], Any]


def _error_detail(error: Exception) -> str | None:
    if isinstance(error, GatewayError):
        return error.user_message or describe_error(error).message
    if isinstance(error, PermissionError):
        return str(error)
    return None


class MutationController:
    """Runs create/update/delete mutations against the cache.

    Every mutation follows the same sequence:
        1. cancel in-flight fetches for the prefix and snapshot it
        2. write the optimistic value (no await between snapshot and write)
        3. dispatch the request
        4. success: keep the optimistic value
        5. failure: restore the snapshot and notify
        6. always: invalidate the prefix so the next read reconciles
    """

    def __init__(self, cache: QueryCache, notifier: Notifier) -> None:
        self.cache = cache
        self.notifier = notifier

    async def mutate(
        self,
        *,
        name: str,
        query_prefix: QueryKey,
        dispatch: Callable[[], Awaitable[T]],
        optimistic: OptimisticUpdater | None = None,
        error_message: str,
        success_message: str | None = None,
        creates_data: bool = False,
    ) -> T:
        """Run one mutation through the optimistic state machine.

        Args:
            name: Mutation name used for spans and logs
            query_prefix: Cache keys affected by the mutation
            dispatch: Coroutine factory sending the request through the gateway
            optimistic: Computes the post-mutation value of each affected key
            error_message: Toast shown when the mutation fails
            success_message: Optional toast shown on success
            creates_data: Also write keys that hold no data yet (creates only);
                otherwise optimistic updates touch cached data only

        Returns:
            Whatever dispatch() returned

        Raises:
            Exception: The dispatch failure, after the snapshot was restored
        """
        with span(f"mutation.{name}"):
            await self.cache.cancel_queries(query_prefix)
            undo = self.cache.snapshot(query_prefix, include_missing=creates_data)
            if optimistic is not None:
                for key in undo.keys if creates_data else undo.existing_keys:
                    self.cache.set_query_data(key, lambda old, key=key: optimistic(key, old))

            try:
                result = await dispatch()
            except Exception as e:
                self.cache.restore(undo)
                log_with_context(
                    logger,
                    "warning",
                    "Mutation failed, rolled back",
                    mutation=name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                self.notifier.error(error_message, detail=_error_detail(e))
                raise
            else:
                log_with_context(logger, "info", "Mutation succeeded", mutation=name)
                if success_message:
                    self.notifier.success(success_message)
                return result
            finally:
                self.cache.invalidate_queries(query_prefix)
