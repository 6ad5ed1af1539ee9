"""Tests for the optimistic mutation controller."""

import asyncio

import pytest

from snappy.core.errors import ErrorKind, GatewayError
from snappy.core.mutations import MutationController
from snappy.core.query_cache import QueryCache, make_query_key
from snappy.interface.notifier import NotificationLevel, Notifier


TODOS = ("todos",)


def _append(item: str):
    return lambda _key, old: [*old, item]


class TestSuccessfulMutation:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_optimistic_value_kept_and_prefix_invalidated(
        self, mutations: MutationController, cache: QueryCache, notifier: Notifier
    ) -> None:
        cache.set_query_data(TODOS, ["a"])

        async def dispatch() -> str:
            assert cache.get_query_data(TODOS) == ["a", "b"]
            return "server-result"

        result = await mutations.mutate(
            name="append",
            query_prefix=TODOS,
            dispatch=dispatch,
            optimistic=_append("b"),
            error_message="Failed",
            success_message="Added!",
        )

        assert result == "server-result"
        assert cache.get_query_data(TODOS) == ["a", "b"]
        assert cache.is_stale(TODOS) is True
        assert notifier.history[-1].level is NotificationLevel.SUCCESS
        assert notifier.history[-1].message == "Added!"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_settle_triggers_exactly_one_refetch(
        self, mutations: MutationController, cache: QueryCache
    ) -> None:
        cache.set_query_data(TODOS, ["a"])
        calls = 0

        async def fetcher() -> list[str]:
            nonlocal calls
            calls += 1
            return ["a", "b"]

        async def dispatch() -> None:
            return None

        await mutations.mutate(
            name="append", query_prefix=TODOS, dispatch=dispatch, optimistic=_append("b"), error_message="Failed"
        )
        await asyncio.gather(cache.fetch_query(TODOS, fetcher), cache.fetch_query(TODOS, fetcher))
        await cache.fetch_query(TODOS, fetcher)

        assert calls == 1
        assert cache.is_stale(TODOS) is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_applies_to_every_cached_key_under_prefix(
        self, mutations: MutationController, cache: QueryCache
    ) -> None:
        filtered = make_query_key("todos", {"status": "todo"})
        cache.set_query_data(TODOS, ["a"])
        cache.set_query_data(filtered, [])

        async def dispatch() -> None:
            return None

        await mutations.mutate(
            name="append", query_prefix=TODOS, dispatch=dispatch, optimistic=_append("b"), error_message="Failed"
        )

        assert cache.get_query_data(TODOS) == ["a", "b"]
        assert cache.get_query_data(filtered) == ["b"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_update_without_cached_data_writes_nothing(
        self, mutations: MutationController, cache: QueryCache
    ) -> None:
        async def dispatch() -> None:
            return None

        await mutations.mutate(
            name="update", query_prefix=TODOS, dispatch=dispatch, optimistic=_append("b"), error_message="Failed"
        )

        assert cache.get_query_data(TODOS) is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create_populates_empty_prefix(self, mutations: MutationController, cache: QueryCache) -> None:
        async def dispatch() -> None:
            return None

        await mutations.mutate(
            name="create",
            query_prefix=TODOS,
            dispatch=dispatch,
            optimistic=lambda _key, old: [*(old or []), "new"],
            error_message="Failed",
            creates_data=True,
        )

        assert cache.get_query_data(TODOS) == ["new"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_in_flight_fetch_cannot_overwrite_optimistic_value(
        self, mutations: MutationController, cache: QueryCache
    ) -> None:
        cache.set_query_data(TODOS, ["a"])
        cache.invalidate_queries(TODOS)
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_fetch() -> list[str]:
            started.set()
            await release.wait()
            return ["a"]

        reader = asyncio.create_task(cache.fetch_query(TODOS, slow_fetch))
        await started.wait()

        async def dispatch() -> None:
            release.set()
            await asyncio.sleep(0)

        await mutations.mutate(
            name="append", query_prefix=TODOS, dispatch=dispatch, optimistic=_append("b"), error_message="Failed"
        )

        await reader
        assert cache.get_query_data(TODOS) == ["a", "b"]
        assert not cache.is_fetching(TODOS)


class TestFailedMutation:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rollback_restores_pre_state_and_notifies(
        self, mutations: MutationController, cache: QueryCache, notifier: Notifier
    ) -> None:
        cache.set_query_data(TODOS, ["a"])
        filtered = make_query_key("todos", {"status": "todo"})
        cache.set_query_data(filtered, ["a"])

        async def dispatch() -> None:
            raise GatewayError(ErrorKind.REJECTED, status_code=400, detail="Title is required")

        with pytest.raises(GatewayError):
            await mutations.mutate(
                name="append",
                query_prefix=TODOS,
                dispatch=dispatch,
                optimistic=_append("b"),
                error_message="Failed to update todo",
                success_message="Updated!",
            )

        assert cache.get_query_data(TODOS) == ["a"]
        assert cache.get_query_data(filtered) == ["a"]
        assert cache.is_stale(TODOS) is True
        assert len(notifier.history) == 1
        toast = notifier.history[0]
        assert toast.level is NotificationLevel.ERROR
        assert toast.message == "Failed to update todo"
        assert toast.detail == "Title is required"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rollback_of_create_removes_placeholder_entry(
        self, mutations: MutationController, cache: QueryCache
    ) -> None:
        async def dispatch() -> None:
            raise GatewayError(ErrorKind.NETWORK, detail="offline")

        with pytest.raises(GatewayError):
            await mutations.mutate(
                name="create",
                query_prefix=TODOS,
                dispatch=dispatch,
                optimistic=lambda _key, old: [*(old or []), "temp-1"],
                error_message="Failed to create todo",
                creates_data=True,
            )

        assert cache.get_query_data(TODOS) is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_non_gateway_errors_also_roll_back(
        self, mutations: MutationController, cache: QueryCache, notifier: Notifier
    ) -> None:
        cache.set_query_data(TODOS, ["a"])

        async def dispatch() -> None:
            raise KeyError("todo")

        with pytest.raises(KeyError):
            await mutations.mutate(
                name="append", query_prefix=TODOS, dispatch=dispatch, optimistic=_append("b"), error_message="Failed"
            )

        assert cache.get_query_data(TODOS) == ["a"]
        assert notifier.history[-1].detail is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rate_limit_toast_includes_wait_time(
        self, mutations: MutationController, cache: QueryCache, notifier: Notifier
    ) -> None:
        cache.set_query_data(TODOS, ["a"])

        async def dispatch() -> None:
            raise GatewayError(
                ErrorKind.RATE_LIMITED,
                status_code=429,
                user_message="Too many requests. Please try again in 30 seconds.",
                retry_after=30,
            )

        with pytest.raises(GatewayError):
            await mutations.mutate(
                name="append", query_prefix=TODOS, dispatch=dispatch, optimistic=_append("b"), error_message="Failed"
            )

        assert "30 seconds" in notifier.history[-1].detail
