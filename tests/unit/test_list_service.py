"""Tests for list queries, list mutations and collaborator management."""

import httpx
import pytest

from snappy.client import SnappyClient
from snappy.core.errors import GatewayError
from snappy.domain import CollaboratorRole, ListCreate, ListPage, ListUpdate, User
from snappy.services.list_service import LISTS_KEY
from tests.unit.mocks import FakeApi, request_json


OWNER = "owner-1"
EDITOR = "editor-1"
VIEWER = "viewer-1"


def _list(list_id: str = "l1", **fields) -> dict:
    return {
        "_id": list_id,
        "name": "Groceries",
        "owner": {"_id": OWNER, "name": "Olive"},
        "collaborators": [
            {"userId": {"_id": EDITOR, "name": "Ed"}, "role": "editor"},
            {"userId": VIEWER, "role": "viewer"},
        ],
        **fields,
    }


def _sign_in(client: SnappyClient, user_id: str) -> None:
    client.auth.current_user = User(id=user_id, name=user_id, email=f"{user_id}@example.com")


def _seed(client: SnappyClient, *lists: dict) -> None:
    client.cache.set_query_data(LISTS_KEY, ListPage.model_validate({"lists": list(lists)}))


def _cached(client: SnappyClient, list_id: str = "l1"):
    return client.lists.find_list(list_id)


class TestFetchLists:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_fetch_lists_collapses_populated_references(self, client: SnappyClient, fake_api: FakeApi) -> None:
        fake_api.respond("GET", "/lists", body={"lists": [_list()]})

        page = await client.lists.fetch_lists()

        todo_list = page.lists[0]
        assert todo_list.owner == OWNER
        assert todo_list.collaborators[0].user_id == EDITOR
        assert todo_list.icon == "📝"
        assert client.cache.get_query_data(LISTS_KEY) is page

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_read_lists_returns_cache_without_request(self, client: SnappyClient, fake_api: FakeApi) -> None:
        _seed(client, _list())

        page = await client.lists.read_lists()

        assert page.lists[0].id == "l1"
        assert fake_api.calls("GET", "/lists") == []


class TestListMutations:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create_list_appends_placeholder(self, client: SnappyClient, fake_api: FakeApi) -> None:
        _sign_in(client, OWNER)
        _seed(client, _list())
        fake_api.respond("POST", "/lists", 201, body={"list": _list("l2", name="Work")})

        created = await client.lists.create_list(ListCreate(name="Work", color="#10B981"))

        assert created.id == "l2"
        assert request_json(fake_api.calls("POST", "/lists")[0]) == {"name": "Work", "color": "#10B981"}
        lists = client.cache.get_query_data(LISTS_KEY).lists
        assert [item.name for item in lists] == ["Groceries", "Work"]
        assert lists[-1].is_temporary
        assert lists[-1].owner == OWNER
        assert client.notifier.history[-1].message == "List created!"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create_list_without_cached_lists(self, client: SnappyClient, fake_api: FakeApi) -> None:
        fake_api.respond("POST", "/lists", 500, body={"message": "Internal error"})

        with pytest.raises(GatewayError):
            await client.lists.create_list(ListCreate(name="Work"))

        assert client.cache.get_query_data(LISTS_KEY) is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_editor_can_rename(self, client: SnappyClient, fake_api: FakeApi) -> None:
        _sign_in(client, EDITOR)
        _seed(client, _list())
        fake_api.respond("PATCH", "/lists/l1", body={"list": _list(name="Food")})

        await client.lists.update_list("l1", ListUpdate(name="Food"))

        assert _cached(client).name == "Food"
        assert request_json(fake_api.calls("PATCH", "/lists/l1")[0]) == {"name": "Food"}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_viewer_cannot_rename(self, client: SnappyClient, fake_api: FakeApi) -> None:
        _sign_in(client, VIEWER)
        _seed(client, _list())

        with pytest.raises(PermissionError, match="Groceries"):
            await client.lists.update_list("l1", ListUpdate(name="Food"))

        assert fake_api.calls("PATCH", "/lists/l1") == []
        assert _cached(client).name == "Groceries"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_only_owner_can_delete(self, client: SnappyClient, fake_api: FakeApi) -> None:
        _sign_in(client, EDITOR)
        _seed(client, _list())

        with pytest.raises(PermissionError):
            await client.lists.delete_list("l1")

        _sign_in(client, OWNER)
        fake_api.respond("DELETE", "/lists/l1", body={"message": "List deleted"})

        await client.lists.delete_list("l1")

        assert client.cache.get_query_data(LISTS_KEY).lists == []
        assert len(fake_api.calls("DELETE", "/lists/l1")) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_delete_restores_list(self, client: SnappyClient, fake_api: FakeApi) -> None:
        _sign_in(client, OWNER)
        _seed(client, _list())
        fake_api.respond("DELETE", "/lists/l1", 403, body={"message": "Only the owner can delete this list"})

        with pytest.raises(GatewayError):
            await client.lists.delete_list("l1")

        assert _cached(client) is not None
        assert client.notifier.history[-1].detail == "Only the owner can delete this list"


class TestCollaborators:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_invite_replaces_cached_list(self, client: SnappyClient, fake_api: FakeApi) -> None:
        _sign_in(client, OWNER)
        _seed(client, _list())
        updated = _list()
        updated["collaborators"].append({"userId": "new-1", "role": "viewer"})
        fake_api.respond("POST", "/lists/l1/invite", body={"list": updated})

        await client.lists.invite_collaborator("l1", " New@Example.com", CollaboratorRole.VIEWER)

        assert request_json(fake_api.calls("POST", "/lists/l1/invite")[0]) == {
            "email": "new@example.com",
            "role": "viewer",
        }
        assert _cached(client).find_collaborator("new-1").role is CollaboratorRole.VIEWER
        assert client.notifier.history[-1].message == "Invited new@example.com"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_invite_rejects_malformed_email(self, client: SnappyClient, fake_api: FakeApi) -> None:
        _sign_in(client, OWNER)

        with pytest.raises(ValueError, match="Email"):
            await client.lists.invite_collaborator("l1", "not-an-email")

        assert fake_api.requests == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_remove_collaborator_is_optimistic(self, client: SnappyClient, fake_api: FakeApi) -> None:
        _sign_in(client, OWNER)
        _seed(client, _list())
        seen: list[list[str]] = []

        def remove(_request: httpx.Request) -> httpx.Response:
            seen.append([c.user_id for c in _cached(client).collaborators])
            return httpx.Response(200, json={"message": "Collaborator removed"})

        fake_api.route("DELETE", f"/lists/l1/collaborators/{VIEWER}", remove)

        await client.lists.remove_collaborator("l1", VIEWER)

        assert seen == [[EDITOR]]
        assert _cached(client).find_collaborator(VIEWER) is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_role_change_rolls_back_on_failure(self, client: SnappyClient, fake_api: FakeApi) -> None:
        _sign_in(client, OWNER)
        _seed(client, _list())
        fake_api.respond("PATCH", f"/lists/l1/collaborators/{VIEWER}", 404, body={"message": "Not a collaborator"})

        with pytest.raises(GatewayError):
            await client.lists.update_collaborator_role("l1", VIEWER, CollaboratorRole.EDITOR)

        request = fake_api.calls("PATCH", f"/lists/l1/collaborators/{VIEWER}")[0]
        assert request_json(request) == {"role": "editor"}
        assert _cached(client).find_collaborator(VIEWER).role is CollaboratorRole.VIEWER
        assert client.notifier.history[-1].message == "Failed to update collaborator role"
