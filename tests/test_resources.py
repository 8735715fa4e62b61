"""Tests for named resources wired through the cache and backend client."""

import json

import pytest

pytest.importorskip("httpx")

import httpx
import respx

from requestcache import (
    REQUISITION_HISTORY,
    USERS,
    VEHICLES,
    AsyncBackendClient,
    BackendConfig,
    FetchOptions,
    RequestCache,
    Resource,
    use_requisition_history,
    use_users,
    use_vehicles,
)
from requestcache.resources import join_requisitionists

from conftest import FakeClock

BASE = "https://backend.test/v1"


def documents_url(collection_id: str) -> str:
    return f"{BASE}/databases/db1/collections/{collection_id}/documents"


@pytest.fixture
async def client():
    config = BackendConfig(
        project="proj1",
        database="db1",
        endpoint=BASE,
        collections={
            "users": "c-users",
            "vehicles": "c-vehicles",
            "requisitionhistory": "c-history",
            "roles": "c-roles",
        },
    )
    async with AsyncBackendClient(config) as client:
        yield client


class TestResourceDefinitions:
    """The built-in resources and their timings."""

    def test_keys(self) -> None:
        assert USERS.key == "users-list"
        assert VEHICLES.key == "vehicles-list"
        assert REQUISITION_HISTORY.key == "requisition-history"

    def test_timings(self) -> None:
        assert (USERS.cache_time, USERS.stale_time) == ("3m", "1m")
        assert (VEHICLES.cache_time, VEHICLES.stale_time) == ("5m", "2m")
        assert (REQUISITION_HISTORY.cache_time, REQUISITION_HISTORY.stale_time) == (
            "5m",
            "2m",
        )


class TestUseResources:
    """Fetching resources through DataFetcher."""

    @respx.mock
    async def test_use_users(self, cache: RequestCache, client: AsyncBackendClient) -> None:
        payload = {"total": 1, "documents": [{"$id": "u1", "role": {"name": "admin"}}]}
        route = respx.get(documents_url("c-users")).mock(
            return_value=httpx.Response(200, json=payload)
        )

        users = use_users(cache, client)
        await users.fetch()

        assert users.key == "users-list"
        assert users.data == payload
        assert cache.peek("users-list") == payload
        queries = [
            json.loads(q) for q in route.calls[0].request.url.params.get_list("queries[]")
        ]
        assert {"method": "select", "values": ["*", "role.*"]} in queries

    @respx.mock
    async def test_use_vehicles_selects_relations(
        self, cache: RequestCache, client: AsyncBackendClient
    ) -> None:
        route = respx.get(documents_url("c-vehicles")).mock(
            return_value=httpx.Response(200, json={"total": 0, "documents": []})
        )

        vehicles = use_vehicles(cache, client)
        await vehicles.fetch()

        queries = [
            json.loads(q) for q in route.calls[0].request.url.params.get_list("queries[]")
        ]
        assert {
            "method": "select",
            "values": ["*", "driver.*", "assignedRoutes.*"],
        } in queries

    @respx.mock
    async def test_use_requisition_history_limits_rows(
        self, cache: RequestCache, client: AsyncBackendClient
    ) -> None:
        route = respx.get(documents_url("c-history")).mock(
            return_value=httpx.Response(200, json={"total": 0, "documents": []})
        )

        history = use_requisition_history(cache, client)
        await history.fetch()

        queries = [
            json.loads(q) for q in route.calls[0].request.url.params.get_list("queries[]")
        ]
        assert queries == [
            {"method": "orderDesc", "attribute": "$createdAt"},
            {"method": "limit", "values": [300]},
        ]

    @respx.mock
    async def test_backend_failure_lands_in_error(
        self, cache: RequestCache, client: AsyncBackendClient
    ) -> None:
        respx.get(documents_url("c-users")).mock(
            return_value=httpx.Response(500, json={"message": "Server Error"})
        )

        users = use_users(cache, client)
        await users.fetch()

        assert users.data is None
        assert str(users.error) == "Server Error"
        assert cache.get_stats().cache_size == 0

    @respx.mock
    async def test_users_cache_time(
        self, cache: RequestCache, clock: FakeClock, client: AsyncBackendClient
    ) -> None:
        route = respx.get(documents_url("c-users")).mock(
            return_value=httpx.Response(200, json={"total": 0, "documents": []})
        )

        users = use_users(cache, client)
        await users.fetch()
        clock.advance(150_000)  # Stale locally, still cached
        await users.fetch()
        assert route.call_count == 1

        clock.advance(30_000)  # 3 minutes since the fetch
        await users.refetch()
        assert route.call_count == 2

    @respx.mock
    async def test_widgets_share_one_request(
        self, cache: RequestCache, client: AsyncBackendClient
    ) -> None:
        route = respx.get(documents_url("c-users")).mock(
            return_value=httpx.Response(200, json={"total": 0, "documents": []})
        )

        table = use_users(cache, client)
        cards = use_users(cache, client)
        await table.fetch()
        await cards.fetch()
        assert route.call_count == 1


class TestCustomResource:
    """Defining a resource outside the built-in set."""

    @respx.mock
    async def test_bind_keeps_callbacks_but_not_timings(
        self, cache: RequestCache, client: AsyncBackendClient
    ) -> None:
        respx.get(documents_url("c-vehicles")).mock(
            return_value=httpx.Response(200, json={"total": 2, "documents": [{}, {}]})
        )
        seen: list[dict] = []
        fleet = Resource(key="fleet", collection="vehicles", cache_time="1m")

        fetcher = fleet.bind(
            cache,
            client,
            FetchOptions(on_success=seen.append, cache_time="1h"),
        )
        await fetcher.fetch()

        assert seen == [{"total": 2, "documents": [{}, {}]}]
        assert fetcher._cache_time == 60_000

    @respx.mock
    async def test_fetcher_calls_client(
        self, cache: RequestCache, client: AsyncBackendClient
    ) -> None:
        respx.get(documents_url("c-vehicles")).mock(
            return_value=httpx.Response(200, json={"total": 0, "documents": []})
        )
        fleet = Resource(key="fleet", collection="vehicles")

        result = await cache.get(fleet.key, fleet.fetcher(client))
        assert result == {"total": 0, "documents": []}


def sent_queries(route: respx.Route) -> list[dict]:
    params = route.calls[0].request.url.params
    return [json.loads(q) for q in params.get_list("queries[]")]


class TestJoinRequisitionists:
    """Requisition history rows get their requisitionist user attached."""

    @respx.mock
    async def test_history_rows_carry_users(
        self, cache: RequestCache, client: AsyncBackendClient
    ) -> None:
        history_rows = [
            {"$id": "h1", "requisitionist": "u1"},
            {"$id": "h2", "requisitionist": "u2"},
            {"$id": "h3", "requisitionist": "u1"},
        ]
        respx.get(documents_url("c-history")).mock(
            return_value=httpx.Response(200, json={"total": 3, "documents": history_rows})
        )
        ada = {"$id": "u1", "name": "Ada", "role": {"$id": "r1", "name": "admin"}}
        users_route = respx.get(documents_url("c-users")).mock(
            return_value=httpx.Response(200, json={"total": 1, "documents": [ada]})
        )

        history = use_requisition_history(cache, client)
        await history.fetch()

        assert history.error is None
        assert history.data["total"] == 3
        assert [row["requisitionist"] for row in history.data["documents"]] == [
            ada,
            "u2",  # No such user
            ada,
        ]
        assert sent_queries(users_route) == [
            {"method": "equal", "attribute": "$id", "values": ["u1", "u2"]},
            {"method": "select", "values": ["*", "role.*"]},
            {"method": "limit", "values": [2]},
        ]

    @respx.mock
    async def test_role_ids_are_expanded(self, client: AsyncBackendClient) -> None:
        users_route = respx.get(documents_url("c-users")).mock(
            return_value=httpx.Response(
                200,
                json={"total": 1, "documents": [{"$id": "u1", "role": "r1"}]},
            )
        )
        roles_route = respx.get(documents_url("c-roles")).mock(
            return_value=httpx.Response(
                200,
                json={"total": 1, "documents": [{"$id": "r1", "name": "driver"}]},
            )
        )

        result = await join_requisitionists(
            client, {"total": 1, "documents": [{"$id": "h1", "requisitionist": "u1"}]}
        )

        assert users_route.call_count == 1
        assert sent_queries(roles_route) == [
            {"method": "equal", "attribute": "$id", "values": ["r1"]},
            {"method": "limit", "values": [1]},
        ]
        assert result["documents"][0]["requisitionist"] == {
            "$id": "u1",
            "role": {"$id": "r1", "name": "driver"},
        }

    @respx.mock
    async def test_no_requisitionists_skips_user_lookup(
        self, client: AsyncBackendClient
    ) -> None:
        users_route = respx.get(documents_url("c-users")).mock(
            return_value=httpx.Response(200, json={"total": 0, "documents": []})
        )
        payload = {"total": 1, "documents": [{"$id": "h1", "requisitionist": None}]}

        assert await join_requisitionists(client, payload) == payload
        assert await join_requisitionists(client, {"total": 0, "documents": []}) == {
            "total": 0,
            "documents": [],
        }
        assert not users_route.called

    @respx.mock
    async def test_user_lookup_failure_lands_in_error(
        self, cache: RequestCache, client: AsyncBackendClient
    ) -> None:
        respx.get(documents_url("c-history")).mock(
            return_value=httpx.Response(
                200, json={"total": 1, "documents": [{"$id": "h1", "requisitionist": "u1"}]}
            )
        )
        respx.get(documents_url("c-users")).mock(
            return_value=httpx.Response(500, json={"message": "Server Error"})
        )

        history = use_requisition_history(cache, client)
        await history.fetch()

        assert history.data is None
        assert str(history.error) == "Server Error"
        assert cache.peek("requisition-history") is None
