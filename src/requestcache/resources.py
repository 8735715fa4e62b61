"""Named backend resources bound to cache keys."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Any

from requestcache.backend import AsyncBackendClient
from requestcache.fetching import DataFetcher, FetchOptions
from requestcache.request_cache import RequestCache
from requestcache.types import Duration, Fetcher

Enricher = Callable[[AsyncBackendClient, dict[str, Any]], Awaitable[dict[str, Any]]]


@dataclass(frozen=True, slots=True)
class Resource:
    """A backend collection listing with its cache key and timings."""

    key: str
    collection: str
    select: tuple[str, ...] = ()
    cache_time: Duration = "5m"
    stale_time: Duration = "1m"
    limit: int | None = None
    # Post-processes the listing payload, e.g. to join related documents
    enrich: Enricher | None = None

    def fetcher(self, client: AsyncBackendClient) -> Fetcher[dict[str, Any]]:
        """Zero-argument fetcher listing this collection through ``client``."""
        select = list(self.select) or None

        async def fetch() -> dict[str, Any]:
            payload = await client.list_documents(
                self.collection, select=select, limit=self.limit
            )
            if self.enrich is not None:
                payload = await self.enrich(client, payload)
            return payload

        return fetch

    def bind(
        self,
        cache: RequestCache,
        client: AsyncBackendClient,
        options: FetchOptions[dict[str, Any]] | None = None,
    ) -> DataFetcher[dict[str, Any]]:
        """DataFetcher for this resource. Timings from ``options`` are ignored."""
        options = options or FetchOptions()
        options = replace(
            options, cache_time=self.cache_time, stale_time=self.stale_time
        )
        return DataFetcher(cache, self.key, self.fetcher(client), options)


async def join_requisitionists(
    client: AsyncBackendClient, payload: dict[str, Any]
) -> dict[str, Any]:
    """Replace each row's ``requisitionist`` id with the user document.

    Users are loaded with their role. If the backend returns roles as bare
    ids, the ``roles`` collection is read to expand them. Ids with no
    matching user are left as they are.
    """
    rows = payload.get("documents") or []
    user_ids = list(
        dict.fromkeys(r["requisitionist"] for r in rows if r.get("requisitionist"))
    )
    if not user_ids:
        return payload

    users = (
        await client.list_documents(
            "users",
            order_desc=None,
            select=["*", "role.*"],
            limit=len(user_ids),
            equal={"$id": user_ids},
        )
    )["documents"]

    if users and isinstance(users[0].get("role"), str):
        role_ids = list(dict.fromkeys(u["role"] for u in users if u.get("role")))
        roles = (
            await client.list_documents(
                "roles", order_desc=None, limit=len(role_ids), equal={"$id": role_ids}
            )
        )["documents"]
        by_role_id = {role["$id"]: role for role in roles}
        users = [{**u, "role": by_role_id.get(u["role"], u["role"])} for u in users]

    by_user_id = {user["$id"]: user for user in users}
    documents = []
    for row in rows:
        user_id = row.get("requisitionist")
        documents.append({**row, "requisitionist": by_user_id.get(user_id, user_id)})
    return {**payload, "documents": documents}


USERS = Resource(
    key="users-list",
    collection="users",
    select=("*", "role.*"),
    cache_time="3m",
    stale_time="1m",
)

VEHICLES = Resource(
    key="vehicles-list",
    collection="vehicles",
    select=("*", "driver.*", "assignedRoutes.*"),
    cache_time="5m",
    stale_time="2m",
)

REQUISITION_HISTORY = Resource(
    key="requisition-history",
    collection="requisitionhistory",
    cache_time="5m",
    stale_time="2m",
    limit=300,
    enrich=join_requisitionists,
)


def use_users(
    cache: RequestCache, client: AsyncBackendClient
) -> DataFetcher[dict[str, Any]]:
    return USERS.bind(cache, client)


def use_vehicles(
    cache: RequestCache, client: AsyncBackendClient
) -> DataFetcher[dict[str, Any]]:
    return VEHICLES.bind(cache, client)


def use_requisition_history(
    cache: RequestCache, client: AsyncBackendClient
) -> DataFetcher[dict[str, Any]]:
    return REQUISITION_HISTORY.bind(cache, client)


__all__ = [
    "REQUISITION_HISTORY",
    "USERS",
    "VEHICLES",
    "Resource",
    "join_requisitionists",
    "use_requisition_history",
    "use_users",
    "use_vehicles",
]
