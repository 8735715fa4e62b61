"""Async client for the managed backend's document REST API."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import TracebackType
from typing import TYPE_CHECKING, Any, cast
from urllib.parse import quote

if TYPE_CHECKING:
    import httpx

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://cloud.appwrite.io/v1"


class BackendError(RuntimeError):
    """A backend request failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True, slots=True)
class BackendConfig:
    """Connection settings and collection ids for the backend."""

    project: str
    database: str
    endpoint: str = DEFAULT_ENDPOINT
    api_key: str | None = None
    collections: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(
        cls,
        prefix: str = "REQUESTCACHE_",
        environ: Mapping[str, str] | None = None,
    ) -> BackendConfig:
        """Build a config from environment variables.

        Reads ``<prefix>PROJECT``, ``<prefix>DATABASE``, ``<prefix>ENDPOINT``,
        ``<prefix>API_KEY`` and one ``<prefix>COLLECTION_<NAME>`` per
        collection, e.g. ``REQUESTCACHE_COLLECTION_USERS=677f9b83...``.
        """
        env = os.environ if environ is None else environ
        try:
            project = env[f"{prefix}PROJECT"]
            database = env[f"{prefix}DATABASE"]
        except KeyError as e:
            raise ValueError(f"Missing backend setting: {e.args[0]}") from None

        collection_prefix = f"{prefix}COLLECTION_"
        collections = {
            name[len(collection_prefix) :].lower(): value
            for name, value in env.items()
            if name.startswith(collection_prefix)
        }
        return cls(
            project=project,
            database=database,
            endpoint=env.get(f"{prefix}ENDPOINT", DEFAULT_ENDPOINT),
            api_key=env.get(f"{prefix}API_KEY"),
            collections=collections,
        )

    def collection_id(self, name: str) -> str:
        try:
            return self.collections[name]
        except KeyError:
            raise KeyError(f"Unknown collection: {name!r}") from None


def _query(method: str, attribute: str | None = None, values: list[Any] | None = None) -> str:
    """Encode one list query the way the backend expects it."""
    body: dict[str, Any] = {"method": method}
    if attribute is not None:
        body["attribute"] = attribute
    if values is not None:
        body["values"] = values
    return json.dumps(body, separators=(",", ":"))


class AsyncBackendClient:
    """Async client for listing and reading documents."""

    def __init__(self, config: BackendConfig, *, timeout: float = 30.0) -> None:
        import httpx

        self._config = config
        headers = {
            "X-Appwrite-Project": config.project,
            "Content-Type": "application/json",
        }
        if config.api_key:
            headers["X-Appwrite-Key"] = config.api_key
        self._client = httpx.AsyncClient(
            base_url=config.endpoint,
            headers=headers,
            timeout=timeout,
        )

    @property
    def config(self) -> BackendConfig:
        return self._config

    async def list_documents(
        self,
        collection: str,
        *,
        order_desc: str | None = "$createdAt",
        select: list[str] | None = None,
        limit: int | None = None,
        equal: Mapping[str, list[Any]] | None = None,
    ) -> dict[str, Any]:
        """List documents of a named collection, newest first by default.

        ``equal`` maps attributes to accepted values, e.g.
        ``{"$id": ["u1", "u2"]}``.

        Returns the backend payload, ``{"total": n, "documents": [...]}``.
        """
        queries: list[str] = []
        for attribute, values in (equal or {}).items():
            queries.append(_query("equal", attribute, list(values)))
        if order_desc is not None:
            queries.append(_query("orderDesc", order_desc))
        if select:
            queries.append(_query("select", values=select))
        if limit is not None:
            queries.append(_query("limit", values=[limit]))

        return await self._get(
            f"{self._collection_path(collection)}/documents",
            params=[("queries[]", q) for q in queries],
        )

    async def get_document(
        self,
        collection: str,
        document_id: str,
        *,
        select: list[str] | None = None,
    ) -> dict[str, Any]:
        """Read a single document by id."""
        params = [("queries[]", _query("select", values=select))] if select else []
        return await self._get(
            f"{self._collection_path(collection)}/documents/{quote(document_id, safe='')}",
            params=params,
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> AsyncBackendClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def _collection_path(self, collection: str) -> str:
        collection_id = self._config.collection_id(collection)
        return f"/databases/{self._config.database}/collections/{collection_id}"

    async def _get(
        self, path: str, *, params: list[tuple[str, str]]
    ) -> dict[str, Any]:
        """Make a GET request to the backend API."""
        response = await self._client.get(path, params=params)
        if not response.is_success:
            raise BackendError(_error_message(response), response.status_code)
        return cast(dict[str, Any], response.json())


def _error_message(response: httpx.Response) -> str:
    try:
        message = response.json().get("message")
    except Exception:
        message = None
    if not message:
        message = f"HTTP {response.status_code}"
    logger.debug("Backend request %s failed: %s", response.request.url, message)
    return str(message)


__all__ = ["AsyncBackendClient", "BackendConfig", "BackendError"]
