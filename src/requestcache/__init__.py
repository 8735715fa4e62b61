"""requestcache - single-flight TTL caching for async fetches."""

import logging

# Backend client (httpx is imported when a client is created)
from requestcache.backend import AsyncBackendClient, BackendConfig, BackendError

# Duration parsing
from requestcache.duration import parse_duration

# Loading state for a single resource
from requestcache.fetching import DataFetcher, FetchOptions

# Cache API
from requestcache.request_cache import RequestCache, create_request_cache
from requestcache.resources import (
    REQUISITION_HISTORY,
    USERS,
    VEHICLES,
    Resource,
    use_requisition_history,
    use_users,
    use_vehicles,
)
from requestcache.store import MemoryStore, ValueStore

# Core types
from requestcache.types import CacheEntry, CacheStats, Duration, Fetcher

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    "REQUISITION_HISTORY",
    "USERS",
    "VEHICLES",
    "AsyncBackendClient",
    "BackendConfig",
    "BackendError",
    "CacheEntry",
    "CacheStats",
    "DataFetcher",
    "Duration",
    "FetchOptions",
    "Fetcher",
    "MemoryStore",
    "RequestCache",
    "Resource",
    "ValueStore",
    "create_request_cache",
    "parse_duration",
    "use_requisition_history",
    "use_users",
    "use_vehicles",
]
