"""Small expiring caches shared by backend instances.

Values are advisory: racing writers of the same key are allowed and the last
write wins.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Hashable, Mapping
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from bucketfs_core.config import (
    DEFAULT_CACHE_MAX_ENTRIES,
    DEFAULT_CACHE_TTL_SECONDS,
    LOOKUP_FALLBACK_REGION,
    resolve_cache_settings,
)
from bucketfs_core.observability import log_event

logger = logging.getLogger(__name__)


def cache_key(value: Any) -> Hashable:
    """Hashable form of a cache key; mappings are keyed by their sorted items."""

    if isinstance(value, Mapping):
        return tuple(sorted((str(k), str(v)) for k, v in value.items()))
    return value


class ExpiringCache:
    """Thread-safe mapping bounded in size and in entry lifetime.

    Entries older than ``ttl_seconds`` are dropped on access; when the cache is
    full the oldest entry is evicted first. ``on_evict`` receives every value
    the cache drops on its own (expiry, overflow, replacement, ``clear``), but
    not values handed back by ``pop``.
    """

    def __init__(
        self,
        *,
        max_entries: int = DEFAULT_CACHE_MAX_ENTRIES,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        on_evict: Callable[[Any], None] | None = None,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._on_evict = on_evict
        self._lock = threading.Lock()
        self._entries: OrderedDict[Hashable, tuple[float, Any]] = OrderedDict()

    @classmethod
    def from_env(
        cls,
        env: Mapping[str, str] | None = None,
        *,
        on_evict: Callable[[Any], None] | None = None,
    ) -> ExpiringCache:
        settings = resolve_cache_settings(env)
        return cls(
            max_entries=settings.max_entries,
            ttl_seconds=settings.ttl_seconds,
            on_evict=on_evict,
        )

    def get(self, key: Any, default: Any = None) -> Any:
        hashed = cache_key(key)
        dropped: list[Any] = []
        with self._lock:
            item = self._entries.get(hashed)
            if item is None:
                return default
            expires_at, value = item
            if expires_at <= self._clock():
                del self._entries[hashed]
                dropped.append(value)
                value = default
        self._evicted(dropped)
        return value

    def set(self, key: Any, value: Any) -> None:
        hashed = cache_key(key)
        dropped: list[Any] = []
        with self._lock:
            now = self._clock()
            previous = self._entries.pop(hashed, None)
            if previous is not None and previous[1] is not value:
                dropped.append(previous[1])
            self._entries[hashed] = (now + self.ttl_seconds, value)
            dropped.extend(self._purge_expired(now))
            while len(self._entries) > self.max_entries:
                dropped.append(self._entries.popitem(last=False)[1][1])
        self._evicted(dropped)

    def pop(self, key: Any, default: Any = None) -> Any:
        with self._lock:
            item = self._entries.pop(cache_key(key), None)
        return default if item is None else item[1]

    def clear(self) -> None:
        with self._lock:
            dropped = [value for _, value in self._entries.values()]
            self._entries.clear()
        self._evicted(dropped)

    def __len__(self) -> int:
        with self._lock:
            dropped = self._purge_expired(self._clock())
            size = len(self._entries)
        self._evicted(dropped)
        return size

    def _purge_expired(self, now: float) -> list[Any]:
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        return [self._entries.pop(key)[1] for key in expired]

    def _evicted(self, values: list[Any]) -> None:
        # Runs outside the lock so callbacks may touch the cache.
        if self._on_evict is None:
            return
        for value in values:
            self._on_evict(value)


class RegionResolver:
    """Memoizes container -> region lookups per credential set."""

    def __init__(
        self, cache: ExpiringCache | None = None, *, fallback_region: str = LOOKUP_FALLBACK_REGION
    ) -> None:
        self.cache = cache if cache is not None else ExpiringCache()
        self.fallback_region = fallback_region

    def resolve(self, client: Any, credentials_key: Hashable, container: str) -> str:
        key = (credentials_key, container)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            response = client.get_bucket_location(Bucket=container)
        except (ClientError, BotoCoreError) as exc:
            log_event(
                logger,
                "s3.region_lookup_failed",
                level=logging.DEBUG,
                bucket=container,
                error=type(exc).__name__,
                fallback=self.fallback_region,
            )
            region = self.fallback_region
        else:
            region = response.get("LocationConstraint") or self.fallback_region

        self.cache.set(key, region)
        return region
