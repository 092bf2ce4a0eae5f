"""Time-bounded cache for reference categories with bundled fallbacks.

The cache always hands back something renderable: a fresh cached payload,
a newly fetched one, or the bundled fallback dataset. Maps are the one
exception. They have no bundled copy, so a failed maps fetch yields an
explicit empty structure instead.
"""

import time
from typing import Any, Callable, Dict, Optional, Protocol

from loguru import logger

from .errors import ErrorSink, MalformedUpstreamResponse
from .fallback import FallbackStore
from .models import CacheEntry, CategoryId, CategoryPayload, empty_maps_payload


DEFAULT_TTL_SECONDS = 10 * 60


class CategorySource(Protocol):
    async def fetch_category(self, category: CategoryId) -> CategoryPayload: ...

    async def fetch_timeline(self, kind: str) -> list: ...

    async def fetch_maps(self) -> Dict[str, Any]: ...


class CategoryCache:
    """Per-category TTL cache in front of the remote content client."""

    def __init__(self,
                 client: CategorySource,
                 fallback: Optional[FallbackStore] = None,
                 ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 clock: Callable[[], float] = time.monotonic,
                 error_sink: Optional[ErrorSink] = None):
        """
        Initialize category cache.

        Args:
            client: Source of remote category payloads
            fallback: Bundled datasets served when a fetch fails
            ttl_seconds: Time a fetched entry stays fresh
            clock: Monotonic time source in seconds
            error_sink: Sink for recovered fetch failures
        """
        self.client = client
        self.fallback = fallback or FallbackStore()
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.error_sink = error_sink or ErrorSink()

        self._entries: Dict[CategoryId, CacheEntry] = {}
        self._loading: Dict[CategoryId, bool] = {}
        self._errors: Dict[CategoryId, Optional[str]] = {}
        self.stats = {"hits": 0, "fetches": 0, "fallbacks": 0}

    def _fresh_payload(self, category: CategoryId) -> Optional[CacheEntry]:
        entry = self._entries.get(category)
        if entry is not None and entry.is_fresh(self.clock(), self.ttl_seconds):
            return entry
        return None

    async def _refresh(self, category: CategoryId, fetch: Callable[[], Any]) -> CategoryPayload:
        """Fetch ``category`` and replace its entry. Raises on failure."""
        self._loading[category] = True
        self._errors[category] = None
        self.stats["fetches"] += 1
        try:
            payload = await fetch()
        except Exception as e:
            self._loading[category] = False
            self._errors[category] = str(e) or type(e).__name__
            self.error_sink.record("category_cache", e, category=category.value)
            raise

        self._entries[category] = CacheEntry(
            category=category.value,
            payload=payload,
            fetched_at=self.clock()
        )
        self._loading[category] = False
        self.error_sink.record_success("category_cache")
        return payload

    async def get(self, category: CategoryId, force_refresh: bool = False) -> CategoryPayload:
        """Return the payload for ``category``. Never raises for fetch failures."""
        category = CategoryId(category)
        if category == CategoryId.MAPS:
            return await self.get_maps(force_refresh)
        if category.is_timeline:
            kind = "indian" if category == CategoryId.INDIAN_HISTORY else "world"
            return await self.get_history_timeline(kind, force_refresh)

        if not force_refresh:
            entry = self._fresh_payload(category)
            if entry is not None:
                self.stats["hits"] += 1
                logger.debug(f"Using cached data for: {category.value}")
                return entry.payload

        try:
            return await self._refresh(category, lambda: self.client.fetch_category(category))
        except Exception:
            self.stats["fallbacks"] += 1
            logger.info(f"Using fallback data for: {category.value}")
            return self.fallback.get(category)

    get_references = get

    async def get_history_timeline(self, kind: str = "indian", force_refresh: bool = False) -> list:
        """Return history events for ``kind`` ('indian' or 'world')."""
        category = CategoryId.for_timeline(kind)

        if not force_refresh:
            entry = self._fresh_payload(category)
            if entry is not None:
                self.stats["hits"] += 1
                logger.debug(f"Using cached timeline for: {kind}")
                return entry.payload

        async def fetch():
            events = await self.client.fetch_timeline(kind)
            if not events:
                raise MalformedUpstreamResponse(f"No {kind} history events found")
            return events

        try:
            return await self._refresh(category, fetch)
        except Exception:
            self.stats["fallbacks"] += 1
            logger.info(f"Using fallback timeline for: {kind}")
            return self.fallback.get(category)

    async def get_maps(self, force_refresh: bool = False) -> Dict[str, Any]:
        """Return map sections. A failed fetch yields an empty structure, not stale data."""
        category = CategoryId.MAPS

        if not force_refresh:
            entry = self._fresh_payload(category)
            if entry is not None:
                self.stats["hits"] += 1
                logger.debug("Using cached maps")
                return entry.payload

        try:
            return await self._refresh(category, self.client.fetch_maps)
        except Exception:
            logger.info("Error fetching maps, returning empty")
            return empty_maps_payload()

    def clear(self, category: Optional[CategoryId] = None) -> None:
        """Evict one category, or every entry when ``category`` is None."""
        if category is None:
            self._entries.clear()
        else:
            self._entries.pop(CategoryId(category), None)

    def is_loading(self, category: CategoryId) -> bool:
        return self._loading.get(CategoryId(category), False)

    def last_error(self, category: CategoryId) -> Optional[str]:
        return self._errors.get(CategoryId(category))

    def fetched_at(self, category: CategoryId) -> Optional[float]:
        entry = self._entries.get(CategoryId(category))
        return entry.fetched_at if entry else None
