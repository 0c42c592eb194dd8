"""
Web search fallback (Brave Search API).

The result cache and the rate limiter are standalone objects handed to
`WebSearchClient`, so tests can build a client with their own clock,
capacity and transport.
"""

import html
import logging
import re
import time
from collections import OrderedDict
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Generic, TypeVar

import anyio
import httpx

from helpdesk.core.config import settings

logger = logging.getLogger(__name__)

BRAVE_API_URL = "https://api.search.brave.com/res/v1/web/search"
TAG_PATTERN = re.compile(r"<[^>]*>")
WHITESPACE_PATTERN = re.compile(r"\s+")

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Bounded LRU cache whose entries expire after `ttl_seconds`."""

    def __init__(
        self,
        max_entries: int,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, V]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    def set(self, key: str, value: V) -> None:
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = (self._clock(), value)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()


class TokenBucket:
    """Token-bucket rate limiter: `capacity` burst, `refill_per_second` sustained."""

    def __init__(
        self,
        capacity: float,
        refill_per_second: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.capacity = capacity
        self.refill_per_second = refill_per_second
        self._clock = clock
        self._tokens = float(capacity)
        self._last_refill = clock()

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_per_second)
        self._last_refill = now

    def try_acquire(self) -> bool:
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        return False

    def reset(self) -> None:
        self._tokens = float(self.capacity)
        self._last_refill = self._clock()


@dataclass(frozen=True)
class WebResult:
    title: str
    url: str
    description: str


def _strip_html(text: str) -> str:
    text = html.unescape(TAG_PATTERN.sub("", text or ""))
    return WHITESPACE_PATTERN.sub(" ", text).strip()


class WebSearchClient:
    """Brave web search; returns [] on any failure, never raises."""

    def __init__(
        self,
        api_key: str,
        cache: TTLCache[list[WebResult]],
        rate_limiter: TokenBucket,
        timeout_seconds: float = 8.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def search(self, query: str, count: int = 5) -> list[WebResult]:
        if not self.enabled:
            return []
        query = (query or "").strip()
        if len(query) < 2:
            return []

        cache_key = f"{query.lower()}:{count}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        if not self.rate_limiter.try_acquire():
            logger.warning("Web search rate limit exceeded, returning no results")
            return []

        try:
            with anyio.fail_after(self.timeout_seconds):
                data = await self._fetch(query, count)
        except TimeoutError:
            logger.warning("Web search timed out after %ss", self.timeout_seconds)
            return []
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Web search failed: %s", type(e).__name__)
            return []

        results = [
            WebResult(
                title=_strip_html(item.get("title", "")),
                url=item.get("url", ""),
                description=_strip_html(item.get("description", ""))[:500],
            )
            for item in ((data.get("web") or {}).get("results") or [])[:count]
        ]
        self.cache.set(cache_key, results)
        return results

    async def _fetch(self, query: str, count: int) -> dict:
        async with httpx.AsyncClient(
            timeout=self.timeout_seconds, transport=self._transport
        ) as client:
            response = await client.get(
                BRAVE_API_URL,
                params={"q": query, "count": count},
                headers={
                    "Accept": "application/json",
                    "X-Subscription-Token": self.api_key,
                },
            )
            response.raise_for_status()
            return response.json()


def format_results_for_prompt(results: list[WebResult]) -> str:
    return "\n\n".join(
        f"[{index}] {r.title} ({r.url})\n{r.description}" for index, r in enumerate(results, start=1)
    )


@lru_cache(maxsize=1)
def get_web_search_client() -> WebSearchClient:
    """Process-wide client built from settings."""
    return WebSearchClient(
        api_key=settings.BRAVE_SEARCH_API_KEY,
        cache=TTLCache(settings.WEB_SEARCH_CACHE_SIZE, settings.WEB_SEARCH_CACHE_TTL_SECONDS),
        rate_limiter=TokenBucket(
            settings.WEB_SEARCH_BUCKET_CAPACITY, settings.WEB_SEARCH_REFILL_PER_SECOND
        ),
        timeout_seconds=settings.WEB_SEARCH_TIMEOUT_SECONDS,
    )
