"""Access token cache with single-flight loading.

DingTalk access tokens are issued per (app key, app secret) and live 7200
seconds. The cache keeps them for a shorter TTL (6000 seconds by default) so
they are refreshed before the provider expires them.

Behavior:
- A live entry is returned without any remote call.
- On a miss, exactly one fetch per key is in flight. Concurrent callers for
  the same key await that fetch and all observe its outcome.
- Failed fetches are never cached. Every waiter receives
  ProviderUnavailableError and the next call retries.
- Fetches are bounded by a timeout. A timed-out fetch releases its slot.
- Capacity is bounded with LRU eviction (cachetools.TTLCache). Evicting a
  live entry is logged.

The cache belongs to one event loop. Reads and writes happen between awaits
on that loop, so no reader can observe a half-written entry.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from cachetools import TTLCache  # type: ignore[import-untyped]

from dingtalk_auth.exceptions import TRANSPORT_ERRCODE, ProviderError, ProviderUnavailableError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    TokenFetcher = Callable[[str, str], Awaitable[str]]

logger = logging.getLogger(__name__)

_DEFAULT_TTL = 6000
_DEFAULT_MAXSIZE = 10
_DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True, slots=True)
class CachedToken:
    """Immutable cache entry for one access token.

    Attributes:
        token: The access token string. Hidden from repr.
        obtained_at: Timer reading when the token was fetched.
        expires_after: Seconds after ``obtained_at`` the entry stays live.
    """

    token: str = field(repr=False)
    obtained_at: float
    expires_after: float

    @property
    def expires_at(self) -> float:
        return self.obtained_at + self.expires_after


@dataclass(slots=True)
class CacheStats:
    """Counters for cache behavior."""

    hits: int = 0
    misses: int = 0
    fetches: int = 0
    fetch_failures: int = 0
    evictions: int = 0


def _app_key_of(cache_key: str) -> str:
    return str(json.loads(cache_key).get("appKey", ""))


class _EvictionLoggingTTLCache(TTLCache):  # type: ignore[misc]
    """TTLCache that reports LRU evictions of live entries."""

    def __init__(self, maxsize: int, ttl: float, timer: Callable[[], float], stats: CacheStats) -> None:
        super().__init__(maxsize=maxsize, ttl=ttl, timer=timer)
        self._stats = stats

    def popitem(self) -> tuple[Any, Any]:
        # Only called when a new entry needs room; expired entries are purged first.
        key, value = super().popitem()
        self._stats.evictions += 1
        logger.warning(
            "token_cache_live_entry_evicted",
            extra={"app_key": _app_key_of(key), "maxsize": self.maxsize},
        )
        return key, value


class TokenCache:
    """Bounded, expiring cache of DingTalk access tokens.

    Args:
        fetch: Async callable ``(app_key, app_secret) -> token`` performing
            the remote fetch, usually ``DingTalkClient.fetch_access_token``.
        ttl: Entry lifetime in seconds.
        maxsize: Maximum number of distinct credential pairs kept.
        timeout: Upper bound in seconds for one remote fetch.
        timer: Monotonic clock used for expiry; injectable for tests.

    Example:
        >>> cache = TokenCache(client.fetch_access_token, ttl=6000)
        >>> token = await cache.get_token("app1", "s1")
    """

    def __init__(
        self,
        fetch: TokenFetcher,
        ttl: float = _DEFAULT_TTL,
        maxsize: int = _DEFAULT_MAXSIZE,
        timeout: float = _DEFAULT_TIMEOUT,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")

        self._fetch = fetch
        self._ttl = ttl
        self._timeout = timeout
        self._timer = timer
        self._stats = CacheStats()
        self._entries = _EvictionLoggingTTLCache(maxsize, ttl, timer, self._stats)
        self._inflight: dict[str, asyncio.Task[str]] = {}

    @staticmethod
    def cache_key(app_key: str, app_secret: str) -> str:
        """Serialize a credential pair into a deterministic cache key."""
        return json.dumps({"appKey": app_key, "appSecret": app_secret}, sort_keys=True)

    async def get_token(self, app_key: str, app_secret: str) -> str:
        """Return a live access token, fetching it on a miss.

        Args:
            app_key: Application key.
            app_secret: Application secret.

        Returns:
            Access token string.

        Raises:
            ProviderUnavailableError: If the remote fetch fails or times out.
        """
        key = self.cache_key(app_key, app_secret)

        entry: CachedToken | None = self._entries.get(key)
        if entry is not None:
            self._stats.hits += 1
            return entry.token

        self._stats.misses += 1
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._load(key, app_key, app_secret))
            self._inflight[key] = task
        else:
            logger.debug("token_cache_join_inflight", extra={"app_key": app_key})

        # Shield so one cancelled waiter does not cancel the shared fetch.
        return await asyncio.shield(task)

    async def _load(self, key: str, app_key: str, app_secret: str) -> str:
        self._stats.fetches += 1
        try:
            token = await asyncio.wait_for(self._fetch(app_key, app_secret), timeout=self._timeout)
        except ProviderError as exc:
            self._stats.fetch_failures += 1
            logger.error(
                "token_cache_fetch_failed",
                extra={"app_key": app_key, "errcode": exc.errcode, "errmsg": exc.errmsg},
            )
            raise ProviderUnavailableError.wrap(exc) from exc
        except TimeoutError as exc:
            self._stats.fetch_failures += 1
            logger.error(
                "token_cache_fetch_timeout",
                extra={"app_key": app_key, "timeout": self._timeout},
            )
            raise ProviderUnavailableError(
                "gettoken", TRANSPORT_ERRCODE, f"timed out after {self._timeout}s"
            ) from exc
        except Exception as exc:
            # Custom fetchers may leak raw transport errors.
            self._stats.fetch_failures += 1
            logger.error(
                "token_cache_fetch_failed",
                extra={"app_key": app_key, "error": type(exc).__name__},
            )
            raise ProviderUnavailableError(
                "gettoken", TRANSPORT_ERRCODE, str(exc) or type(exc).__name__
            ) from exc
        else:
            self._entries[key] = CachedToken(
                token=token, obtained_at=self._timer(), expires_after=self._ttl
            )
            logger.info("token_cache_refreshed", extra={"app_key": app_key, "ttl": self._ttl})
            return token
        finally:
            # Release the slot before waiters resume so the next miss fetches again.
            self._inflight.pop(key, None)

    def invalidate(self, app_key: str, app_secret: str) -> None:
        """Drop the cached token for a credential pair, if any."""
        self._entries.pop(self.cache_key(app_key, app_secret), None)

    def clear(self) -> None:
        # Swap in an empty store; TTLCache.clear() would report every entry as evicted.
        self._entries = _EvictionLoggingTTLCache(
            self._entries.maxsize, self._ttl, self._timer, self._stats
        )

    def is_inflight(self, app_key: str, app_secret: str) -> bool:
        return self.cache_key(app_key, app_secret) in self._inflight

    @property
    def stats(self) -> CacheStats:
        return self._stats

    @property
    def maxsize(self) -> int:
        return int(self._entries.maxsize)

    def __len__(self) -> int:
        # Purge expired entries so the count reflects live tokens only.
        self._entries.expire()
        return len(self._entries)
