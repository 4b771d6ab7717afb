# backend/market_prices/utils/cache.py
import asyncio
import json
import logging
import threading
import time
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence

log = logging.getLogger(__name__)

KEY_PREFIX = "farmcon"

# -----------------------------
# Key builders
# -----------------------------

def market_data_key(commodity: str, state: Optional[str] = None, district: Optional[str] = None) -> str:
    """Primary response key. Optional filters change the key; there is no hierarchy between them."""
    parts = ["market-data", commodity]
    if state:
        parts.append(state)
    if district:
        parts.append(district)
    return f"{KEY_PREFIX}:{':'.join(parts)}"

def stats_key(name: str) -> str:
    return f"{KEY_PREFIX}:stats:{name}"

def api_calls_key(commodity: str) -> str:
    return stats_key(f"api-calls:{commodity}")

def snapshot_key(kind: str, commodity: str) -> str:
    return f"{KEY_PREFIX}:{kind}:{commodity}"

POPULAR_COMMODITIES = f"{KEY_PREFIX}:popular-commodities"
POPULAR_LOCATIONS = f"{KEY_PREFIX}:popular-locations"
POPULAR_FILTERS = f"{KEY_PREFIX}:popular-filters"


# -----------------------------
# Core simple in-memory TTL cache (sync)
# -----------------------------
class SimpleTTLCache:
    def __init__(self, default_ttl: Optional[int] = 600, clock: Callable[[], float] = time.time):
        # _data: key -> (value, expiry_ts or None)
        self._data: dict[str, tuple[Any, Optional[float]]] = {}
        self._default_ttl = default_ttl
        self._lock = threading.Lock()
        self._clock = clock

    def _now(self) -> float:
        return self._clock()

    def _live(self, key: str, now: float) -> Optional[tuple[Any, Optional[float]]]:
        # caller holds the lock
        item = self._data.get(key)
        if not item:
            return None
        _, expiry = item
        if expiry is not None and expiry <= now:
            self._data.pop(key, None)
            return None
        return item

    def _expiry(self, ttl: Optional[int]) -> Optional[float]:
        eff_ttl = ttl if ttl is not None else self._default_ttl
        return (self._now() + eff_ttl) if eff_ttl is not None else None

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            item = self._live(key, self._now())
            return default if item is None else item[0]

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Set a value with optional per-key TTL."""
        with self._lock:
            self._data[key] = (value, self._expiry(ttl))

    def incr(self, key: str, ttl: Optional[int] = None) -> int:
        """Increment a counter; the TTL is applied only when the counter is created."""
        with self._lock:
            item = self._live(key, self._now())
            if item is None:
                self._data[key] = (1, self._expiry(ttl))
                return 1
            value, expiry = item
            value = int(value) + 1
            self._data[key] = (value, expiry)
            return value

    def zadd(self, key: str, score: float, member: str, ttl: Optional[int] = None) -> None:
        with self._lock:
            item = self._live(key, self._now())
            members = dict(item[0]) if item else {}
            members[member] = float(score)
            expiry = self._expiry(ttl) if ttl is not None or item is None else item[1]
            self._data[key] = (members, expiry)

    def zrange(self, key: str, start: int = 0, stop: int = -1, desc: bool = True) -> List[str]:
        with self._lock:
            item = self._live(key, self._now())
            if not item or not isinstance(item[0], dict):
                return []
            ranked = sorted(item[0].items(), key=lambda kv: kv[1], reverse=desc)
        names = [m for m, _ in ranked]
        end = None if stop == -1 else stop + 1
        return names[start:end]

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    # Helpers to support flush utilities
    def keys(self) -> Iterable[str]:
        with self._lock:
            return list(self._data.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def sweep(self) -> int:
        """Remove expired keys proactively; returns count removed."""
        now = self._now()
        removed = 0
        with self._lock:
            for k in list(self._data.keys()):
                _, expiry = self._data[k]
                if expiry is not None and expiry <= now:
                    self._data.pop(k, None)
                    removed += 1
        return removed


# -----------------------------
# Async store layer
# -----------------------------

class CacheStore:
    """
    Async key-value store with per-key TTL, counters and ranked sets.

    The primitive operations raise on backend failure. `get_json`/`set_json`
    are the forgiving variants: failures are logged and treated as a miss or
    a skipped write.
    """

    backend = "abstract"

    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def incr(self, key: str, ttl: Optional[int] = None) -> int:
        raise NotImplementedError

    async def zadd(self, key: str, score: float, member: str, ttl: Optional[int] = None) -> None:
        raise NotImplementedError

    async def zrange(self, key: str, start: int = 0, stop: int = -1, desc: bool = True) -> List[str]:
        raise NotImplementedError

    async def mget(self, keys: Sequence[str]) -> List[Optional[Any]]:
        return [await self.get(k) for k in keys]

    async def keys(self, prefix: str = "") -> List[str]:
        raise NotImplementedError

    async def close(self) -> None:
        return None

    # --- JSON helpers ---

    async def get_json(self, key: str) -> Optional[Any]:
        try:
            val = await self.get(key)
            if val is not None:
                log.debug("cache hit: %s", key)
            return val
        except Exception as e:
            log.warning("Cache get_json error for %s: %s", key, e)
            return None

    async def set_json(self, key: str, val: Any, ttl: Optional[int] = None) -> bool:
        try:
            await self.set(key, val, ttl=ttl)
            log.debug("cached for %ss: %s", ttl, key)
            return True
        except Exception as e:
            log.warning("Cache set_json error for %s: %s", key, e)
            return False

    # --- Flush utilities ---

    async def flush_prefix(self, prefix: str) -> int:
        """Remove only keys starting with `prefix` (e.g. 'farmcon:market-data:')."""
        removed = 0
        for k in await self.keys(prefix):
            await self.delete(k)
            removed += 1
        return removed

    async def flush_all(self) -> int:
        return await self.flush_prefix("")


class MemoryCacheStore(CacheStore):
    backend = "memory"

    def __init__(self, cache: Optional[SimpleTTLCache] = None):
        self.cache = cache or SimpleTTLCache(default_ttl=600)

    async def get(self, key: str) -> Optional[Any]:
        return self.cache.get(key)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        # round-trip through JSON so callers get the same shapes Redis would give back
        self.cache.set(key, json.loads(json.dumps(value)), ttl=ttl)

    async def delete(self, key: str) -> None:
        self.cache.delete(key)

    async def incr(self, key: str, ttl: Optional[int] = None) -> int:
        return self.cache.incr(key, ttl=ttl)

    async def zadd(self, key: str, score: float, member: str, ttl: Optional[int] = None) -> None:
        self.cache.zadd(key, score, member, ttl=ttl)

    async def zrange(self, key: str, start: int = 0, stop: int = -1, desc: bool = True) -> List[str]:
        return self.cache.zrange(key, start, stop, desc=desc)

    async def keys(self, prefix: str = "") -> List[str]:
        return [k for k in self.cache.keys() if str(k).startswith(prefix)]

    async def flush_all(self) -> int:
        n = len(self.cache)
        self.cache.clear()
        return n


class RedisCacheStore(CacheStore):
    backend = "redis"

    def __init__(self, url: str, client: Any = None):
        if client is None:
            import redis.asyncio as redis
            client = redis.from_url(url, decode_responses=True)
        self.redis = client

    @staticmethod
    def _load(raw: Optional[str]) -> Optional[Any]:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            return raw

    async def get(self, key: str) -> Optional[Any]:
        return self._load(await self.redis.get(key))

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        payload = json.dumps(value)
        if ttl and ttl > 0:
            await self.redis.setex(key, ttl, payload)
        else:
            await self.redis.set(key, payload)

    async def delete(self, key: str) -> None:
        await self.redis.delete(key)

    async def incr(self, key: str, ttl: Optional[int] = None) -> int:
        value = await self.redis.incr(key)
        if ttl and value == 1:
            await self.redis.expire(key, ttl)
        return int(value)

    async def zadd(self, key: str, score: float, member: str, ttl: Optional[int] = None) -> None:
        await self.redis.zadd(key, {member: score})
        if ttl:
            await self.redis.expire(key, ttl)

    async def zrange(self, key: str, start: int = 0, stop: int = -1, desc: bool = True) -> List[str]:
        return list(await self.redis.zrange(key, start, stop, desc=desc))

    async def mget(self, keys: Sequence[str]) -> List[Optional[Any]]:
        if not keys:
            return []
        return [self._load(v) for v in await self.redis.mget(list(keys))]

    async def keys(self, prefix: str = "") -> List[str]:
        return [k async for k in self.redis.scan_iter(match=f"{prefix}*")]

    async def close(self) -> None:
        await self.redis.aclose()


def build_cache_store(backend: str = "memory", redis_url: str = "") -> CacheStore:
    if backend == "redis":
        log.info("Cache backend: redis (%s)", redis_url)
        return RedisCacheStore(redis_url)
    log.info("Cache backend: in-memory")
    return MemoryCacheStore()


# -----------------------------
# Best-effort side effects
# -----------------------------

Effect = Callable[[], Awaitable[Any]]

async def run_best_effort(effects: Sequence[Effect], label: str = "cache batch") -> int:
    """
    Run independent effects concurrently; failures are logged and dropped.
    Returns how many failed.
    """
    if not effects:
        return 0

    async def _call(effect: Effect) -> Any:
        return await effect()

    results = await asyncio.gather(*(_call(e) for e in effects), return_exceptions=True)
    failed = 0
    for res in results:
        if isinstance(res, BaseException):
            failed += 1
            log.warning("%s: effect failed: %s", label, res)
    return failed


# -----------------------------
# Memory backend sweeper
# -----------------------------

_sweeper: Optional[asyncio.Task] = None

async def init_cache(store: CacheStore, interval_sec: int = 3600) -> None:
    """Start the periodic sweep for the in-memory backend."""
    global _sweeper
    log.info("Cache initialized (%s mode)", store.backend)
    if isinstance(store, MemoryCacheStore) and _sweeper is None:
        _sweeper = asyncio.create_task(_cleanup_task(store.cache, interval_sec))

async def close_cache(store: CacheStore) -> None:
    global _sweeper
    if _sweeper is not None:
        _sweeper.cancel()
        _sweeper = None
    await store.close()

async def _cleanup_task(cache: SimpleTTLCache, interval_sec: int):
    while True:
        await asyncio.sleep(interval_sec)
        try:
            n = cache.sweep()
            if n:
                log.info("Cache sweep removed %d expired keys", n)
        except Exception as e:
            log.warning("Cache sweep error: %s", e)
