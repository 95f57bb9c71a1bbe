"""
Content-addressed memoization with at-most-one in-flight computation per key.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from bson.errors import BSONError
from pydantic import BaseModel
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from referral_core.models.settings import CacheNamespace, CacheSettings
from referral_core.utils.clock import SystemClock
from referral_core.utils.exceptions import CacheBackendError, ConfigurationError
from referral_core.utils.logging_config import get_logger

logger = get_logger(__name__)

_FAILED = object()

# driver failures plus BSON encoding of values it cannot represent (ints beyond 8 bytes)
BACKEND_ERRORS = (PyMongoError, BSONError, OverflowError)


class CacheEntry(BaseModel):
    key: str
    value: Any
    created_at: datetime
    expires_at: Optional[datetime] = None

    def expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class MemoryCacheBackend:
    """Process-local backend. Entries are replaced, never mutated."""

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}

    async def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    async def set(self, entry: CacheEntry) -> None:
        self._entries[entry.key] = entry

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def purge_expired(self, now: datetime) -> int:
        stale = [k for k, e in self._entries.items() if e.expired(now)]
        for k in stale:
            del self._entries[k]
        return len(stale)

    async def keys(self) -> List[str]:
        return list(self._entries)


class MongoCacheBackend:
    """Shared backend on a MongoDB collection; values are stored as JSON documents."""

    def __init__(self, collection, models: Optional[Dict[str, Type[BaseModel]]] = None):
        self.collection = collection
        self.models = models or {}

    def _encode(self, value: Any) -> Dict[str, Any]:
        if isinstance(value, BaseModel):
            return {"model": type(value).__name__, "data": value.model_dump(mode="json")}
        return {"model": None, "data": value}

    def _decode(self, doc: Dict[str, Any]) -> Any:
        model = self.models.get(doc.get("model") or "")
        return model.model_validate(doc["data"]) if model else doc["data"]

    async def init_indexes(self) -> None:
        try:
            await self.collection.create_index([("key", ASCENDING)], unique=True)
            await self.collection.create_index([("expires_at", ASCENDING)])
        except BACKEND_ERRORS as e:
            raise CacheBackendError(f"Could not create cache indexes: {e}", operation="init_indexes", cause=e) from e

    async def get(self, key: str) -> Optional[CacheEntry]:
        try:
            doc = await self.collection.find_one({"key": key})
        except BACKEND_ERRORS as e:
            raise CacheBackendError(f"Cache read failed: {e}", operation="get", cause=e) from e
        if not doc:
            return None
        expires_at = doc.get("expires_at")
        created_at = doc["created_at"]
        # Mongo hands back naive UTC datetimes
        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return CacheEntry(key=key, value=self._decode(doc["value"]), created_at=created_at, expires_at=expires_at)

    async def set(self, entry: CacheEntry) -> None:
        try:
            await self.collection.replace_one(
                {"key": entry.key},
                {
                    "key": entry.key,
                    "value": self._encode(entry.value),
                    "created_at": entry.created_at,
                    "expires_at": entry.expires_at,
                },
                upsert=True,
            )
        except BACKEND_ERRORS as e:
            raise CacheBackendError(f"Cache write failed: {e}", operation="set", cause=e) from e

    async def delete(self, key: str) -> None:
        try:
            await self.collection.delete_one({"key": key})
        except BACKEND_ERRORS as e:
            raise CacheBackendError(f"Cache delete failed: {e}", operation="delete", cause=e) from e

    async def purge_expired(self, now: datetime) -> int:
        try:
            result = await self.collection.delete_many({"expires_at": {"$ne": None, "$lte": now}})
        except BACKEND_ERRORS as e:
            raise CacheBackendError(f"Cache purge failed: {e}", operation="purge_expired", cause=e) from e
        return result.deleted_count

    async def keys(self) -> List[str]:
        try:
            docs = await self.collection.find({}, {"key": 1}).to_list(length=None)
        except BACKEND_ERRORS as e:
            raise CacheBackendError(f"Cache scan failed: {e}", operation="keys", cause=e) from e
        return [d["key"] for d in docs]


class CacheStore:
    """
    getOrCompute front over a backend.

    Concurrent callers asking for the same key while nothing is stored share one
    computation. A failed computation stores nothing; its waiters retry and one of
    them becomes the new leader. Backend errors degrade to a miss.
    """

    def __init__(self, backend=None, settings: CacheSettings = None, clock=None):
        self.backend = backend or MemoryCacheBackend()
        self.settings = settings or CacheSettings()
        self.clock = clock or SystemClock()
        self._in_flight: Dict[str, asyncio.Future] = {}
        self._lock = asyncio.Lock()
        self.hits = 0
        self.misses = 0

    def namespace(self, name: str) -> CacheNamespace:
        try:
            return self.settings.namespaces[name]
        except KeyError:
            raise ConfigurationError(f"Unknown cache namespace: {name}", config_key="cache.namespaces", config_value=name)

    def key_for(self, namespace: str, fingerprint: str) -> str:
        return f"{self.namespace(namespace).key_prefix}{fingerprint}"

    async def _lookup(self, key: str) -> Tuple[bool, Any]:
        try:
            entry = await self.backend.get(key)
        except CacheBackendError as e:
            logger.warning(f"Cache backend unavailable on read, treating as miss: {e.message}")
            return False, None
        if entry is None:
            return False, None
        if entry.expired(self.clock.now()):
            try:
                await self.backend.delete(key)
            except CacheBackendError as e:
                logger.warning(f"Could not drop expired cache entry {key}: {e.message}")
            return False, None
        return True, entry.value

    async def _store(self, namespace: str, key: str, value: Any) -> None:
        now = self.clock.now()
        ttl = self.namespace(namespace).ttl_seconds
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl) if ttl else None,
        )
        try:
            await self.backend.set(entry)
        except CacheBackendError as e:
            logger.warning(f"Cache backend unavailable on write, result not memoised: {e.message}")

    async def get(self, namespace: str, fingerprint: str) -> Optional[Any]:
        hit, value = await self._lookup(self.key_for(namespace, fingerprint))
        return value if hit else None

    async def set(self, namespace: str, fingerprint: str, value: Any) -> None:
        key = self.key_for(namespace, fingerprint)
        await self._store(namespace, key, value)

    async def invalidate(self, namespace: str, fingerprint: str) -> None:
        key = self.key_for(namespace, fingerprint)
        try:
            await self.backend.delete(key)
        except CacheBackendError as e:
            logger.warning(f"Cache invalidation failed for {key}: {e.message}")

    async def get_or_compute(
        self,
        namespace: str,
        fingerprint: str,
        compute_fn: Callable[[], Awaitable[Any]],
        cacheable: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        key = self.key_for(namespace, fingerprint)
        while True:
            hit, value = await self._lookup(key)
            if hit:
                self.hits += 1
                logger.debug(f"Cache hit {key}")
                return value

            async with self._lock:
                pending = self._in_flight.get(key)
                if pending is None:
                    future = asyncio.get_running_loop().create_future()
                    self._in_flight[key] = future

            if pending is not None:
                result = await asyncio.shield(pending)
                if result is _FAILED:
                    continue
                self.hits += 1
                return result

            # leader: a previous leader may have stored between our miss and taking the slot
            try:
                hit, value = await self._lookup(key)
                if hit:
                    self.hits += 1
                    future.set_result(value)
                    return value

                self.misses += 1
                value = await compute_fn()
                if cacheable is None or cacheable(value):
                    await self._store(namespace, key, value)
                future.set_result(value)
                return value
            except BaseException:
                if not future.done():
                    future.set_result(_FAILED)
                raise
            finally:
                async with self._lock:
                    if self._in_flight.get(key) is future:
                        del self._in_flight[key]

    async def purge_expired(self) -> int:
        try:
            removed = await self.backend.purge_expired(self.clock.now())
        except CacheBackendError as e:
            logger.warning(f"Cache sweep skipped: {e.message}")
            return 0
        if removed:
            logger.debug(f"Purged {removed} expired cache entries")
        return removed

    async def stats(self) -> Dict[str, Any]:
        try:
            keys = await self.backend.keys()
        except CacheBackendError as e:
            logger.warning(f"Cache stats unavailable: {e.message}")
            keys = []
        return {
            "size": len(keys),
            "keys": keys,
            "in_flight": len(self._in_flight),
            "hits": self.hits,
            "misses": self.misses,
        }
