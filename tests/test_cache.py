import asyncio

import pytest
from bson.errors import InvalidDocument
from unittest.mock import AsyncMock, MagicMock

from referral_core.services.cache import CacheStore, MemoryCacheBackend, MongoCacheBackend
from referral_core.utils.exceptions import CacheBackendError, ConfigurationError


class FailingBackend(MemoryCacheBackend):
    """Backend whose storage is down"""

    async def get(self, key):
        raise CacheBackendError("connection refused", operation="get")

    async def set(self, entry):
        raise CacheBackendError("connection refused", operation="set")


@pytest.fixture
def store(clock):
    return CacheStore(clock=clock)


class TestGetOrCompute:
    """Memoisation and the at-most-once guarantee"""

    @pytest.mark.asyncio
    async def test_second_call_hits_cache(self, store):
        calls = []

        async def compute():
            calls.append(1)
            return {"bullets": ["a", "b", "c"]}

        first = await store.get_or_compute("summary", "fp", compute)
        second = await store.get_or_compute("summary", "fp", compute)

        assert first == second
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_compute(self, store):
        calls = []
        release = asyncio.Event()

        async def compute():
            calls.append(1)
            await release.wait()
            return {"value": len(calls)}

        tasks = [asyncio.create_task(store.get_or_compute("summary", "same", compute)) for _ in range(20)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks)

        assert len(calls) == 1
        assert all(r == {"value": 1} for r in results)

    @pytest.mark.asyncio
    async def test_failed_compute_leaves_no_entry(self, store):
        async def boom():
            raise RuntimeError("provider down")

        with pytest.raises(RuntimeError):
            await store.get_or_compute("summary", "fp", boom)

        assert await store.get("summary", "fp") is None

        async def ok():
            return "fresh"

        assert await store.get_or_compute("summary", "fp", ok) == "fresh"

    @pytest.mark.asyncio
    async def test_waiters_retry_after_leader_fails(self, store):
        attempts = []
        started = asyncio.Event()
        release = asyncio.Event()

        async def compute():
            attempts.append(1)
            if len(attempts) == 1:
                started.set()
                await release.wait()
                raise RuntimeError("first attempt fails")
            return "second"

        leader = asyncio.create_task(store.get_or_compute("summary", "k", compute))
        await started.wait()
        waiters = [asyncio.create_task(store.get_or_compute("summary", "k", compute)) for _ in range(5)]
        await asyncio.sleep(0)
        release.set()

        with pytest.raises(RuntimeError):
            await leader
        results = await asyncio.gather(*waiters)

        assert results == ["second"] * 5
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_uncacheable_result_is_shared_but_not_stored(self, store):
        calls = []

        async def compute():
            calls.append(1)
            return "static"

        await store.get_or_compute("summary", "fp", compute, cacheable=lambda v: False)
        await store.get_or_compute("summary", "fp", compute, cacheable=lambda v: False)

        assert len(calls) == 2


class TestExpiryAndMaintenance:
    """TTL, invalidation, sweep and stats"""

    @pytest.mark.asyncio
    async def test_ttl_expires_entries(self, store, clock):
        await store.set("messages", "fp", "hello")
        assert await store.get("messages", "fp") == "hello"

        clock.advance(hours=1, seconds=1)

        assert await store.get("messages", "fp") is None

    @pytest.mark.asyncio
    async def test_namespace_without_ttl_never_expires(self, store, clock):
        await store.set("scores", "fp", 83)
        clock.advance(days=365)
        assert await store.get("scores", "fp") == 83

    @pytest.mark.asyncio
    async def test_invalidate(self, store):
        await store.set("summary", "fp", "v")
        await store.invalidate("summary", "fp")
        assert await store.get("summary", "fp") is None

    @pytest.mark.asyncio
    async def test_purge_expired_and_stats(self, store, clock):
        await store.set("messages", "old", 1)
        await store.set("scores", "keep", 2)
        clock.advance(hours=2)

        removed = await store.purge_expired()
        stats = await store.stats()

        assert removed == 1
        assert stats["size"] == 1
        assert stats["keys"] == [store.key_for("scores", "keep")]
        assert stats["in_flight"] == 0

    def test_unknown_namespace_is_a_configuration_error(self, store):
        with pytest.raises(ConfigurationError):
            store.key_for("nope", "fp")


class TestBackendFailure:
    """Storage outages degrade to always-miss"""

    @pytest.mark.asyncio
    async def test_backend_errors_degrade_to_recompute(self, clock):
        store = CacheStore(backend=FailingBackend(), clock=clock)
        calls = []

        async def compute():
            calls.append(1)
            return "value"

        assert await store.get_or_compute("summary", "fp", compute) == "value"
        assert await store.get_or_compute("summary", "fp", compute) == "value"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_unencodable_value_is_not_memoised(self, clock):
        collection = MagicMock()
        collection.find_one = AsyncMock(return_value=None)
        collection.replace_one = AsyncMock(side_effect=OverflowError("MongoDB can only handle up to 8-byte ints"))
        store = CacheStore(backend=MongoCacheBackend(collection), clock=clock)

        async def compute():
            return {"subject": "s", "body": "b", "n": 10 ** 20}

        result = await store.get_or_compute("messages", "fp", compute)

        assert result["n"] == 10 ** 20
        collection.replace_one.assert_awaited_once()
        assert store._in_flight == {}

    @pytest.mark.asyncio
    async def test_mongo_backend_wraps_bson_errors(self):
        collection = MagicMock()
        collection.find_one = AsyncMock(side_effect=InvalidDocument("key '$bad' must not start with '$'"))
        backend = MongoCacheBackend(collection)

        with pytest.raises(CacheBackendError) as exc_info:
            await backend.get("ai:messages:fp")

        assert exc_info.value.details["operation"] == "get"
