"""
Wires the core services from settings and owns the background sweep task.
"""
import asyncio
from typing import Optional

import motor.motor_asyncio

from referral_core.models.ai import AIResult, ProfileEmbedding
from referral_core.models.settings import CoreSettings
from referral_core.services.artifacts import ArtifactService
from referral_core.services.budget import BudgetGuard
from referral_core.services.cache import CacheStore, MemoryCacheBackend, MongoCacheBackend
from referral_core.services.db import InMemoryRecordStore, MongoRecordStore
from referral_core.services.embeddings import EmbeddingService
from referral_core.services.nudges import NudgeService
from referral_core.services.orchestrator import AIOrchestrator
from referral_core.services.provider import OllamaProvider
from referral_core.services.rate_limit import RateLimiter
from referral_core.utils.clock import SystemClock
from referral_core.utils.exceptions import ReferralCoreError
from referral_core.utils.logging_config import get_logger

logger = get_logger(__name__)


class ServiceContainer:
    """
    State objects (cache, budget, rate limiter) are created here and injected,
    never held as module-level singletons.
    """

    def __init__(self, settings: CoreSettings, clock=None, provider=None, store=None, cache_backend=None):
        self.settings = settings
        self.clock = clock or SystemClock()
        self._mongo_client = None

        if store is None:
            store = MongoRecordStore(self._mongo_db()) if settings.record_store == "mongo" else InMemoryRecordStore()
        if cache_backend is None:
            if settings.cache.backend == "mongo":
                cache_backend = MongoCacheBackend(
                    self._mongo_db()["ai_cache"],
                    models={"AIResult": AIResult, "ProfileEmbedding": ProfileEmbedding},
                )
            else:
                cache_backend = MemoryCacheBackend()

        self.store = store
        self.cache = CacheStore(cache_backend, settings.cache, self.clock)
        self.budget = BudgetGuard(settings.budget, self.clock)
        self.rate_limiter = RateLimiter(settings.rate_limits, self.clock)
        self.provider = provider or OllamaProvider(settings.llm)
        self.orchestrator = AIOrchestrator(self.cache, self.budget, settings.llm, settings.cache)
        self.artifacts = ArtifactService(self.orchestrator, self.provider, settings.llm)
        self.nudges = NudgeService(self.artifacts)
        self.embeddings = EmbeddingService(self.provider, self.cache, settings.llm)
        self._sweeper: Optional[asyncio.Task] = None

    def _mongo_db(self):
        if self._mongo_client is None:
            logger.info(f"Initializing MongoDB connection to database: {self.settings.mongo.db_name}")
            self._mongo_client = motor.motor_asyncio.AsyncIOMotorClient(self.settings.mongo.uri)
        return self._mongo_client[self.settings.mongo.db_name]

    async def startup(self, start_sweeper: bool = True) -> None:
        await self.store.init_indexes()
        if isinstance(self.cache.backend, MongoCacheBackend):
            try:
                await self.cache.backend.init_indexes()
            except ReferralCoreError as e:
                logger.warning(f"Cache index initialization had issues: {e.message}")
        if start_sweeper and self._sweeper is None:
            self._sweeper = asyncio.create_task(self._sweep_loop())

    async def shutdown(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        if self._mongo_client is not None:
            self._mongo_client.close()

    async def sweep_once(self) -> dict:
        """Best-effort reclamation of expired cache and rate-limit entries."""
        cache_removed = await self.cache.purge_expired()
        limits_removed = await self.rate_limiter.purge_expired()
        return {"cache": cache_removed, "rate_limits": limits_removed}

    async def _sweep_loop(self) -> None:
        interval = self.settings.cache.sweep_interval_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep_once()
            except ReferralCoreError as e:
                logger.warning(f"Background sweep failed: {e.message}")
