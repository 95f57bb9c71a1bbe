import asyncio
from typing import List, Sequence, Tuple

import numpy as np

from referral_core.helpers.fingerprint import fingerprint
from referral_core.helpers.parsing import truncate_text
from referral_core.models.ai import ProfileEmbedding
from referral_core.models.domain import Profile
from referral_core.models.settings import LLMSettings
from referral_core.services.cache import CacheStore
from referral_core.utils.exceptions import ProviderTimeoutError, ValidationError
from referral_core.utils.logging_config import PerformanceMonitor, get_logger

logger = get_logger(__name__)

EMBED_MAX_TOKENS = 8000
PROFILE_WEIGHTS = (0.4, 0.4, 0.2)  # skills, experience, domains


def cosine_similarity(a, b) -> float:
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValidationError("Vectors must have same dimension", field="vector", value=[va.shape, vb.shape])
    den = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if den == 0.0:
        return 0.0
    return float(np.dot(va, vb)) / den


def weighted_average_vectors(inputs: Sequence[Tuple[Sequence[float], float]]) -> List[float]:
    if not inputs:
        return []
    vectors = np.array([v for v, _ in inputs], dtype=np.float64)
    weights = np.array([w for _, w in inputs], dtype=np.float64)
    return (weights @ vectors / weights.sum()).tolist()


def profile_texts(profile: Profile) -> Tuple[str, str, str]:
    skills = ", ".join(profile.skills) or "general skills"
    previous = ", ".join(profile.past_companies) or "Various companies"
    experience = f"{profile.current_title or 'Professional'} at {profile.current_company or 'Company'}. Previously: {previous}"
    domains = ", ".join(profile.domains) or "technology"
    return skills, experience, domains


class EmbeddingService:
    """
    Vectors come from the provider's embedding endpoint and are memoised in the
    `embeddings` namespace. There is no static fallback for a vector, so provider
    failures surface as ProviderError.
    """

    def __init__(self, provider, cache: CacheStore, settings: LLMSettings = None):
        self.provider = provider
        self.cache = cache
        self.settings = settings or LLMSettings()

    async def embed(self, text: str) -> List[float]:
        text = truncate_text(text, EMBED_MAX_TOKENS)
        key = fingerprint("embedding", {"model": self.settings.embed_model, "text": text})

        async def compute() -> List[float]:
            with PerformanceMonitor("embedding", logger, threshold_ms=self.settings.timeout * 500):
                try:
                    vector = await asyncio.wait_for(self.provider.aembed(text), timeout=self.settings.timeout)
                except asyncio.TimeoutError as e:
                    raise ProviderTimeoutError("Embedding call timeout", cause=e) from e
            return np.asarray(vector, dtype=np.float64).tolist()

        return await self.cache.get_or_compute("embeddings", key, compute)

    async def profile_embedding(self, profile: Profile) -> ProfileEmbedding:
        skills, experience, domains = await asyncio.gather(*(self.embed(t) for t in profile_texts(profile)))
        combined = weighted_average_vectors(list(zip((skills, experience, domains), PROFILE_WEIGHTS)))
        return ProfileEmbedding(
            skill_vector=skills,
            experience_vector=experience,
            domain_vector=domains,
            combined_vector=combined,
            model_version=self.settings.embed_model,
        )

    async def similarity(self, a: Profile, b: Profile) -> float:
        ea, eb = await asyncio.gather(self.profile_embedding(a), self.profile_embedding(b))
        return cosine_similarity(ea.combined_vector, eb.combined_vector)
