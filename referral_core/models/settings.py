"""
Settings Models for Configuration Management
"""
from datetime import timedelta
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from referral_core.models.scoring import Factor, ScoringPreset

WEIGHT_TOLERANCE = 1e-9


class LLMSettings(BaseModel):
    """Text-generation provider settings"""
    enabled: bool = Field(default=True, description="Call the provider at all; false forces static output")
    model_name: str = Field(default="llama3.1:8b", description="LLM model name")
    embed_model: str = Field(default="nomic-embed-text", description="Embedding model name")
    base_url: str = Field(default="http://localhost:11434", description="Ollama base URL")
    timeout: float = Field(default=10.0, gt=0.0, le=300.0, description="Hard deadline per generation in seconds")
    retries: int = Field(default=2, ge=0, le=10, description="Retries after the first attempt on provider rate limiting")
    retry_backoff: float = Field(default=1.0, ge=0.0, le=60.0, description="Backoff factor between attempts")
    max_input_tokens: int = Field(default=2000, ge=100, description="Prompt truncation budget")
    max_output_tokens: int = Field(default=500, ge=1, description="Completion cap used for cost estimates")


class ModelCost(BaseModel):
    input_cost_per_1k: float = Field(default=0.0, ge=0.0)
    output_cost_per_1k: float = Field(default=0.0, ge=0.0)


class BudgetSettings(BaseModel):
    """Daily spend cap and hourly call cap per billing scope"""
    daily_budget: float = Field(default=10.0, gt=0.0, description="Daily cap in cost units")
    fallback_threshold: float = Field(default=0.9, gt=0.0, le=1.0, description="Fraction of the cap usable before falling back")
    hourly_call_limit: int = Field(default=1000, ge=1)
    timezone: str = Field(default="UTC", description="Reference timezone of the calendar-day window")
    model_costs: Dict[str, ModelCost] = Field(default_factory=lambda: {
        "gpt-4o-mini": ModelCost(input_cost_per_1k=0.00015, output_cost_per_1k=0.0006),
        "text-embedding-3-small": ModelCost(input_cost_per_1k=0.00002, output_cost_per_1k=0.0),
    })
    default_model_cost: ModelCost = Field(
        default_factory=lambda: ModelCost(input_cost_per_1k=0.00015, output_cost_per_1k=0.0006)
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v):
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v


class CacheNamespace(BaseModel):
    ttl_seconds: Optional[int] = Field(default=None, ge=1, description="None keeps entries until invalidated")
    key_prefix: str


class CacheSettings(BaseModel):
    backend: str = Field(default="memory", description="memory | mongo")
    cache_fallback_results: bool = Field(default=False, description="Also memoise static fallback output")
    sweep_interval_seconds: int = Field(default=60, ge=1)
    namespaces: Dict[str, CacheNamespace] = Field(default_factory=lambda: {
        "job_parsing": CacheNamespace(ttl_seconds=86400 * 7, key_prefix="ai:jd:"),
        "embeddings": CacheNamespace(ttl_seconds=86400 * 30, key_prefix="ai:emb:"),
        "messages": CacheNamespace(ttl_seconds=3600, key_prefix="ai:msg:"),
        "insights": CacheNamespace(ttl_seconds=86400, key_prefix="ai:ins:"),
        "summary": CacheNamespace(ttl_seconds=86400 * 7, key_prefix="ai:sum:"),
        "nudges": CacheNamespace(ttl_seconds=86400, key_prefix="ai:nudge:"),
        "scores": CacheNamespace(ttl_seconds=None, key_prefix="score:"),
    })

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v):
        if v not in ("memory", "mongo"):
            raise ValueError("Cache backend must be 'memory' or 'mongo'")
        return v


class RateLimitClass(BaseModel):
    limit: int = Field(ge=1, description="Maximum requests per window")
    window_seconds: float = Field(gt=0.0, description="Window length in seconds")

    @property
    def window(self) -> timedelta:
        return timedelta(seconds=self.window_seconds)


class RateLimitSettings(BaseModel):
    classes: Dict[str, RateLimitClass] = Field(default_factory=lambda: {
        "read": RateLimitClass(limit=1000, window_seconds=3600),
        "write": RateLimitClass(limit=100, window_seconds=3600),
        "ai": RateLimitClass(limit=50, window_seconds=3600),
        "auth": RateLimitClass(limit=20, window_seconds=900),
        "batch": RateLimitClass(limit=20, window_seconds=3600),
    })


class WeightPreset(BaseModel):
    """A statically validated weight set for one scoring use-case"""
    preset: ScoringPreset
    weights: Dict[Factor, float]

    @model_validator(mode="after")
    def validate_weights(self):
        if not self.weights:
            raise ValueError(f"Preset {self.preset.value} has no weights")
        for factor, weight in self.weights.items():
            if weight < 0:
                raise ValueError(f'Weight for factor "{factor.value}" must be non-negative')
        total = sum(self.weights.values())
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"Weights of preset {self.preset.value} must sum to 1.0, got {total}")
        return self


class MongoSettings(BaseModel):
    uri: str = Field(default="mongodb://localhost:27017")
    db_name: str = Field(default="referral_core")


class CoreSettings(BaseModel):
    """Complete configuration of the referral core"""
    llm: LLMSettings = Field(default_factory=LLMSettings)
    budget: BudgetSettings = Field(default_factory=BudgetSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    rate_limits: RateLimitSettings = Field(default_factory=RateLimitSettings)
    mongo: MongoSettings = Field(default_factory=MongoSettings)
    record_store: str = Field(default="memory", description="memory | mongo")
