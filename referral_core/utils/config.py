"""
Environment-driven configuration loading
"""
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import ValidationError as PydanticValidationError

from referral_core.models.settings import (
    BudgetSettings, CacheSettings, CoreSettings, LLMSettings, MongoSettings,
    RateLimitClass, RateLimitSettings,
)
from referral_core.utils.exceptions import ConfigurationError
from referral_core.utils.logging_config import get_logger

logger = get_logger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    raw = os.getenv(name)
    return default if raw is None or raw.strip() == "" else raw.strip()


def _rate_limit_overrides() -> RateLimitSettings:
    """RATE_LIMIT_<CLASS>=<limit>/<window_seconds>, e.g. RATE_LIMIT_AI=50/3600"""
    settings = RateLimitSettings()
    for name in list(settings.classes):
        raw = _env(f"RATE_LIMIT_{name.upper()}")
        if not raw:
            continue
        try:
            limit, window = raw.split("/", 1)
            settings.classes[name] = RateLimitClass(limit=int(limit), window_seconds=float(window))
        except (ValueError, PydanticValidationError) as e:
            raise ConfigurationError(
                f"Invalid rate limit for class {name}", config_key=f"RATE_LIMIT_{name.upper()}",
                config_value=raw, cause=e
            ) from e
    return settings


def load_settings(env_file: Optional[str] = None) -> CoreSettings:
    """Build the core settings from the environment (.env supported)"""
    load_dotenv(env_file)

    try:
        llm = LLMSettings(
            enabled=_env_bool("AI_ENABLED", True),
            model_name=_env("LLM_MODEL", "llama3.1:8b"),
            embed_model=_env("EMBED_MODEL", "nomic-embed-text"),
            base_url=_env("OLLAMA_BASE_URL", "http://localhost:11434"),
            timeout=float(_env("AI_TIMEOUT_SECONDS", "10")),
            retries=int(_env("AI_RETRIES", "2")),
            max_input_tokens=int(_env("AI_MAX_INPUT_TOKENS", "2000")),
            max_output_tokens=int(_env("AI_MAX_OUTPUT_TOKENS", "500")),
        )
        budget = BudgetSettings(
            daily_budget=float(_env("AI_DAILY_BUDGET", "10.0")),
            fallback_threshold=float(_env("AI_FALLBACK_THRESHOLD", "0.9")),
            hourly_call_limit=int(_env("AI_HOURLY_CALL_LIMIT", "1000")),
            timezone=_env("AI_BUDGET_TIMEZONE", "UTC"),
        )
        cache = CacheSettings(
            backend=_env("CACHE_BACKEND", "memory"),
            cache_fallback_results=_env_bool("CACHE_FALLBACK_RESULTS", False),
        )
        mongo = MongoSettings(
            uri=_env("MONGO_DETAILS", "mongodb://localhost:27017"),
            db_name=_env("DB_NAME", "referral_core"),
        )
        settings = CoreSettings(
            llm=llm,
            budget=budget,
            cache=cache,
            rate_limits=_rate_limit_overrides(),
            mongo=mongo,
            record_store=_env("RECORD_STORE", "memory"),
        )
    except (ValueError, PydanticValidationError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}", cause=e) from e

    logger.info(
        f"Settings loaded - model: {settings.llm.model_name}, ai enabled: {settings.llm.enabled}, "
        f"daily budget: {settings.budget.daily_budget}, cache backend: {settings.cache.backend}"
    )
    return settings
