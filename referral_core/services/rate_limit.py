"""
Fixed-window rate limiting per (client, limit class).
"""
import asyncio
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Mapping, Optional

from referral_core.models.ai import RateLimitResult
from referral_core.models.settings import RateLimitClass, RateLimitSettings
from referral_core.utils.clock import SystemClock
from referral_core.utils.exceptions import ConfigurationError
from referral_core.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class RateLimitEntry:
    client_key: str
    count: int
    window_reset_at: datetime


def resolve_client_key(user_id: Optional[str] = None, headers: Optional[Mapping[str, str]] = None,
                       remote_addr: Optional[str] = None) -> str:
    """
    Identity used for fairness, in this order: authenticated user id, first hop of
    X-Forwarded-For, X-Real-IP, the socket peer address, then "ip:unknown".
    """
    if user_id:
        return f"user:{user_id}"
    headers = headers or {}
    forwarded = headers.get("x-forwarded-for")
    if forwarded and forwarded.split(",")[0].strip():
        return f"ip:{forwarded.split(',')[0].strip()}"
    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return f"ip:{real_ip.strip()}"
    if remote_addr:
        return f"ip:{remote_addr}"
    return "ip:unknown"


class RateLimiter:
    """
    A window opens on the first request of a (client, class) pair and admits up to
    `limit` requests. Once the clock passes the reset time the entry is stale and the
    next check starts a fresh window; the sweep only reclaims memory.
    """

    def __init__(self, settings: RateLimitSettings = None, clock=None):
        self.settings = settings or RateLimitSettings()
        self.clock = clock or SystemClock()
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = asyncio.Lock()

    def limit_class(self, name: str) -> RateLimitClass:
        try:
            return self.settings.classes[name]
        except KeyError:
            raise ConfigurationError(f"Unknown rate limit class: {name}", config_key="rate_limits.classes", config_value=name)

    async def check_rate_limit(self, client_key: str, limit_class: str) -> RateLimitResult:
        config = self.limit_class(limit_class)
        key = f"{client_key}:{limit_class}"
        async with self._lock:
            now = self.clock.now()
            entry = self._entries.get(key)
            if entry is None or now > entry.window_reset_at:
                entry = RateLimitEntry(client_key=client_key, count=0, window_reset_at=now + config.window)
                self._entries[key] = entry

            allowed = entry.count < config.limit
            if allowed:
                entry.count += 1
            remaining = max(0, config.limit - entry.count)
            reset_at = entry.window_reset_at

        if not allowed:
            logger.info(f"Rate limit denied {client_key} for class {limit_class} until {reset_at.isoformat()}")
        return RateLimitResult(
            allowed=allowed,
            remaining=remaining,
            reset_at=reset_at,
            limit=config.limit,
            limit_class=limit_class,
            client_key=client_key,
        )

    def retry_after_seconds(self, result: RateLimitResult) -> int:
        return max(0, math.ceil((result.reset_at - self.clock.now()).total_seconds()))

    async def purge_expired(self) -> int:
        async with self._lock:
            now = self.clock.now()
            stale = [k for k, e in self._entries.items() if now > e.window_reset_at]
            for k in stale:
                del self._entries[k]
        if stale:
            logger.debug(f"Purged {len(stale)} expired rate limit entries")
        return len(stale)

    async def reset(self) -> None:
        async with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
