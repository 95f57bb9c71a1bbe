"""
Request admission for routes: rate limit per (client, limit class).
"""
from fastapi import Depends, Request, Response

from referral_core.models.ai import RateLimitResult
from referral_core.services.container import ServiceContainer
from referral_core.services.rate_limit import resolve_client_key
from referral_core.utils.exceptions import RateLimitExceededError


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def client_key_for(request: Request) -> str:
    # user id comes from the upstream auth layer, either on request.state or as X-User-ID
    user_id = getattr(request.state, "user_id", None) or request.headers.get("x-user-id")
    return resolve_client_key(
        user_id=user_id,
        headers=request.headers,
        remote_addr=request.client.host if request.client else None,
    )


def rate_limited(limit_class: str):
    """FastAPI dependency factory; denial raises RateLimitExceededError (HTTP 429)."""

    async def dependency(request: Request, response: Response,
                         container: ServiceContainer = Depends(get_container)) -> RateLimitResult:
        limiter = container.rate_limiter
        result = await limiter.check_rate_limit(client_key_for(request), limit_class)
        if not result.allowed:
            raise RateLimitExceededError(
                f"Rate limit exceeded for {limit_class} requests",
                limit=result.limit,
                remaining=0,
                reset_at=result.reset_at,
                retry_after=limiter.retry_after_seconds(result),
                limit_class=limit_class,
            )
        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        response.headers["X-RateLimit-Reset"] = str(int(result.reset_at.timestamp()))
        return result

    return dependency
