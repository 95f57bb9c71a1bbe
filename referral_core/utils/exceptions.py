"""
Custom Exception Classes for the Referral Core
"""
import asyncio
import functools
import inspect
from datetime import datetime
from random import uniform
from typing import Dict, Any, Optional

from fastapi import HTTPException


class ReferralCoreError(Exception):
    """Base exception for the referral core"""

    def __init__(
        self,
        message: str,
        error_code: str = None,
        details: Dict[str, Any] = None,
        cause: Exception = None
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/response"""
        result = {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }
        if self.cause:
            result["cause"] = str(self.cause)
        return result


class ValidationError(ReferralCoreError):
    """Raised when caller input is malformed"""

    def __init__(self, message: str, field: str = None, value: Any = None, **kwargs):
        details = kwargs.pop('details', {})
        if field:
            details['field'] = field
        if value is not None:
            details['invalid_value'] = str(value)
        super().__init__(message, error_code="VALIDATION_ERROR", details=details, **kwargs)


class NotFoundError(ReferralCoreError):
    """Raised when a record store lookup finds nothing"""

    def __init__(self, resource: str, resource_id: str, **kwargs):
        details = kwargs.pop('details', {})
        details['resource'] = resource
        details['resource_id'] = resource_id
        super().__init__(f"{resource} not found: {resource_id}", error_code="NOT_FOUND", details=details, **kwargs)


class ConfigurationError(ReferralCoreError):
    """Raised when configuration is invalid or missing"""

    def __init__(self, message: str, config_key: str = None, config_value: Any = None, **kwargs):
        details = kwargs.pop('details', {})
        if config_key:
            details['config_key'] = config_key
        if config_value is not None:
            details['config_value'] = str(config_value)
        super().__init__(message, error_code="CONFIGURATION_ERROR", details=details, **kwargs)


class RateLimitExceededError(ReferralCoreError):
    """Raised at the HTTP edge when the rate limiter denies a request"""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        limit: int = None,
        remaining: int = 0,
        reset_at: Optional[datetime] = None,
        retry_after: int = 0,
        limit_class: str = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        if limit is not None:
            details['limit'] = limit
        details['remaining'] = remaining
        if reset_at is not None:
            details['reset_at'] = reset_at.isoformat()
        details['retry_after'] = retry_after
        if limit_class:
            details['limit_class'] = limit_class
        self.limit = limit
        self.remaining = remaining
        self.reset_at = reset_at
        self.retry_after = retry_after
        super().__init__(message, error_code="RATE_LIMIT_EXCEEDED", details=details, **kwargs)

    def headers(self) -> Dict[str, str]:
        headers = {
            "Retry-After": str(self.retry_after),
            "X-RateLimit-Remaining": str(self.remaining),
        }
        if self.limit is not None:
            headers["X-RateLimit-Limit"] = str(self.limit)
        if self.reset_at is not None:
            headers["X-RateLimit-Reset"] = str(int(self.reset_at.timestamp()))
        return headers


class BudgetExceededError(ReferralCoreError):
    """Raised at the HTTP edge when a caller insists on AI output but the budget is spent"""

    def __init__(self, message: str = "AI budget exceeded", daily_spend: float = 0.0,
                 remaining_budget: float = 0.0, scope: str = None, **kwargs):
        details = kwargs.pop('details', {})
        details['daily_spend'] = daily_spend
        details['remaining_budget'] = remaining_budget
        if scope:
            details['scope'] = scope
        super().__init__(message, error_code="BUDGET_EXCEEDED", details=details, **kwargs)


class ProviderError(ReferralCoreError):
    """Raised when the text-generation provider fails"""

    def __init__(self, message: str, service_name: str = "ollama", status_code: int = None, **kwargs):
        details = kwargs.pop('details', {})
        if service_name:
            details['service_name'] = service_name
        if status_code:
            details['status_code'] = status_code
        kwargs.setdefault('error_code', "PROVIDER_ERROR")
        super().__init__(message, details=details, **kwargs)


class ProviderTimeoutError(ProviderError):
    """Raised when the provider misses its deadline"""

    def __init__(self, message: str = "AI call timeout", **kwargs):
        super().__init__(message, error_code="PROVIDER_TIMEOUT", **kwargs)


class ProviderRateLimitError(ProviderError):
    """Raised when the provider answers 429"""

    def __init__(self, message: str = "Provider rate limit hit", **kwargs):
        super().__init__(message, error_code="PROVIDER_RATE_LIMIT", status_code=429, **kwargs)


class MalformedResponseError(ProviderError):
    """Raised when the provider output fails the minimum-shape check"""

    def __init__(self, message: str, operation: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if operation:
            details['operation'] = operation
        super().__init__(message, error_code="MALFORMED_RESPONSE", details=details, **kwargs)


class CacheBackendError(ReferralCoreError):
    """Raised by cache backends; the cache store degrades to a miss"""

    def __init__(self, message: str, operation: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if operation:
            details['operation'] = operation
        super().__init__(message, error_code="CACHE_BACKEND_ERROR", details=details, **kwargs)


# HTTP Exception Mapping
STATUS_CODE_MAPPING = {
    ValidationError: 400,
    ConfigurationError: 500,
    NotFoundError: 404,
    RateLimitExceededError: 429,
    BudgetExceededError: 429,
    ProviderError: 502,
    ProviderTimeoutError: 504,
    ProviderRateLimitError: 502,
    MalformedResponseError: 502,
    CacheBackendError: 500,
}


def map_to_http_exception(exc: ReferralCoreError) -> HTTPException:
    """Map custom exceptions to HTTP exceptions"""
    status_code = STATUS_CODE_MAPPING.get(type(exc), 500)

    detail = {
        "error": exc.to_dict(),
        "message": exc.message
    }

    headers = exc.headers() if isinstance(exc, RateLimitExceededError) else None
    return HTTPException(status_code=status_code, detail=detail, headers=headers)


# Retry decorator with exponential backoff
def retry_with_logging(
    max_attempts: int = 3,
    backoff_factor: float = 1.0,
    exceptions: tuple = (Exception,),
    logger=None,
    jitter: bool = True
):
    """Decorator to retry operations with exponential backoff and logging"""

    def decorator(func):
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if logger:
                        logger.warning(
                            f"Attempt {attempt + 1}/{max_attempts} failed for {func.__name__}: {str(e)}"
                        )
                    if attempt < max_attempts - 1:  # Don't sleep on the last attempt
                        sleep_time = backoff_factor * (2 ** attempt) + (uniform(0, 1) if jitter else 0)
                        await asyncio.sleep(sleep_time)
                    else:
                        if logger:
                            logger.error(f"All {max_attempts} attempts failed for {func.__name__}")
                        raise

        if not inspect.iscoroutinefunction(func):
            raise TypeError("retry_with_logging only wraps coroutine functions")
        return async_wrapper

    return decorator
