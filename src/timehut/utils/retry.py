# retry.py - Retry decorator with exponential backoff
import logging
import time
from collections.abc import Callable
from functools import wraps
from typing import TypeVar

import requests

T = TypeVar("T")

logger = logging.getLogger(__name__)


class RetryConfig:
    """Configuration for retry behavior"""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        retryable_status_codes: tuple[int, ...] = (429, 500, 502, 503, 504),
        retry_on: tuple[type[BaseException], ...] = (),
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.retryable_status_codes = retryable_status_codes
        self.retry_on = retry_on

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (self.exponential_base**attempt), self.max_delay)

    def is_retryable(self, exc: BaseException) -> bool:
        if isinstance(exc, requests.HTTPError):
            return (
                exc.response is not None
                and exc.response.status_code in self.retryable_status_codes
            )
        if isinstance(exc, requests.RequestException):
            return True
        return bool(self.retry_on) and isinstance(exc, self.retry_on)


def with_retry(config: RetryConfig | None = None):
    """
    Decorator for retry with exponential backoff.

    Retries on:
    - requests.HTTPError with retryable status codes (429, 5xx by default)
    - requests.RequestException (network errors, timeouts)
    - any exception type listed in config.retry_on

    Example:
        @with_retry(RetryConfig(max_retries=3))
        def get_sizes(photo_id):
            response = requests.get(url, params={"photo_id": photo_id})
            response.raise_for_status()
            return response.json()
    """
    if config is None:
        config = RetryConfig()

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            for attempt in range(config.max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if not config.is_retryable(e) or attempt >= config.max_retries:
                        raise
                    delay = config.delay_for(attempt)
                    if isinstance(e, requests.HTTPError):
                        reason = f"HTTP {e.response.status_code}"
                    else:
                        reason = f"{type(e).__name__}: {e}"
                    logger.warning(
                        f"{func.__name__}: Retry {attempt + 1}/{config.max_retries} "
                        f"after {delay:.1f}s ({reason})"
                    )
                    time.sleep(delay)
            raise RuntimeError("Retry logic error")

        return wrapper

    return decorator
