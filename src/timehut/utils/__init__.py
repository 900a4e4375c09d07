"""
Utility functions and helpers.
"""

from timehut.utils.retry import RetryConfig, with_retry

__all__ = [
    "RetryConfig",
    "with_retry",
]
