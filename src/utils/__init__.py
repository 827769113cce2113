"""Shared utilities for configuration, logging, formatting and error handling"""

from src.utils.retry import exponential_backoff_retry

__all__ = ["exponential_backoff_retry"]
