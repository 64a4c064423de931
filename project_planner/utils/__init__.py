"""Utility functions for the planner."""

from project_planner.utils.retry import RetryConfig, RetryExecutor, is_retryable

__all__ = ["RetryConfig", "RetryExecutor", "is_retryable"]
