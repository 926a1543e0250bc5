"""
Reliability module: Fixed-interval retry.
"""

from coordmesh.reliability.retry import RetryPolicy, RetryFailure, call_with_retry

__all__ = [
    "RetryPolicy",
    "RetryFailure",
    "call_with_retry",
]
