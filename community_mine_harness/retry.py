"""
Retry Policy

Bounded retry with exponential backoff for the environment bootstrap. Every
attempt reruns the whole sequence; there is no partial recovery.
"""

import time
import traceback
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar

import requests
from web3.exceptions import (
    ContractLogicError,
    ProviderConnectionError,
    TimeExhausted,
    Web3RPCError,
)

from .errors import ForkError, RetryExhaustedError

T = TypeVar('T')

RETRYABLE_ERRORS: Tuple[Type[BaseException], ...] = (
    ForkError,
    ProviderConnectionError,
    TimeExhausted,
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    ConnectionError,
    TimeoutError,
)

# Fragments of node RPC errors raised when the fork cannot reach its upstream
UPSTREAM_FAILURE_MARKERS = (
    'error sending request',
    '429',
    'too many requests',
    'rate limit',
    'timed out',
    'timeout',
    'failed to get account',
    'failed to get storage',
    'connection',
)


def is_upstream_failure(exc: BaseException) -> bool:
    """RPC error from the node that stems from fetching upstream state"""
    if not isinstance(exc, Web3RPCError) or isinstance(exc, ContractLogicError):
        return False
    message = str(exc).lower()
    return any(marker in message for marker in UPSTREAM_FAILURE_MARKERS)


def is_retryable(exc: BaseException) -> bool:
    """Network and node failures are retryable; configuration and contract errors are not"""
    return isinstance(exc, RETRYABLE_ERRORS) or is_upstream_failure(exc)


@dataclass
class RetryPolicy:
    """
    Args:
        max_attempts: Attempt limit, None retries forever
        backoff: Delay before the second attempt (seconds)
        multiplier: Delay growth per attempt
        max_backoff: Delay ceiling
        classifier: Decides whether an exception is worth another attempt
    """
    max_attempts: Optional[int] = 5
    backoff: float = 1.0
    multiplier: float = 2.0
    max_backoff: float = 30.0
    classifier: Callable[[BaseException], bool] = is_retryable

    def delay(self, attempt: int) -> float:
        """Sleep before attempt number `attempt + 1` (1-based attempt)"""
        return min(self.backoff * self.multiplier ** (attempt - 1), self.max_backoff)


# Legacy behaviour: retry everything, forever, immediately
UNBOUNDED = RetryPolicy(max_attempts=None, backoff=0.0, classifier=lambda exc: True)


def run_with_retry(fn: Callable[[], T], policy: Optional[RetryPolicy] = None,
                   sleep: Callable[[float], None] = time.sleep) -> T:
    """
    Call `fn` until it succeeds

    Raises:
        The failing exception itself when the classifier marks it fatal
        RetryExhaustedError: max_attempts reached
    """
    policy = policy or RetryPolicy()
    attempt = 0

    while True:
        attempt += 1
        try:
            return fn()
        except Exception as e:
            if not policy.classifier(e):
                print(f"❌ Fatal error on attempt {attempt}: {type(e).__name__}: {e}")
                raise

            traceback.print_exc()
            if policy.max_attempts is not None and attempt >= policy.max_attempts:
                raise RetryExhaustedError(attempt, e) from e

            delay = policy.delay(attempt)
            print(f"🔄 Attempt {attempt} failed ({type(e).__name__}: {e}), trying again in {delay:.1f}s...")
            if delay > 0:
                sleep(delay)
