"""Domain Guardrails - Bounded Retry for Conflicting Writes.

Cross-record invariants are protected by serialised write transactions and
optimistic revision checks. A write that loses a race surfaces
ConcurrencyConflict; a flaky store surfaces StoreUnavailable. Both are
retried here a bounded number of times with exponential backoff before the
error reaches the caller. Structural and relationship violations are never
retried: the input has to be corrected first.

Architecture:
    - Built on tenacity; no infrastructure dependencies
    - Thread-safe counters for observability of retry pressure
"""

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Optional, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from edm_registry.domain.ports import ConcurrencyConflict, StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar('T')

RETRYABLE_ERRORS = (ConcurrencyConflict, StoreUnavailable)


def _should_retry(error: BaseException) -> bool:
    return isinstance(error, RETRYABLE_ERRORS) and error.retryable


@dataclass
class RetryConfig:
    """Configuration for RetryPolicy.

    Attributes:
        max_attempts: Total attempts including the first one
        min_wait: Lower bound of the backoff in seconds
        max_wait: Upper bound of the backoff in seconds
    """
    max_attempts: int = 3
    min_wait: float = 0.05
    max_wait: float = 1.0


class RetryPolicy:
    """Runs a unit of work, retrying only retryable registry errors.

    Example Usage:
        ```python
        policy = RetryPolicy(RetryConfig(max_attempts=5))
        org = policy.call(lambda: storage.get("Org", org_id))
        ```
    """

    def __init__(self, config: Optional[RetryConfig] = None):
        self.config = config or RetryConfig()
        self._lock = Lock()
        self._retries = 0
        self._exhausted = 0

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(max(1, self.config.max_attempts)),
            wait=wait_exponential(multiplier=self.config.min_wait, min=self.config.min_wait, max=self.config.max_wait),
            retry=retry_if_exception(_should_retry),
            before_sleep=self._before_sleep,
            reraise=True,
        )

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        with self._lock:
            self._retries += 1
        before_sleep_log(logger, logging.WARNING)(retry_state)

    def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        """Call ``fn`` until it succeeds, fails for good, or attempts run out.

        Raises:
            ConcurrencyConflict | StoreUnavailable: When attempts are exhausted
            RegistryError: Any non-retryable error, immediately
        """
        try:
            return self._retrying()(fn, *args, **kwargs)
        except RETRYABLE_ERRORS as e:
            if not e.retryable:
                raise
            with self._lock:
                self._exhausted += 1
            logger.error(f"Giving up after {self.config.max_attempts} attempts: {e}")
            raise

    def get_statistics(self) -> dict:
        with self._lock:
            return {
                "max_attempts": self.config.max_attempts,
                "retries": self._retries,
                "exhausted": self._exhausted,
            }
