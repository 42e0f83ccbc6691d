"""Unit tests for the bounded retry policy."""

import pytest

from edm_registry.domain.guardrails import RetryConfig, RetryPolicy
from edm_registry.domain.ports import ConcurrencyConflict, RelationshipViolation, StoreUnavailable


def policy(max_attempts=3):
    return RetryPolicy(RetryConfig(max_attempts=max_attempts, min_wait=0, max_wait=0))


class Flaky:
    """Callable that raises the given errors in turn, then returns 'ok'."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestRetryPolicy:
    """Test suite for RetryPolicy."""

    def test_success_first_time(self):
        """Test that a successful call is not retried."""
        retry = policy()
        fn = Flaky()

        assert retry.call(fn) == "ok"
        assert fn.calls == 1
        assert retry.get_statistics()["retries"] == 0

    def test_conflict_is_retried(self):
        """Test that ConcurrencyConflict and StoreUnavailable are retried."""
        retry = policy()
        fn = Flaky(ConcurrencyConflict("lost race"), StoreUnavailable("blip"))

        assert retry.call(fn) == "ok"
        assert fn.calls == 3
        assert retry.get_statistics()["retries"] == 2

    def test_exhausted_attempts_reraise(self):
        """Test that the last retryable error surfaces when attempts run out."""
        retry = policy(max_attempts=2)
        fn = Flaky(ConcurrencyConflict("one"), ConcurrencyConflict("two"), ConcurrencyConflict("three"))

        with pytest.raises(ConcurrencyConflict, match="two"):
            retry.call(fn)

        assert fn.calls == 2
        assert retry.get_statistics() == {"max_attempts": 2, "retries": 1, "exhausted": 1}

    def test_violations_are_not_retried(self):
        """Test that non-retryable registry errors propagate immediately."""
        retry = policy()
        fn = Flaky(RelationshipViolation("dangling", entity="Org", rule="fk_exists"))

        with pytest.raises(RelationshipViolation):
            retry.call(fn)

        assert fn.calls == 1
        assert retry.get_statistics()["exhausted"] == 0

    def test_stale_caller_revision_is_not_retried(self):
        """Test that a conflict marked non-retryable fails on the first attempt."""
        retry = policy()
        fn = Flaky(ConcurrencyConflict("stale", expected_revision=0, actual_revision=1, retryable=False))

        with pytest.raises(ConcurrencyConflict, match="stale"):
            retry.call(fn)

        assert fn.calls == 1
        assert retry.get_statistics() == {"max_attempts": 3, "retries": 0, "exhausted": 0}

    def test_arguments_are_passed_through(self):
        """Test that call forwards positional and keyword arguments."""
        assert policy().call(lambda a, b=0: a + b, 2, b=3) == 5

    def test_retryable_flags(self):
        """Test the retryable marker on the error taxonomy."""
        assert ConcurrencyConflict("x").retryable
        assert StoreUnavailable("x").retryable
        assert not RelationshipViolation("x", entity="Org", rule="fk_exists").retryable
