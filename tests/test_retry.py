"""Tests for the retry policy."""
import unittest

from paylog.utils.exceptions import PermanentRemoteError, TransientRemoteError
from paylog.utils.retry import RetryPolicy, RetryState


class FlakyOperation:
    """Fails with the given errors in order, then returns 'ok'."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestRetryPolicy(unittest.TestCase):
    """Test RetryPolicy functionality."""

    def setUp(self):
        self.sleeps = []
        self.policy = RetryPolicy(max_attempts=3, initial_delay=1.0, backoff_factor=2.0)

    def test_delays_double(self):
        self.assertEqual([self.policy.delay_for(n) for n in (1, 2, 3)], [1.0, 2.0, 4.0])

    def test_success_after_transient_failures(self):
        operation = FlakyOperation(TransientRemoteError("unavailable"), TransientRemoteError("deadline"))
        state = RetryState()

        result = self.policy.execute(operation, state=state, sleep=self.sleeps.append)

        self.assertEqual(result, "ok")
        self.assertEqual(operation.calls, 3)
        self.assertEqual(self.sleeps, [1.0, 2.0])
        self.assertEqual(state.attempt, 3)
        self.assertFalse(state.gave_up)

    def test_gives_up_after_max_attempts(self):
        operation = FlakyOperation(*[TransientRemoteError("unavailable")] * 5)
        state = RetryState()

        with self.assertRaises(TransientRemoteError):
            self.policy.execute(operation, state=state, sleep=self.sleeps.append)

        self.assertEqual(operation.calls, 3)
        self.assertEqual(self.sleeps, [1.0, 2.0])
        self.assertTrue(state.gave_up)
        self.assertIsInstance(state.last_error, TransientRemoteError)

    def test_permanent_error_is_not_retried(self):
        operation = FlakyOperation(PermanentRemoteError("permission denied"))
        state = RetryState()

        with self.assertRaises(PermanentRemoteError):
            self.policy.execute(operation, state=state, sleep=self.sleeps.append)

        self.assertEqual(operation.calls, 1)
        self.assertEqual(self.sleeps, [])
        self.assertEqual(state.attempt, 1)
        self.assertTrue(state.gave_up)

    def test_custom_retryable_exceptions(self):
        policy = RetryPolicy(max_attempts=2, initial_delay=0.5, retryable_exceptions=(ValueError,))
        operation = FlakyOperation(ValueError("bad"))

        self.assertEqual(policy.execute(operation, sleep=self.sleeps.append), "ok")
        self.assertEqual(self.sleeps, [0.5])


if __name__ == "__main__":
    unittest.main()
