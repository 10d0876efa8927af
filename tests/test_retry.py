"""
Tests for retry with exponential backoff.

Sleep is injected, so no test actually waits.
"""

import pytest

from beanpod.errors import CLINotFoundError, CLITimeoutError, CommandError, ParseError
from beanpod.services.retry import with_retry


class FlakyCall:
    """Raises the scripted errors in order, then returns `result`."""

    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class TestRetry:

    def test_success_first_try_does_not_sleep(self):
        sleeps = []
        call = FlakyCall([])
        assert with_retry(call, sleep=sleeps.append) == "ok"
        assert call.calls == 1
        assert sleeps == []

    def test_timeouts_are_retried_with_doubling_delay(self):
        sleeps = []
        call = FlakyCall([CLITimeoutError(), CLITimeoutError()])

        assert with_retry(call, max_retries=3, base_delay=0.1, sleep=sleeps.append) == "ok"
        assert call.calls == 3
        assert sleeps == pytest.approx([0.1, 0.2])

    def test_exhausted_retries_raise_last_error(self):
        sleeps = []
        errors = [CLITimeoutError(f"attempt {i}") for i in range(4)]
        call = FlakyCall(errors)

        with pytest.raises(CLITimeoutError, match="attempt 3"):
            with_retry(call, max_retries=3, base_delay=0.1, sleep=sleeps.append)

        assert call.calls == 4
        assert sleeps == pytest.approx([0.1, 0.2, 0.4])

    def test_zero_retries_means_one_attempt(self):
        call = FlakyCall([CLITimeoutError()])
        with pytest.raises(CLITimeoutError):
            with_retry(call, max_retries=0, sleep=lambda _: None)
        assert call.calls == 1


class TestNoRetry:
    """Errors that fail on the first attempt."""

    @pytest.mark.parametrize("error", [
        CLINotFoundError(),
        ParseError("bad json", output="{"),
        CommandError("exit 1", returncode=1),
        RuntimeError("unexpected"),
    ])
    def test_non_transient_errors_are_not_retried(self, error):
        sleeps = []
        call = FlakyCall([error])

        with pytest.raises(type(error)):
            with_retry(call, sleep=sleeps.append)

        assert call.calls == 1
        assert sleeps == []
