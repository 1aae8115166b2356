"""Unit tests for the bounded retry wrapper."""

import pytest

from label_review.utils.retry import with_retry


class Flaky:
    def __init__(self, failures: int, result="ok"):
        self.failures = failures
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"failure {self.calls}")
        return self.result


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_success_first_try_does_not_sleep(self, sleep):
        op = Flaky(failures=0)
        result = await with_retry(3, 1.0, sleep=sleep)(op)()
        assert result == "ok"
        assert op.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self, sleep):
        op = Flaky(failures=2, result={"value": 42})
        result = await with_retry(3, 1.0, sleep=sleep)(op)()
        assert result == {"value": 42}
        assert op.calls == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhaustion_reraises_last_error(self, sleep):
        op = Flaky(failures=10)
        with pytest.raises(RuntimeError, match="failure 3"):
            await with_retry(3, 1.0, sleep=sleep)(op)()
        assert op.calls == 3
        # No delay after the final attempt
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_backoff_doubles_from_base_delay(self, sleep):
        op = Flaky(failures=10)
        with pytest.raises(RuntimeError):
            await with_retry(4, 2.0, sleep=sleep)(op)()
        assert sleep.delays == [2.0, 4.0, 8.0]

    @pytest.mark.asyncio
    async def test_logs_a_warning_per_failed_attempt(self, sleep, caplog):
        op = Flaky(failures=10)
        with caplog.at_level("WARNING", logger="label_review.utils.retry"):
            with pytest.raises(RuntimeError):
                await with_retry(3, 1.0, sleep=sleep)(op)()
        messages = [r.getMessage() for r in caplog.records if r.name == "label_review.utils.retry"]
        assert messages == [
            "Attempt 1/3 failed: failure 1",
            "Attempt 2/3 failed: failure 2",
            "Attempt 3/3 failed: failure 3",
        ]

    @pytest.mark.asyncio
    async def test_passes_arguments_through(self, sleep):
        async def add(a, b=0):
            return a + b

        assert await with_retry(3, 1.0, sleep=sleep)(add)(2, b=3) == 5

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            with_retry(0, 1.0)
