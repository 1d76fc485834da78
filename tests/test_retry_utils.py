from __future__ import annotations

import pytest

from grant_sync.core.backoff import backoff_delay
from grant_sync.utils.retry_utils import RetryPolicy
from tests.conftest import RecordingSleep


class _Transient(Exception):
    pass


class _Permanent(Exception):
    pass


def _flaky(failures: int, result: str = "done"):
    calls = {"count": 0}

    async def _call() -> str:
        calls["count"] += 1
        if calls["count"] <= failures:
            raise _Transient(f"attempt {calls['count']}")
        return result

    return _call, calls


def test_backoff_delay_doubles_and_caps() -> None:
    assert [backoff_delay(n, base_delay=2.0) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]
    assert backoff_delay(10, base_delay=2.0, max_delay=60.0) == 60.0


def test_backoff_delay_jitter_stays_in_range() -> None:
    for _ in range(20):
        delay = backoff_delay(1, base_delay=1.0, jitter=0.25)
        assert 0.75 <= delay <= 1.25


def test_rejects_zero_attempts() -> None:
    with pytest.raises(ValueError, match="max_attempts"):
        RetryPolicy(max_attempts=0)


def test_delay_hint_overrides_backoff() -> None:
    policy = RetryPolicy(base_delay=2.0, delay_hint=lambda exc: 7.0)
    assert policy.compute_delay(1, _Transient()) == 7.0
    assert policy.compute_delay(2) == 4.0


@pytest.mark.asyncio
async def test_succeeds_after_transient_failures(recording_sleep: RecordingSleep) -> None:
    func, calls = _flaky(2)
    policy = RetryPolicy(max_attempts=3, base_delay=0.2, sleep=recording_sleep)

    assert await policy.run(func) == "done"
    assert calls["count"] == 3
    assert recording_sleep.delays == pytest.approx([0.2, 0.4])


@pytest.mark.asyncio
async def test_reraises_last_error_when_exhausted(recording_sleep: RecordingSleep) -> None:
    func, calls = _flaky(10)
    policy = RetryPolicy(max_attempts=3, base_delay=0.2, sleep=recording_sleep)

    with pytest.raises(_Transient, match="attempt 3"):
        await policy.run(func)
    assert calls["count"] == 3
    assert len(recording_sleep.delays) == 2


@pytest.mark.asyncio
async def test_non_retryable_error_is_raised_immediately(
    recording_sleep: RecordingSleep,
) -> None:
    calls = 0

    async def _broken() -> None:
        nonlocal calls
        calls += 1
        raise _Permanent("bad credentials")

    policy = RetryPolicy(
        max_attempts=5,
        retryable=lambda exc: not isinstance(exc, _Permanent),
        sleep=recording_sleep,
    )

    with pytest.raises(_Permanent):
        await policy.run(_broken)
    assert calls == 1
    assert recording_sleep.delays == []
