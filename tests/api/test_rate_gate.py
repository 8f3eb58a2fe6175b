import asyncio
import time

import pytest

from collie.api.error_handler import (
    AuthError,
    BackendDisabledError,
    BackoffPolicy,
    NetworkError,
    NotFoundError,
    RateLimitedError,
    ScrapeCancelled,
)
from collie.api.rate_gate import RateGate


class RecordingAdapter:
    key = "screenscraper"
    name = "ScreenScraper"

    def __init__(self, outcomes=None, duration=0.0):
        # Consumed in order; a missing outcome means success
        self.outcomes = list(outcomes or [])
        self.duration = duration
        self.calls = 0
        self.starts = []
        self.active = 0
        self.max_active = 0

    async def operation(self, value="ok"):
        self.calls += 1
        self.starts.append(time.monotonic())
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.duration:
                await asyncio.sleep(self.duration)
            if self.outcomes:
                outcome = self.outcomes.pop(0)
                if isinstance(outcome, Exception):
                    raise outcome
            return value
        finally:
            self.active -= 1


FAST_RETRY = BackoffPolicy(max_attempts=3, initial_delay=0.01, multiplier=2.0, max_delay=0.05)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_call_returns_operation_result():
    adapter = RecordingAdapter()
    gate = RateGate(adapter)

    assert await gate.call(adapter.operation, "hello") == "hello"
    assert gate.get_stats()["calls"] == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_requests_are_spaced_by_min_interval():
    adapter = RecordingAdapter()
    spacing = 0.05
    gate = RateGate(adapter, max_concurrent=1, min_interval=spacing)

    await asyncio.gather(*(gate.call(adapter.operation) for _ in range(3)))

    assert adapter.calls == 3
    assert adapter.starts[1] - adapter.starts[0] >= spacing - 0.01
    assert adapter.starts[2] - adapter.starts[0] >= 2 * spacing - 0.01


@pytest.mark.unit
@pytest.mark.asyncio
async def test_concurrency_is_capped():
    adapter = RecordingAdapter(duration=0.02)
    gate = RateGate(adapter, max_concurrent=2)

    await asyncio.gather(*(gate.call(adapter.operation) for _ in range(6)))

    assert adapter.max_active == 2
    assert gate.get_stats()["in_flight"] == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retryable_errors_are_retried():
    adapter = RecordingAdapter(outcomes=[RateLimitedError(), NetworkError("reset")])
    gate = RateGate(adapter, policy=FAST_RETRY)

    assert await gate.call(adapter.operation) == "ok"
    assert adapter.calls == 3
    assert gate.get_stats()["retries"] == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    adapter = RecordingAdapter(outcomes=[NetworkError("1"), NetworkError("2"), NetworkError("3")])
    gate = RateGate(adapter, policy=FAST_RETRY)

    with pytest.raises(NetworkError, match="3"):
        await gate.call(adapter.operation)

    assert adapter.calls == 3
    assert gate.get_stats()["failures"] == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_not_found_is_not_retried():
    adapter = RecordingAdapter(outcomes=[NotFoundError()])
    gate = RateGate(adapter, policy=FAST_RETRY)

    with pytest.raises(NotFoundError):
        await gate.call(adapter.operation)
    assert adapter.calls == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_auth_error_latches_backend_off():
    adapter = RecordingAdapter(outcomes=[AuthError("bad password")])
    gate = RateGate(adapter, policy=FAST_RETRY)

    with pytest.raises(AuthError):
        await gate.call(adapter.operation)

    assert gate.is_disabled
    assert "bad password" in gate.disabled_reason

    started = time.monotonic()
    with pytest.raises(BackendDisabledError):
        await gate.call(adapter.operation)
    assert time.monotonic() - started < 0.01
    assert adapter.calls == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancelled_gate_refuses_calls():
    adapter = RecordingAdapter()
    cancel = asyncio.Event()
    cancel.set()
    gate = RateGate(adapter, cancel_event=cancel)

    with pytest.raises(ScrapeCancelled):
        await gate.call(adapter.operation)
    assert adapter.calls == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_backoff_wait_wakes_on_cancellation():
    adapter = RecordingAdapter(outcomes=[RateLimitedError(retry_after=30)])
    cancel = asyncio.Event()
    gate = RateGate(
        adapter,
        policy=BackoffPolicy(max_attempts=3, initial_delay=30, max_delay=60),
        cancel_event=cancel,
    )

    task = asyncio.create_task(gate.call(adapter.operation))
    await asyncio.sleep(0.02)
    started = time.monotonic()
    cancel.set()

    with pytest.raises(ScrapeCancelled):
        await task
    assert time.monotonic() - started < 1.0
    assert adapter.calls == 1


@pytest.mark.unit
def test_from_config_reads_backend_section():
    adapter = RecordingAdapter()
    gate = RateGate.from_config(
        adapter,
        {"max_concurrent": 3, "min_interval": 0.5, "max_attempts": 5, "initial_delay": 2.0},
    )

    assert gate.max_concurrent == 3
    assert gate.min_interval == 0.5
    assert gate.policy.max_attempts == 5
    assert gate.policy.initial_delay == 2.0
    assert gate.policy.max_delay == 300.0
