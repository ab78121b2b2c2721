"""Unit tests for the in-memory window counter store."""

import asyncio
import threading

import pytest

from windowlimit.adapters.rate_limit.in_memory import InMemoryWindowCounter
from windowlimit.core.errors import ValidationAppError


@pytest.mark.asyncio
async def test_admits_up_to_max_count_then_rejects(counter, clock) -> None:
    counts = []
    for _ in range(5):
        result = await counter.try_acquire("k", 5, 10)
        assert result.admitted is True
        counts.append(result.count)
        clock.advance(0.1)

    assert counts == [1, 2, 3, 4, 5]

    sixth = await counter.try_acquire("k", 5, 10)
    assert sixth.admitted is False
    assert sixth.count == 5
    assert sixth.remaining == 0


@pytest.mark.asyncio
async def test_admits_again_after_window_expires(counter, clock) -> None:
    for _ in range(5):
        await counter.try_acquire("k", 5, 10)
    assert (await counter.try_acquire("k", 5, 10)).admitted is False

    clock.advance(11)

    result = await counter.try_acquire("k", 5, 10)
    assert result.admitted is True
    assert result.count == 1


@pytest.mark.asyncio
async def test_rejection_does_not_mutate_count(counter) -> None:
    await counter.try_acquire("k", 1, 10)

    first = await counter.try_acquire("k", 1, 10)
    second = await counter.try_acquire("k", 1, 10)

    assert first.admitted is False
    assert second.admitted is False
    assert first.count == second.count == 1
    assert counter.peek("k") == 1


@pytest.mark.asyncio
async def test_rejection_does_not_extend_window(counter, clock) -> None:
    await counter.try_acquire("k", 1, 10)

    clock.advance(9)
    assert (await counter.try_acquire("k", 1, 10)).admitted is False

    clock.advance(1)
    assert (await counter.try_acquire("k", 1, 10)).admitted is True


@pytest.mark.asyncio
async def test_admitted_call_refreshes_expiry(counter, clock) -> None:
    await counter.try_acquire("k", 10, 10)
    clock.advance(8)
    await counter.try_acquire("k", 10, 10)

    # 9.9s after the second call, 17.9s after the first: still the same record
    clock.advance(9.9)
    assert counter.peek("k") == 2
    result = await counter.try_acquire("k", 10, 10)
    assert result.count == 3


@pytest.mark.asyncio
async def test_record_expires_exactly_window_after_last_admit(counter, clock) -> None:
    await counter.try_acquire("k", 10, 10)
    clock.advance(10)

    assert counter.peek("k") == 0


@pytest.mark.asyncio
async def test_retry_after_reports_remaining_window(counter, clock) -> None:
    await counter.try_acquire("k", 1, 10)
    clock.advance(3.5)

    result = await counter.try_acquire("k", 1, 10)

    assert result.admitted is False
    assert result.retry_after_seconds == 7


@pytest.mark.asyncio
async def test_keys_are_isolated(counter) -> None:
    assert (await counter.try_acquire("k1", 1, 60)).admitted is True
    assert (await counter.try_acquire("k1", 1, 60)).admitted is False

    assert (await counter.try_acquire("k2", 1, 60)).admitted is True


@pytest.mark.asyncio
async def test_concurrent_tasks_never_exceed_max_count(counter) -> None:
    results = await asyncio.gather(*(counter.try_acquire("hot", 7, 60) for _ in range(50)))

    admitted = [r for r in results if r.admitted]
    rejected = [r for r in results if not r.admitted]
    assert len(admitted) == 7
    assert len(rejected) == 43
    assert sorted(r.count for r in admitted) == list(range(1, 8))
    assert all(r.count == 7 for r in rejected)


def test_concurrent_threads_never_exceed_max_count() -> None:
    counter = InMemoryWindowCounter()
    max_count = 25
    admitted: list[int] = []
    admitted_lock = threading.Lock()
    start = threading.Barrier(20)

    def _worker() -> None:
        start.wait()
        for _ in range(10):
            result = asyncio.run(counter.try_acquire("shared", max_count, 60))
            if result.admitted:
                with admitted_lock:
                    admitted.append(result.count)

    threads = [threading.Thread(target=_worker) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(admitted) == list(range(1, max_count + 1))
    assert counter.peek("shared") == max_count


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "key,max_count,window_seconds",
    [
        ("", 1, 60),
        ("k", 0, 60),
        ("k", 1, 0),
    ],
)
async def test_invalid_arguments_rejected(counter, key, max_count, window_seconds) -> None:
    with pytest.raises(ValidationAppError):
        await counter.try_acquire(key, max_count, window_seconds)


@pytest.mark.asyncio
async def test_ping_and_close(counter) -> None:
    await counter.try_acquire("k", 5, 60)

    assert await counter.ping() is True
    await counter.close()

    assert counter.peek("k") == 0


@pytest.mark.asyncio
async def test_expired_records_of_idle_keys_are_swept(counter, clock) -> None:
    for i in range(1_000):
        await counter.try_acquire(f"caller-{i}", 5, 1)
    assert len(counter._records) == 1_000

    clock.advance(3_600)
    await counter.try_acquire("newcomer", 5, 1)

    assert list(counter._records) == ["newcomer"]


@pytest.mark.asyncio
async def test_sweep_runs_at_most_once_per_interval(clock) -> None:
    counter = InMemoryWindowCounter(clock=clock, sweep_interval_seconds=5)
    clock.advance(5)
    await counter.try_acquire("a", 5, 1)

    clock.advance(2)
    await counter.try_acquire("b", 5, 1)
    assert "a" in counter._records

    clock.advance(3)
    await counter.try_acquire("c", 5, 1)
    assert "a" not in counter._records
    assert "b" not in counter._records
