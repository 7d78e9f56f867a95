import json
import logging
import multiprocessing
import os
import threading
import time

import pytest

from askcli.core.exceptions import ResourceUnavailableError
from askcli.infrastructure.resilience.file_lock import FileLock
from askcli.infrastructure.resilience.file_rate_limiter import FileRateLimiter


@pytest.fixture
def state_file(tmp_path):
    return tmp_path / "ratelimit" / "test.ratelimit"


@pytest.fixture
def limiter(state_file, fake_clock):
    return FileRateLimiter(state_file, rate=3.0, burst_size=5, clock=fake_clock)


def _write_state(path, **overrides):
    state = {"tokens": 1.0, "last_update_ms": 0, "rate": 3.0, "burst_size": 5, "format_version": 1}
    state.update(overrides)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(state), encoding="utf-8")


def test_burst_then_refill(limiter: FileRateLimiter, fake_clock):
    """5 immediate acquisitions succeed, the 6th fails, one more after ~1/3s."""
    assert all(limiter.try_acquire() for _ in range(5))
    assert limiter.try_acquire() is False

    fake_clock.advance(1 / 3 + 0.01)
    assert limiter.try_acquire() is True
    assert limiter.try_acquire() is False


def test_state_is_shared_between_handles(state_file, fake_clock):
    first = FileRateLimiter(state_file, rate=3.0, burst_size=5, clock=fake_clock)
    second = FileRateLimiter(state_file, rate=3.0, burst_size=5, clock=fake_clock)

    for _ in range(3):
        assert first.try_acquire()
    assert second.get_available_tokens() == pytest.approx(2.0)
    assert second.try_acquire(2)
    assert first.try_acquire() is False


def test_persisted_layout(limiter: FileRateLimiter, state_file, fake_clock):
    limiter.try_acquire()
    data = json.loads(state_file.read_text(encoding="utf-8"))
    assert data["tokens"] == pytest.approx(4.0)
    assert data["last_update_ms"] == int(round(fake_clock.now * 1000))
    assert data["rate"] == 3.0
    assert data["burst_size"] == 5
    assert data["format_version"] == 1


def test_missing_file_counts_as_full_and_is_not_created_by_reads(limiter: FileRateLimiter, state_file):
    assert limiter.get_available_tokens() == 5.0
    assert limiter.available_tokens() == 5.0
    assert not state_file.exists()


@pytest.mark.parametrize("content", ["not json", "[]", '{"tokens": 1}'])
def test_corrupt_state_resets_to_full_bucket(limiter: FileRateLimiter, state_file, content, caplog):
    state_file.parent.mkdir(parents=True, exist_ok=True)
    state_file.write_text(content, encoding="utf-8")
    caplog.set_level(logging.WARNING)

    assert limiter.get_available_tokens() == 5.0
    assert "Corrupt rate limiter state file" in caplog.text


def test_other_format_version_is_treated_as_corrupt(limiter: FileRateLimiter, state_file):
    _write_state(state_file, tokens=0.0, format_version=2)
    assert limiter.get_available_tokens() == 5.0


def test_configured_capacity_overrides_persisted_one(limiter: FileRateLimiter, state_file, fake_clock):
    _write_state(state_file, tokens=10.0, burst_size=10, last_update_ms=int(fake_clock.now * 1000))
    assert limiter.get_available_tokens() == 5.0


def test_refill_from_persisted_timestamp(limiter: FileRateLimiter, state_file, fake_clock):
    _write_state(state_file, tokens=0.0, last_update_ms=int((fake_clock.now - 1.0) * 1000))
    assert limiter.get_available_tokens() == pytest.approx(3.0)


def test_time_until_available(limiter: FileRateLimiter):
    assert limiter.time_until_available() == 0.0
    limiter.try_acquire(5)
    assert limiter.time_until_available(2) == pytest.approx(2 / 3)


def test_reset_writes_empty_bucket(limiter: FileRateLimiter, state_file, fake_clock):
    limiter.reset()
    assert state_file.exists()
    assert limiter.try_acquire() is False
    fake_clock.advance(1.0)
    assert limiter.get_available_tokens() == pytest.approx(3.0)


def test_invalid_requests(limiter: FileRateLimiter, state_file):
    with pytest.raises(ValueError):
        limiter.try_acquire(0)
    with pytest.raises(ValueError):
        limiter.try_acquire(6)
    with pytest.raises(ValueError):
        FileRateLimiter(state_file, rate=0)


def test_lock_timeout_raises_resource_unavailable(state_file):
    limiter = FileRateLimiter(state_file, lock_timeout=0.1)
    with FileLock(limiter.lock_file):
        with pytest.raises(ResourceUnavailableError):
            limiter.try_acquire()
        with pytest.raises(ResourceUnavailableError):
            limiter.get_available_tokens()


def test_acquire_times_out(limiter: FileRateLimiter):
    limiter.try_acquire(5)
    start = time.monotonic()
    assert limiter.acquire(1, max_wait=0.1) is False
    assert time.monotonic() - start < 2.0


def test_acquire_waits_for_refill(state_file):
    limiter = FileRateLimiter(state_file, rate=20.0, burst_size=1)
    assert limiter.try_acquire()
    assert limiter.acquire(1, max_wait=2.0) is True


def test_cleanup_stale_files(tmp_path):
    now = time.time()
    old = now - 2 * 3600
    stale = tmp_path / "old.ratelimit"
    fresh = tmp_path / "new.ratelimit"
    lock = tmp_path / "old.ratelimit.lock"
    unrelated = tmp_path / "notes.txt"
    for path in (stale, fresh, lock, unrelated):
        path.write_text("{}", encoding="utf-8")
    for path in (stale, lock, unrelated):
        os.utime(path, (old, old))

    removed = FileRateLimiter.cleanup_stale_files(tmp_path)

    assert removed == 1
    assert not stale.exists()
    assert fresh.exists()
    assert lock.exists()
    assert unrelated.exists()


def test_cleanup_missing_directory(tmp_path):
    assert FileRateLimiter.cleanup_stale_files(tmp_path / "missing") == 0


def test_concurrent_threads_share_burst(state_file):
    """Independent handles in many threads never hand out more than the burst."""
    results = []
    results_lock = threading.Lock()
    barrier = threading.Barrier(12)

    def worker():
        handle = FileRateLimiter(state_file, rate=0.001, burst_size=5)
        barrier.wait()
        acquired = handle.try_acquire()
        with results_lock:
            results.append(acquired)

    threads = [threading.Thread(target=worker) for _ in range(12)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 5


def _acquire_in_child(state_file, queue):
    limiter = FileRateLimiter(state_file, rate=0.001, burst_size=3)
    queue.put(limiter.try_acquire())


@pytest.mark.skipif(not hasattr(os, "fork"), reason="requires fork")
def test_concurrent_processes_share_burst(state_file):
    ctx = multiprocessing.get_context("fork")
    queue = ctx.Queue()
    processes = [ctx.Process(target=_acquire_in_child, args=(state_file, queue)) for _ in range(8)]
    for p in processes:
        p.start()
    results = [queue.get(timeout=30) for _ in processes]
    for p in processes:
        p.join(timeout=30)

    assert results.count(True) == 3
    assert results.count(False) == 5


def test_acquire_without_deadline_waits_for_other_thread(limiter: FileRateLimiter, fake_clock):
    """max_wait=0 keeps polling the shared state until tokens appear."""
    limiter.try_acquire(5)
    results = []

    waiter = threading.Thread(target=lambda: results.append(limiter.acquire(1, max_wait=0)))
    waiter.start()
    time.sleep(0.2)
    assert waiter.is_alive()

    fake_clock.advance(1.0)
    waiter.join(timeout=5.0)

    assert not waiter.is_alive()
    assert results == [True]


def test_unwritable_state_raises_resource_unavailable(state_file):
    state_file.mkdir(parents=True)
    limiter = FileRateLimiter(state_file)

    with pytest.raises(ResourceUnavailableError) as exc_info:
        limiter.try_acquire()
    assert isinstance(exc_info.value.__cause__, OSError)

    with pytest.raises(ResourceUnavailableError):
        limiter.reset()


def test_unopenable_lock_file_raises_resource_unavailable(state_file):
    limiter = FileRateLimiter(state_file)
    limiter.lock_file.mkdir()

    with pytest.raises(ResourceUnavailableError) as exc_info:
        limiter.get_available_tokens()
    assert isinstance(exc_info.value.__cause__, OSError)
