"""
Tests for the per-key commit locks.
"""

import threading
import time
from types import SimpleNamespace

import pytest

from app.utils import locks
from app.utils.locks import KeyLockManager


class _BrokenLock:
    def acquire(self):
        raise RuntimeError("lock unavailable")

    def release(self):
        raise AssertionError("a lock that was never acquired must not be released")


class TestKeyLockManager:

    def test_locks_are_released(self):
        with KeyLockManager.acquire("name:alpha|62701"):
            assert KeyLockManager.active_keys() == ["name:alpha|62701"]
        assert KeyLockManager.active_keys() == []

    def test_released_on_error(self):
        try:
            with KeyLockManager.acquire("name:alpha|62701"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert KeyLockManager.active_keys() == []

    def test_same_key_serializes(self):
        events = []

        def worker(tag):
            with KeyLockManager.acquire("name:alpha|62701"):
                events.append(f"{tag}-in")
                time.sleep(0.05)
                events.append(f"{tag}-out")

        threads = [threading.Thread(target=worker, args=(tag,)) for tag in ("a", "b")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert events in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])

    def test_acquire_many_deduplicates_and_releases(self):
        with KeyLockManager.acquire_many(["k2", "k1", "k2"]):
            assert sorted(KeyLockManager.active_keys()) == ["k1", "k2"]
        assert KeyLockManager.active_keys() == []

    def test_overlapping_batches_do_not_deadlock(self):
        done = []

        def batch(keys):
            for _ in range(20):
                with KeyLockManager.acquire_many(keys):
                    pass
            done.append(keys)

        threads = [
            threading.Thread(target=batch, args=(["k1", "k2", "k3"],)),
            threading.Thread(target=batch, args=(["k3", "k2", "k1"],)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert len(done) == 2

    def test_failed_acquire_checks_key_back_in(self, monkeypatch):
        monkeypatch.setattr(locks, "threading", SimpleNamespace(Lock=_BrokenLock))
        with pytest.raises(RuntimeError):
            with KeyLockManager.acquire("name:alpha|62701"):
                pass
        assert KeyLockManager.active_keys() == []

    def test_failed_acquire_in_batch_releases_earlier_keys(self, monkeypatch):
        real_lock = threading.Lock
        created = []

        def lock_factory():
            created.append(1)
            # Second key in sorted order cannot be taken
            return _BrokenLock() if len(created) == 2 else real_lock()

        monkeypatch.setattr(locks, "threading", SimpleNamespace(Lock=lock_factory))
        with pytest.raises(RuntimeError):
            with KeyLockManager.acquire_many(["k2", "k1", "k3"]):
                pass
        assert KeyLockManager.active_keys() == []

        monkeypatch.undo()
        with KeyLockManager.acquire_many(["k1", "k2"]):
            assert sorted(KeyLockManager.active_keys()) == ["k1", "k2"]
