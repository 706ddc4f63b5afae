"""Tests for scoped mutual exclusion."""

import threading

import pytest

from resguard.execution.locking import KeyedLocks, locked, run_locked


class CountingLock:
    """Lock wrapper that counts acquire/release calls."""

    def __init__(self):
        self._lock = threading.Lock()
        self.acquires = 0
        self.releases = 0

    def acquire(self, blocking=True, timeout=-1):
        self.acquires += 1
        return self._lock.acquire(blocking, timeout)

    def release(self):
        self.releases += 1
        self._lock.release()

    def locked(self):
        return self._lock.locked()


class TestRunLocked:
    def test_returns_action_result(self):
        lock = CountingLock()
        assert run_locked(lock, lambda a, b=0: a + b, 2, b=3) == 5
        assert (lock.acquires, lock.releases) == (1, 1)

    def test_releases_on_error(self):
        lock = CountingLock()

        def fail():
            assert lock.locked()
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            run_locked(lock, fail)
        assert lock.releases == 1
        assert not lock.locked()

    def test_mutual_exclusion(self):
        lock = threading.Lock()
        state = {"n": 0}

        def increment():
            current = state["n"]
            state["n"] = current + 1

        def worker():
            for _ in range(1000):
                run_locked(lock, increment)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert state["n"] == 4000


class TestLocked:
    def test_context_manager_releases_on_error(self):
        lock = CountingLock()
        with pytest.raises(ValueError):
            with locked(lock, "test"):
                raise ValueError("x")
        assert not lock.locked()


class TestKeyedLocks:
    def test_same_key_same_lock(self):
        locks = KeyedLocks()
        assert locks.get("tenant:1") is locks.get("tenant:1")
        assert locks.get("tenant:1") is not locks.get("tenant:2")
        assert len(locks) == 2

    def test_hold_and_run(self):
        locks = KeyedLocks()
        with locks.hold("upload:a") as lock:
            assert lock.locked()
        assert not locks.get("upload:a").locked()
        assert locks.run("upload:a", lambda: "done") == "done"

    def test_discard(self):
        locks = KeyedLocks()
        locks.get("a")
        locks.discard("a")
        locks.discard("missing")
        assert len(locks) == 0

    def test_custom_factory(self):
        locks = KeyedLocks(factory=threading.RLock)
        with locks.hold("k"):
            with locks.hold("k"):
                pass
