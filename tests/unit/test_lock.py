# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Unit tests for the advisory locks."""

import json
import os
import threading
from unittest.mock import patch

import pytest

from remote_purge.engine.lock import FileAdvisoryLock, InMemoryAdvisoryLock, LockError


class FakeClock:

    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


# ---------------------------------------------------------------------------
# InMemoryAdvisoryLock
# ---------------------------------------------------------------------------


class TestInMemoryAdvisoryLock:

    def test_second_acquire_fails_while_held(self):
        lock = InMemoryAdvisoryLock(ttl_seconds=60, clock=FakeClock())
        assert lock.acquire() is True
        assert lock.acquire() is False
        assert lock.locked

    def test_release_frees_lock(self):
        lock = InMemoryAdvisoryLock(ttl_seconds=60, clock=FakeClock())
        lock.acquire()
        lock.release()
        assert not lock.locked
        assert lock.acquire() is True

    def test_expired_lease_taken_over(self):
        clock = FakeClock()
        lock = InMemoryAdvisoryLock(ttl_seconds=60, clock=clock)
        lock.acquire()

        clock.now = 61.0
        assert not lock.locked
        assert lock.acquire() is True

    def test_renew_extends_lease(self):
        clock = FakeClock()
        lock = InMemoryAdvisoryLock(ttl_seconds=60, clock=clock)
        lock.acquire()

        clock.now = 50.0
        assert lock.renew() is True
        clock.now = 100.0
        assert lock.locked
        assert lock.acquire() is False

    def test_renew_without_lease_fails(self):
        lock = InMemoryAdvisoryLock(ttl_seconds=60, clock=FakeClock())
        assert lock.renew() is False

    def test_lease_taken_by_other_thread_cannot_be_renewed(self):
        clock = FakeClock()
        lock = InMemoryAdvisoryLock(ttl_seconds=60, clock=clock)
        lock.acquire()
        clock.now = 61.0

        taken = []
        other = threading.Thread(target=lambda: taken.append(lock.acquire()))
        other.start()
        other.join()

        assert taken == [True]
        assert lock.renew() is False
        lock.release()
        assert lock.locked


# ---------------------------------------------------------------------------
# FileAdvisoryLock
# ---------------------------------------------------------------------------


@pytest.fixture
def lock_path(tmp_path):
    return tmp_path / "purge" / "worker.lock"


class TestFileAdvisoryLock:

    def test_acquire_writes_lease(self, lock_path):
        lock = FileAdvisoryLock(str(lock_path), ttl_seconds=60, clock=FakeClock(100.0))

        assert lock.acquire() is True
        lease = json.loads(lock_path.read_text())
        assert lease["pid"] == os.getpid()
        assert lease["acquired_at"] == 100.0
        assert lease["expires_at"] == 160.0
        assert lease["token"]

    def test_exclusive_between_instances(self, lock_path):
        clock = FakeClock()
        first = FileAdvisoryLock(str(lock_path), clock=clock)
        second = FileAdvisoryLock(str(lock_path), clock=clock)

        assert first.acquire() is True
        assert second.acquire() is False
        assert second.locked

        first.release()
        assert not lock_path.exists()
        assert second.acquire() is True

    def test_expired_lease_taken_over(self, lock_path):
        clock = FakeClock()
        first = FileAdvisoryLock(str(lock_path), ttl_seconds=60, clock=clock)
        second = FileAdvisoryLock(str(lock_path), ttl_seconds=60, clock=clock)
        first.acquire()

        clock.now = 60.0
        assert second.acquire() is True

    def test_dead_holder_taken_over(self, lock_path):
        lock_path.parent.mkdir(parents=True)
        lock_path.write_text(json.dumps({
            "pid": 999999, "token": "old", "acquired_at": 0.0, "expires_at": 1e12,
        }))
        lock = FileAdvisoryLock(str(lock_path), clock=FakeClock())

        with patch("remote_purge.engine.lock.psutil.pid_exists", return_value=False):
            assert lock.acquire() is True
        assert json.loads(lock_path.read_text())["token"] != "old"

    def test_live_holder_respected(self, lock_path):
        lock_path.parent.mkdir(parents=True)
        lock_path.write_text(json.dumps({
            "pid": 4242, "token": "other", "acquired_at": 0.0, "expires_at": 1e12,
        }))
        lock = FileAdvisoryLock(str(lock_path), clock=FakeClock())

        with patch("remote_purge.engine.lock.psutil.pid_exists", return_value=True):
            assert lock.acquire() is False

    def test_release_does_not_delete_foreign_lease(self, lock_path):
        clock = FakeClock()
        first = FileAdvisoryLock(str(lock_path), ttl_seconds=60, clock=clock)
        second = FileAdvisoryLock(str(lock_path), ttl_seconds=60, clock=clock)
        first.acquire()
        clock.now = 120.0
        second.acquire()

        first.release()

        assert lock_path.exists()
        assert second.locked

    def test_garbage_lock_file_ages_out_by_mtime(self, lock_path):
        lock_path.parent.mkdir(parents=True)
        lock_path.write_text("{half")
        mtime = lock_path.stat().st_mtime
        clock = FakeClock(mtime + 1)
        lock = FileAdvisoryLock(str(lock_path), ttl_seconds=60, clock=clock)

        assert lock.acquire() is False

        clock.now = mtime + 61
        assert lock.acquire() is True

    def test_create_failure_raises_lock_error(self, lock_path):
        lock = FileAdvisoryLock(str(lock_path), clock=FakeClock())

        with patch("remote_purge.engine.lock.os.open", side_effect=PermissionError("read-only")):
            with pytest.raises(LockError, match="read-only"):
                lock.acquire()

    def test_renew_pushes_expiry_forward(self, lock_path):
        clock = FakeClock(100.0)
        lock = FileAdvisoryLock(str(lock_path), ttl_seconds=60, clock=clock)
        lock.acquire()
        token = json.loads(lock_path.read_text())["token"]

        clock.now = 150.0
        assert lock.renew() is True

        lease = json.loads(lock_path.read_text())
        assert lease["expires_at"] == 210.0
        assert lease["acquired_at"] == 100.0
        assert lease["token"] == token
        assert list(lock_path.parent.glob("*.tmp")) == []

    def test_renewed_lease_not_taken_over(self, lock_path):
        clock = FakeClock()
        first = FileAdvisoryLock(str(lock_path), ttl_seconds=60, clock=clock)
        second = FileAdvisoryLock(str(lock_path), ttl_seconds=60, clock=clock)
        first.acquire()

        clock.now = 40.0
        first.renew()
        clock.now = 80.0
        assert second.acquire() is False

    def test_renew_after_takeover_fails(self, lock_path):
        clock = FakeClock()
        first = FileAdvisoryLock(str(lock_path), ttl_seconds=60, clock=clock)
        second = FileAdvisoryLock(str(lock_path), ttl_seconds=60, clock=clock)
        first.acquire()
        clock.now = 61.0
        second.acquire()

        assert first.renew() is False
        first.release()
        assert second.renew() is True
        assert second.locked

    def test_renew_without_lease_fails(self, lock_path):
        lock = FileAdvisoryLock(str(lock_path), clock=FakeClock())
        assert lock.renew() is False
