# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Advisory locks with a short lease, used to serialize worker runs.

Two flavours share the ``acquire() -> bool`` / ``renew() -> bool`` /
``release()`` interface:

- :class:`FileAdvisoryLock`: a lock file created with ``O_EXCL`` holding the
  owner PID and lease expiry.  Works across processes on one host (or on a
  shared filesystem with sane ``O_EXCL`` semantics).  Expired leases and
  leases whose owner process is gone are taken over.
- :class:`InMemoryAdvisoryLock`: a flag with expiry for single-process
  deployments and tests.

Acquisition never blocks: a busy lock means "someone else is running".
A holder working longer than one lease calls ``renew()`` to push the expiry
forward; ``renew()`` returns False once the lease has been taken over.
"""

import json
import os
import threading
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import psutil

from remote_purge.utils.logger import get_logger

logger = get_logger()


class LockError(Exception):
    """Lock file could not be read or written for reasons other than contention."""
    pass


class LeaseLostError(LockError):
    """The lease expired and another holder took the lock over mid-run."""
    pass


class InMemoryAdvisoryLock:
    """Process-local TTL flag owned by the thread that acquired it."""

    def __init__(self, ttl_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._guard = threading.Lock()
        self._expires_at: Optional[float] = None
        self._owner: Optional[int] = None

    def acquire(self) -> bool:
        with self._guard:
            now = self._clock()
            if self._expires_at is not None and now < self._expires_at:
                return False
            if self._expires_at is not None:
                logger.warning("Purge lock lease expired, taking over")
            self._expires_at = now + self.ttl_seconds
            self._owner = threading.get_ident()
            return True

    def renew(self) -> bool:
        """Extend the lease by a full TTL.  False if the caller no longer owns it."""
        with self._guard:
            if self._expires_at is None or self._owner != threading.get_ident():
                return False
            self._expires_at = self._clock() + self.ttl_seconds
            return True

    def release(self) -> None:
        with self._guard:
            if self._owner is not None and self._owner != threading.get_ident():
                logger.warning("Purge lock was taken over before release")
                return
            self._expires_at = None
            self._owner = None

    @property
    def locked(self) -> bool:
        with self._guard:
            return self._expires_at is not None and self._clock() < self._expires_at


class FileAdvisoryLock:
    """Lease-based lock file shared by every process using the same path."""

    def __init__(
        self,
        path: str = "data/purge/worker.lock",
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        self.path = Path(path)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._token: Optional[str] = None

    def acquire(self) -> bool:
        """Try to take the lease.  Returns False if another holder owns it."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        if self._try_create():
            return True

        holder = self._read_holder()
        if holder is not None and not self._is_stale(holder):
            return False

        logger.warning(f"Taking over stale purge lock {self.path} (holder: {holder})")
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        return self._try_create()

    def renew(self) -> bool:
        """Push ``expires_at`` a full TTL forward.

        Returns False when this instance holds no lease or another process
        has already taken the lock over.
        """
        if self._token is None:
            return False
        holder = self._read_holder()
        if holder is None or holder.get("token") != self._token:
            logger.warning(f"Purge lock {self.path} lost to another holder")
            self._token = None
            return False

        now = self._clock()
        payload = dict(holder, expires_at=now + self.ttl_seconds)
        tmp = self.path.with_name(f"{self.path.name}.{self._token}.tmp")
        try:
            tmp.write_text(json.dumps(payload))
            os.replace(tmp, self.path)
        except OSError as e:
            raise LockError(f"Cannot renew lock file {self.path}: {e}") from e
        return True

    def release(self) -> None:
        """Drop the lease if this instance still owns it."""
        if self._token is None:
            return
        holder = self._read_holder()
        if holder is not None and holder.get("token") == self._token:
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
        else:
            logger.warning(f"Purge lock {self.path} was taken over before release")
        self._token = None

    @property
    def locked(self) -> bool:
        holder = self._read_holder()
        return holder is not None and not self._is_stale(holder)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _try_create(self) -> bool:
        token = uuid.uuid4().hex
        now = self._clock()
        payload = {
            "pid": os.getpid(),
            "token": token,
            "acquired_at": now,
            "expires_at": now + self.ttl_seconds,
        }
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        except OSError as e:
            raise LockError(f"Cannot create lock file {self.path}: {e}") from e
        with os.fdopen(fd, "w") as f:
            json.dump(payload, f)
        self._token = token
        return True

    def _read_holder(self) -> Optional[Dict[str, Any]]:
        try:
            data = json.loads(self.path.read_text())
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, OSError):
            # Half-written or garbage lock file; staleness falls back to mtime
            return {}
        return data if isinstance(data, dict) else {}

    def _is_stale(self, holder: Dict[str, Any]) -> bool:
        expires_at = holder.get("expires_at")
        if not isinstance(expires_at, (int, float)):
            try:
                expires_at = self.path.stat().st_mtime + self.ttl_seconds
            except FileNotFoundError:
                return True
        if self._clock() >= expires_at:
            return True
        pid = holder.get("pid")
        if isinstance(pid, int) and pid > 0 and not psutil.pid_exists(pid):
            return True
        return False
