# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Persistence for the singleton SLA metrics snapshot."""

import json
import os
import threading
from pathlib import Path
from typing import Optional

from remote_purge.metrics.state import SNAPSHOT_VERSION, MetricsSnapshot
from remote_purge.utils.logger import get_logger

logger = get_logger()


class SnapshotStore:
    """Read/write the metrics snapshot as one versioned JSON document.

    Reads are cached in memory until the next ``save``; the file is the
    source of truth across processes, so ``load(refresh=True)`` re-reads it.
    """

    def __init__(self, path: str = "data/purge/metrics_snapshot.json"):
        self.path = Path(path)
        self._cached: Optional[MetricsSnapshot] = None
        self._lock = threading.Lock()

    def load(self, refresh: bool = False) -> Optional[MetricsSnapshot]:
        """Return the stored snapshot, or None if none was written yet."""
        with self._lock:
            if self._cached is not None and not refresh:
                return self._cached

            if not self.path.exists():
                return None

            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError) as e:
                logger.warning(f"Unreadable metrics snapshot {self.path}, starting fresh: {e}")
                return None

            snapshot = MetricsSnapshot.from_dict(data)
            if snapshot.version > SNAPSHOT_VERSION:
                logger.warning(
                    f"Metrics snapshot version {snapshot.version} is newer than "
                    f"supported {SNAPSHOT_VERSION}; reading known fields only"
                )
            self._cached = snapshot
            return snapshot

    def save(self, snapshot: MetricsSnapshot) -> Path:
        """Write *snapshot* atomically and refresh the cache."""
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_name(f".{self.path.name}.{os.getpid()}.tmp")
            snapshot.version = SNAPSHOT_VERSION
            tmp_path.write_text(json.dumps(snapshot.to_dict(), indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
            self._cached = snapshot
        logger.debug(f"Metrics snapshot written to {self.path}")
        return self.path
