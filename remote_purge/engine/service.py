# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Service facade wiring configuration to the purge engine.

Builds the queue store, destination registry, advisory lock, history sink,
event emitter, snapshot store, worker and scheduler from one merged config
dict, and exposes the handful of operations callers need.
"""

import time
from typing import Any, Callable, Dict, List, Optional

from remote_purge.destinations.registry import DestinationRegistry
from remote_purge.engine.backoff import PurgePolicy
from remote_purge.engine.lock import FileAdvisoryLock, InMemoryAdvisoryLock
from remote_purge.engine.scheduler import PurgeScheduler
from remote_purge.engine.worker import PurgeWorker
from remote_purge.metrics.snapshot_store import SnapshotStore
from remote_purge.metrics.state import MetricsSnapshot
from remote_purge.monitoring.events import EventEmitter
from remote_purge.monitoring.history import HistorySink
from remote_purge.purge_queue.models import PurgeEntry
from remote_purge.purge_queue.store import JsonPurgeQueueStore
from remote_purge.utils.config_loader import ConfigError
from remote_purge.utils.logger import get_logger

logger = get_logger()

_DEFAULT_PATHS = {
    "queue_path": "data/purge/queue.json",
    "snapshot_path": "data/purge/metrics_snapshot.json",
    "history_path": "data/logs/purge_history.jsonl",
    "lock_path": "data/purge/worker.lock",
}


class PurgeService:
    """Entry point for enqueueing purges, running the worker and reading metrics."""

    def __init__(
        self,
        store: JsonPurgeQueueStore,
        registry: DestinationRegistry,
        snapshots: SnapshotStore,
        policy: Optional[PurgePolicy] = None,
        lock=None,
        emitter: Optional[EventEmitter] = None,
        history: Optional[HistorySink] = None,
        config: Optional[Dict[str, Any]] = None,
        clock: Callable[[], float] = time.time,
        scheduler: Optional[PurgeScheduler] = None,
    ):
        self.config = config or {}
        self.policy = policy or PurgePolicy.from_config(self.config)
        self.store = store
        self.registry = registry
        self.snapshots = snapshots
        self.emitter = emitter or EventEmitter()
        self.history = history or HistorySink(path=None)
        self.clock = clock

        self.worker = PurgeWorker(
            store=store,
            registry=registry,
            snapshots=snapshots,
            policy=self.policy,
            lock=lock,
            emitter=self.emitter,
            history=self.history,
            config=self.config,
            clock=clock,
            rearm=self._rearm,
        )
        self.scheduler = scheduler or PurgeScheduler(
            run=self.worker.run,
            interval_seconds=self.policy.schedule_interval_seconds,
            soon_delay_seconds=self.policy.async_delay_seconds,
        )
        self._scheduled = False

    @classmethod
    def from_config(cls, config: Dict[str, Any], clock: Callable[[], float] = time.time) -> "PurgeService":
        """Build a service and all of its collaborators from *config*.

        Raises:
            ConfigError: If ``purge.lock`` names an unknown lock backend.
        """
        purge_cfg = config.get("purge", {}) or {}
        paths = {key: purge_cfg.get(key, default) for key, default in _DEFAULT_PATHS.items()}
        policy = PurgePolicy.from_config(config)

        lock_backend = str(purge_cfg.get("lock", "file")).lower()
        if lock_backend == "file":
            lock = FileAdvisoryLock(paths["lock_path"], ttl_seconds=policy.lock_ttl_seconds)
        elif lock_backend == "memory":
            lock = InMemoryAdvisoryLock(ttl_seconds=policy.lock_ttl_seconds)
        else:
            raise ConfigError(f"Unknown purge lock backend: {lock_backend}")

        return cls(
            store=JsonPurgeQueueStore(paths["queue_path"], clock=clock),
            registry=DestinationRegistry(config),
            snapshots=SnapshotStore(paths["snapshot_path"]),
            policy=policy,
            lock=lock,
            history=HistorySink(paths["history_path"], clock=clock),
            config=config,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def register_purge(self, file: str, destinations: List[str]) -> PurgeEntry:
        """Queue *file* for deletion on *destinations* and ask for a run soon.

        Raises:
            ValueError: If the file name is empty or no destination is given.
        """
        entry = self.store.register_purge(file, destinations, now=self.clock())
        self.history.log(
            "remote_purge",
            "info",
            f"Queued purge of {entry.file} on {', '.join(entry.destinations)}",
        )
        self.scheduler.trigger_soon()
        return entry

    def run(self) -> None:
        """Run the worker once in the calling thread."""
        self.worker.run()

    def get_snapshot(self, refresh: bool = True) -> Optional[MetricsSnapshot]:
        """Latest persisted SLA snapshot, or None before the first run."""
        return self.snapshots.load(refresh=refresh)

    def list_entries(self) -> List[PurgeEntry]:
        return self.store.load()

    def ensure_scheduled(self) -> bool:
        """Start periodic runs; calling again is a no-op."""
        started = self.scheduler.ensure_scheduled()
        self._scheduled = True
        return started

    def shutdown(self) -> None:
        self._scheduled = False
        self.scheduler.shutdown()

    def _rearm(self, delay: float) -> None:
        # Only drive timers when running as a scheduled service, not for one-off CLI runs
        if self._scheduled:
            self.scheduler.arm(delay)
