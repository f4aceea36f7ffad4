# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Unit tests for PurgeService wiring."""

from unittest.mock import MagicMock

import pytest

from remote_purge.destinations.registry import DestinationRegistry
from remote_purge.engine.backoff import PurgePolicy
from remote_purge.engine.lock import FileAdvisoryLock, InMemoryAdvisoryLock
from remote_purge.engine.service import PurgeService
from remote_purge.metrics.snapshot_store import SnapshotStore
from remote_purge.monitoring.history import HistorySink
from remote_purge.purge_queue.models import PurgeStatus
from remote_purge.purge_queue.store import JsonPurgeQueueStore
from remote_purge.utils.config_loader import ConfigError


def _config(tmp_path, lock="memory"):
    nas = tmp_path / "nas"
    nas.mkdir(exist_ok=True)
    return {
        "purge": {
            "queue_path": str(tmp_path / "purge" / "queue.json"),
            "snapshot_path": str(tmp_path / "purge" / "metrics_snapshot.json"),
            "history_path": str(tmp_path / "logs" / "purge_history.jsonl"),
            "lock_path": str(tmp_path / "purge" / "worker.lock"),
            "lock": lock,
            "adapter_timeout_seconds": 0,
            "async_delay_seconds": 3600,
        },
        "destinations": {"nas": {"type": "local", "path": str(nas)}},
        "retry": {"default": {"max_attempts": 1}},
    }


@pytest.fixture
def service(tmp_path):
    clock = MagicMock(return_value=1000.0)
    scheduler = MagicMock()
    svc = PurgeService(
        store=JsonPurgeQueueStore(str(tmp_path / "queue.json"), clock=clock),
        registry=DestinationRegistry(_config(tmp_path)),
        snapshots=SnapshotStore(str(tmp_path / "snapshot.json")),
        policy=PurgePolicy(adapter_timeout_seconds=0),
        history=HistorySink(path=None, clock=clock),
        config={"retry": {"default": {"max_attempts": 1}}},
        clock=clock,
        scheduler=scheduler,
    )
    return svc


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestFromConfig:

    def test_memory_lock(self, tmp_path):
        svc = PurgeService.from_config(_config(tmp_path, lock="memory"))
        assert isinstance(svc.worker.lock, InMemoryAdvisoryLock)

    def test_file_lock(self, tmp_path):
        svc = PurgeService.from_config(_config(tmp_path, lock="file"))
        assert isinstance(svc.worker.lock, FileAdvisoryLock)

    def test_unknown_lock_backend(self, tmp_path):
        with pytest.raises(ConfigError, match="redis"):
            PurgeService.from_config(_config(tmp_path, lock="redis"))

    def test_policy_from_purge_section(self, tmp_path):
        svc = PurgeService.from_config(_config(tmp_path))
        assert svc.policy.async_delay_seconds == 3600
        assert svc.policy.max_attempts == 5
        assert svc.scheduler.soon_delay_seconds == 3600

    def test_end_to_end_with_local_destination(self, tmp_path):
        config = _config(tmp_path)
        (tmp_path / "nas" / "backup-A.zip").write_bytes(b"x" * 10)
        svc = PurgeService.from_config(config)
        try:
            svc.register_purge("backup-A.zip", ["nas"])
            svc.run()
        finally:
            svc.shutdown()

        entry = svc.store.get("backup-A.zip")
        assert entry.status == PurgeStatus.COMPLETED
        assert not (tmp_path / "nas" / "backup-A.zip").exists()
        assert svc.get_snapshot().throughput["completed_total"] == 1
        history = (tmp_path / "logs" / "purge_history.jsonl").read_text().splitlines()
        assert len(history) == 3


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


class TestOperations:

    def test_register_purge_requests_a_run(self, service):
        entry = service.register_purge("backup-A.zip", ["nas"])

        assert entry.status == PurgeStatus.PENDING
        assert entry.registered_at == 1000.0
        service.scheduler.trigger_soon.assert_called_once_with()
        assert service.history.recent()[-1]["message"] == "Queued purge of backup-A.zip on nas"

    def test_register_purge_rejects_empty_destinations(self, service):
        with pytest.raises(ValueError):
            service.register_purge("backup-A.zip", [])
        service.scheduler.trigger_soon.assert_not_called()

    def test_list_entries(self, service):
        service.register_purge("a.zip", ["nas"])
        service.register_purge("b.zip", ["nas"])

        assert [e.file for e in service.list_entries()] == ["a.zip", "b.zip"]

    def test_snapshot_none_before_first_run(self, service):
        assert service.get_snapshot() is None

        service.run()

        assert service.get_snapshot().generated_at == 1000.0


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


class TestScheduling:

    def test_run_does_not_arm_timers_when_unscheduled(self, service):
        service.run()

        service.scheduler.arm.assert_not_called()
        assert service.worker.next_run_in == 60.0

    def test_run_arms_timer_once_scheduled(self, service):
        service.ensure_scheduled()
        service.register_purge("a.zip", ["nas"])
        service.store.update("a.zip", status=PurgeStatus.RETRY, next_attempt_at=1300.0)

        service.run()

        service.scheduler.ensure_scheduled.assert_called_once_with()
        service.scheduler.arm.assert_called_once_with(300.0)

    def test_shutdown_stops_rearming(self, service):
        service.ensure_scheduled()
        service.shutdown()

        service.run()

        service.scheduler.shutdown.assert_called_once_with()
        service.scheduler.arm.assert_not_called()
