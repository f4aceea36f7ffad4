# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Remote purge worker.

Each ``run()`` takes the advisory lock, works through at most
``max_entries_per_run`` due entries of the purge queue, asks every remaining
destination of an entry to delete the archive, and moves the entry through
the retry state machine.  The lease is renewed before every destination call;
if another worker has taken it over the run stops where it is.  After
releasing the lock it recomputes the SLA snapshot and re-arms the next run
from the earliest pending deadline.

``run()`` never raises: a broken adapter is a failed destination, a busy lock
is a skipped run, anything else is logged with its traceback.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Callable, Dict, List, Optional

from remote_purge.destinations.base import DeleteResult, UnresolvedDestinationError
from remote_purge.destinations.registry import DestinationRegistry
from remote_purge.engine.backoff import (
    PurgePolicy,
    compute_rearm_delay,
    decide,
    is_due,
    observed_wait,
)
from remote_purge.engine.lock import InMemoryAdvisoryLock, LeaseLostError, LockError
from remote_purge.metrics.engine import recompute
from remote_purge.metrics.snapshot_store import SnapshotStore
from remote_purge.monitoring.events import (
    TOPIC_COMPLETED,
    TOPIC_DELAYED,
    TOPIC_PERMANENT_FAILURE,
    EventEmitter,
)
from remote_purge.monitoring.history import HistorySink
from remote_purge.purge_queue.models import PurgeEntry, PurgeOutcome, PurgeStatus
from remote_purge.purge_queue.store import JsonPurgeQueueStore
from remote_purge.utils.logger import get_logger, new_run_id, purge_run_context
from remote_purge.utils.retry_handler import with_retry

logger = get_logger()

HISTORY_CATEGORY = "remote_purge"
DEFAULT_FAILURE_MESSAGE = "Remote deletion failed."


class PurgeWorker:
    """Process the remote purge queue one bounded batch at a time.

    Usage::

        worker = PurgeWorker(store, registry, snapshots, policy=policy)
        worker.run()
        print(worker.next_run_in)
    """

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
        rearm: Optional[Callable[[float], None]] = None,
    ):
        """
        Args:
            store: Purge queue store.
            registry: Resolves destination ids to adapters.
            snapshots: Where the SLA snapshot is persisted.
            policy: Engine tunables (defaults to production values).
            lock: Advisory lock with ``acquire()``/``renew()``/``release()``; defaults to
                  an in-memory lock using the policy TTL.
            emitter: Receives completed / permanent_failure / delayed events.
            history: Operator history sink.
            config: Full merged config, used for per-destination retry settings.
            clock: Time source (POSIX seconds).
            rearm: Called with the delay in seconds until the next run.
        """
        self.store = store
        self.registry = registry
        self.snapshots = snapshots
        self.policy = policy or PurgePolicy()
        self.lock = lock or InMemoryAdvisoryLock(ttl_seconds=self.policy.lock_ttl_seconds)
        self.emitter = emitter or EventEmitter()
        self.history = history or HistorySink(path=None)
        self.config = config or {}
        self.clock = clock
        self.rearm = rearm

        self.next_run_in: Optional[float] = None
        self.last_outcomes: List[PurgeOutcome] = []

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Execute one worker pass.  Returns immediately if another run holds the lock."""
        with purge_run_context(new_run_id()):
            self._run()

    def _run(self) -> None:
        try:
            acquired = self.lock.acquire()
        except LockError as e:
            logger.error(f"Remote purge lock unavailable: {e}")
            self._rearm(None)
            return

        if not acquired:
            logger.debug("Remote purge run already in progress, skipping")
            return

        outcomes: List[PurgeOutcome] = []
        entries: Optional[List[PurgeEntry]] = None
        try:
            try:
                self._process_queue(outcomes)
            except LeaseLostError as e:
                logger.warning(f"Remote purge run stopped early: {e}")
            finally:
                self.lock.release()

            entries = self.store.load()
            snapshot = recompute(
                entries,
                outcomes,
                self.clock(),
                previous=self.snapshots.load(refresh=True),
                alert_threshold=self.policy.alert_threshold_seconds,
                warning_window=self.policy.warning_window_seconds,
            )
            self.snapshots.save(snapshot)
        except Exception:
            logger.exception("Remote purge run aborted")

        self.last_outcomes = outcomes
        self._rearm(entries)

        if outcomes:
            counts: Dict[str, int] = {}
            for outcome in outcomes:
                counts[outcome.outcome] = counts.get(outcome.outcome, 0) + 1
            summary = ", ".join(f"{k} {v}" for k, v in sorted(counts.items()))
            logger.info(
                f"Remote purge run processed {len(outcomes)} entr"
                f"{'y' if len(outcomes) == 1 else 'ies'} ({summary}); "
                f"next run in {self.next_run_in:.0f}s"
            )

    # ------------------------------------------------------------------
    # Queue processing
    # ------------------------------------------------------------------

    def _process_queue(self, outcomes: List[PurgeOutcome]) -> None:
        """Process due entries, appending one outcome per attempted entry to *outcomes*."""
        entries = self.store.load()
        if not entries:
            return

        entries = self._recover_orphans(entries)

        for entry in entries:
            if len(outcomes) >= self.policy.max_entries_per_run:
                break

            now = self.clock()
            if not is_due(entry, now):
                continue

            if not entry.destinations:
                logger.warning(f"Purge entry {entry.file} has no destinations left, closing it")
                self.store.update(
                    entry.file,
                    status=PurgeStatus.COMPLETED,
                    completed_at=now,
                    next_attempt_at=None,
                    errors={},
                    last_error="",
                )
                continue

            outcomes.append(self._process_entry(entry, now))

    def _recover_orphans(self, entries: List[PurgeEntry]) -> List[PurgeEntry]:
        """Return entries left in ``processing`` by a crashed run to ``retry``.

        Only the lock holder writes ``processing``, and a live holder renews
        its lease before every destination call.  An entry whose last attempt
        started more than one lease ago therefore belongs to a run that died
        mid-attempt; a younger one may still be in flight and is left alone.
        """
        now = self.clock()
        recovered: List[PurgeEntry] = []
        for entry in entries:
            if entry.status == PurgeStatus.PROCESSING:
                started = entry.last_attempt_at
                if started is not None and now - started <= self.policy.lock_ttl_seconds:
                    logger.debug(f"Purge entry {entry.file} is still being processed, leaving it")
                    recovered.append(entry)
                    continue
                logger.warning(
                    f"Purge entry {entry.file} was left processing by an interrupted run, retrying"
                )
                updated = self.store.update(
                    entry.file, status=PurgeStatus.RETRY, next_attempt_at=now
                )
                entry = updated or entry
            recovered.append(entry)
        return recovered

    def _process_entry(self, entry: PurgeEntry, now: float) -> PurgeOutcome:
        file = entry.file
        destinations = list(entry.destinations)
        wait = observed_wait(entry, now)
        max_delay = max(entry.max_delay, wait)
        attempts = entry.attempts + 1

        self.store.update(
            file,
            status=PurgeStatus.PROCESSING,
            attempts=attempts,
            last_attempt_at=now,
            last_delay=wait,
            max_delay=max_delay,
        )
        self.history.log(
            HISTORY_CATEGORY,
            "info",
            f"Purge attempt {attempts}/{self.policy.max_attempts} for {file} "
            f"on {', '.join(destinations)}",
        )

        succeeded: List[str] = []
        errors: Dict[str, str] = {}
        quota_samples: Dict[str, Dict[str, Any]] = {}

        for destination_id in destinations:
            try:
                result = self._delete_on(destination_id, file)
            except LeaseLostError:
                if succeeded:
                    self.store.mark_completed(file, succeeded)
                raise
            if result.success:
                succeeded.append(destination_id)
            else:
                errors[destination_id] = result.message or DEFAULT_FAILURE_MESSAGE

            raw_usage = {"usage": result.usage} if result.usage else dict(result.extra)
            if raw_usage:
                quota_samples[destination_id] = raw_usage

        purged = list(entry.purged)
        if succeeded:
            updated = self.store.mark_completed(file, succeeded)
            purged = list(updated.purged) if updated is not None else purged + succeeded

        remaining = [d for d in destinations if d not in succeeded]
        decision = decide(
            attempts, remaining, max_delay, entry.delay_alerted, now, self.policy
        )

        outcome = PurgeOutcome(
            outcome=decision.status.value,
            file=file,
            registered_at=entry.registered_at,
            timestamp=now,
            attempts=attempts,
            destinations=remaining,
            succeeded=succeeded,
            errors=errors,
            max_delay=max_delay,
            quota_samples=quota_samples,
        )

        if decision.status == PurgeStatus.COMPLETED:
            registered = entry.registered_at if entry.registered_at is not None else now
            outcome.duration = max(0.0, now - registered)
            outcome.destinations = purged
            self._complete(entry, outcome, now)
        elif decision.status == PurgeStatus.FAILED:
            self._fail(entry, outcome, now)
        else:
            self._schedule_retry(entry, outcome, decision, wait)

        return outcome

    def _delete_on(self, destination_id: str, file: str) -> DeleteResult:
        """Ask one destination to delete *file*; every failure mode becomes a result.

        Raises:
            LeaseLostError: The run lock was taken over, so the run must stop
                before touching another destination.
        """
        if not self.lock.renew():
            raise LeaseLostError(f"lock lease lost before deleting {file} on {destination_id}")

        try:
            destination = self.registry.resolve(destination_id)
        except UnresolvedDestinationError as e:
            logger.warning(f"Remote purge of {file}: {e}")
            return DeleteResult(success=False, message=str(e))

        call = with_retry(source=destination_id, config=self.config)(destination.delete_by_name)
        timeout = self.policy.adapter_timeout_seconds

        try:
            raw = self._call_with_timeout(call, file, destination_id, timeout)
        except FuturesTimeoutError:
            message = f"Timed out after {timeout:g}s"
            logger.warning(f"Remote purge {destination.name()} ({destination_id}): {message}")
            return DeleteResult(success=False, message=message)
        except Exception as e:
            message = str(e).strip() or e.__class__.__name__
            logger.warning(f"Remote purge {destination.name()} ({destination_id}) raised: {message}")
            return DeleteResult(success=False, message=message)

        result = DeleteResult.coerce(raw)
        if not result.success:
            if not result.message:
                result.message = DEFAULT_FAILURE_MESSAGE
            logger.warning(
                f"Remote purge {destination.name()} ({destination_id}): {result.message}"
            )
        return result

    @staticmethod
    def _call_with_timeout(call, file: str, destination_id: str, timeout: float):
        if not timeout or timeout <= 0:
            return call(file)
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"purge-{destination_id}")
        try:
            future = executor.submit(call, file)
            return future.result(timeout=timeout)
        finally:
            # A hung adapter thread is abandoned, not joined
            executor.shutdown(wait=False)

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def _complete(self, entry: PurgeEntry, outcome: PurgeOutcome, now: float) -> None:
        self.store.update(
            entry.file,
            status=PurgeStatus.COMPLETED,
            errors={},
            last_error="",
            delay_alerted=False,
            next_attempt_at=None,
            completed_at=now,
        )
        self.history.log(
            HISTORY_CATEGORY,
            "success",
            f"Purged {entry.file} from {', '.join(outcome.destinations)} "
            f"after {outcome.attempts} attempt(s)",
        )
        self.emitter.emit(TOPIC_COMPLETED, {
            "file": entry.file,
            "destinations": list(outcome.destinations),
            "attempts": outcome.attempts,
            "duration": outcome.duration,
        })

    def _fail(self, entry: PurgeEntry, outcome: PurgeOutcome, now: float) -> None:
        last_error = " | ".join(outcome.errors.values())
        updated = self.store.update(
            entry.file,
            status=PurgeStatus.FAILED,
            errors=dict(outcome.errors),
            last_error=last_error,
            failed_at=now,
            next_attempt_at=None,
            delay_alerted=True,
        )
        self.history.log(
            HISTORY_CATEGORY,
            "failure",
            f"Giving up on {entry.file} after {outcome.attempts} attempts; "
            f"still on {', '.join(outcome.destinations)}: {last_error}",
        )
        self.emitter.emit(TOPIC_PERMANENT_FAILURE, {
            "file": entry.file,
            "entry": updated.to_dict() if updated is not None else entry.to_dict(),
            "errors": dict(outcome.errors),
            "destinations": list(outcome.destinations),
        })

    def _schedule_retry(self, entry: PurgeEntry, outcome: PurgeOutcome, decision, wait: float) -> None:
        last_error = " | ".join(outcome.errors.values())
        self.store.update(
            entry.file,
            status=PurgeStatus.RETRY,
            errors=dict(outcome.errors),
            last_error=last_error,
            next_attempt_at=decision.next_attempt_at,
            delay_alerted=decision.delay_alerted,
        )
        retry_in = decision.next_attempt_at - outcome.timestamp
        self.history.log(
            HISTORY_CATEGORY,
            "warning",
            f"Purge of {entry.file} incomplete ({', '.join(outcome.destinations)}), "
            f"retry {outcome.attempts + 1} in {retry_in:.0f}s: {last_error}",
        )
        if decision.emit_delay_alert:
            self.emitter.emit(TOPIC_DELAYED, {
                "file": entry.file,
                "attempts": outcome.attempts,
                "wait": wait,
                "max_delay": outcome.max_delay,
            })

    # ------------------------------------------------------------------
    # Re-arming
    # ------------------------------------------------------------------

    def _rearm(self, entries: Optional[List[PurgeEntry]]) -> None:
        if entries is None:
            try:
                entries = self.store.load()
            except OSError as e:
                logger.error(f"Cannot read purge queue for re-arming: {e}")
                entries = []

        delay = compute_rearm_delay(entries, self.clock(), self.policy)
        self.next_run_in = delay
        if self.rearm is not None:
            try:
                self.rearm(delay)
            except Exception:
                logger.exception("Re-arming the purge worker failed")
