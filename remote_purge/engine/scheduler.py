# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Timer-based triggers for the purge worker.

Two kinds of trigger drive ``PurgeWorker.run``:

- a periodic timer (``schedule_interval_seconds``) that keeps the queue
  moving even when nothing re-arms it, and
- a single one-shot timer, used both for "run soon" after an enqueue and
  for the re-arm delay the worker computes at the end of each run.  The
  one-shot always holds the earlier of the two deadlines.

All timers are daemon ``threading.Timer`` threads.  Overlapping runs are
harmless because the worker's advisory lock turns the loser into a no-op.
"""

import threading
import time
from typing import Callable, Optional

from remote_purge.utils.logger import get_logger

logger = get_logger()


class PurgeScheduler:
    """Schedule calls to a run callable."""

    def __init__(
        self,
        run: Callable[[], None],
        interval_seconds: float = 300.0,
        soon_delay_seconds: float = 15.0,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            run: Callable executed on every trigger (normally ``PurgeWorker.run``).
            interval_seconds: Period of the recurring trigger.
            soon_delay_seconds: Delay used by ``trigger_soon``.
            timer_factory: ``threading.Timer``-compatible factory, replaceable in tests.
            clock: Monotonic time source used to compare one-shot deadlines.
        """
        self._run = run
        self.interval_seconds = interval_seconds
        self.soon_delay_seconds = soon_delay_seconds
        self._timer_factory = timer_factory
        self._clock = clock

        self._lock = threading.Lock()
        self._periodic: Optional[threading.Timer] = None
        self._one_shot: Optional[threading.Timer] = None
        self._one_shot_due: Optional[float] = None
        self._stopped = False
        self._generation = 0
        self._periodic_generation = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def ensure_scheduled(self) -> bool:
        """Start the periodic trigger if it is not running.  Returns True if started."""
        with self._lock:
            self._stopped = False
            if self._periodic is not None:
                return False
            self._periodic_generation += 1
            self._periodic = self._start_periodic(self._periodic_generation)
        logger.info(f"Remote purge scheduled every {self.interval_seconds:.0f}s")
        return True

    def trigger_soon(self) -> bool:
        """Make sure a run happens within the soon delay.

        A pending one-shot due sooner is kept; one due later (a long re-arm)
        is replaced.  Returns True if a new one-shot was started.
        """
        with self._lock:
            if self._stopped:
                return False
            due = self._clock() + self.soon_delay_seconds
            if self._one_shot is not None:
                if self._one_shot_due is not None and self._one_shot_due <= due:
                    return False
                self._one_shot.cancel()
            self._one_shot = self._start_one_shot(self.soon_delay_seconds)
        logger.debug(f"Remote purge run queued in {self.soon_delay_seconds:.0f}s")
        return True

    def arm(self, delay_seconds: float) -> None:
        """Replace any pending one-shot with one firing after *delay_seconds*."""
        with self._lock:
            if self._stopped:
                return
            if self._one_shot is not None:
                self._one_shot.cancel()
            self._one_shot = self._start_one_shot(max(0.0, delay_seconds))
        logger.debug(f"Remote purge re-armed in {delay_seconds:.0f}s")

    def shutdown(self) -> None:
        """Cancel all pending timers.  Runs already executing finish on their own."""
        with self._lock:
            self._stopped = True
            self._generation += 1
            self._periodic_generation += 1
            for timer in (self._periodic, self._one_shot):
                if timer is not None:
                    timer.cancel()
            self._periodic = None
            self._one_shot = None
            self._one_shot_due = None
        logger.info("Remote purge scheduler stopped")

    @property
    def periodic_active(self) -> bool:
        return self._periodic is not None

    @property
    def one_shot_pending(self) -> bool:
        return self._one_shot is not None

    # ------------------------------------------------------------------
    # Timer callbacks
    # ------------------------------------------------------------------

    def _start(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = self._timer_factory(delay, callback)
        timer.daemon = True
        timer.start()
        return timer

    def _start_periodic(self, generation: int) -> threading.Timer:
        return self._start(self.interval_seconds, lambda: self._periodic_fire(generation))

    def _periodic_fire(self, generation: int) -> None:
        with self._lock:
            # A timer from before shutdown() may fire after a restart
            if self._stopped or generation != self._periodic_generation:
                return
            self._periodic = self._start_periodic(generation)
        self._invoke()

    def _start_one_shot(self, delay: float) -> threading.Timer:
        self._generation += 1
        generation = self._generation
        self._one_shot_due = self._clock() + delay
        return self._start(delay, lambda: self._one_shot_fire(generation))

    def _one_shot_fire(self, generation: int) -> None:
        with self._lock:
            # A timer replaced by arm() may still fire if cancel() came too late
            if self._stopped or generation != self._generation:
                return
            self._one_shot = None
            self._one_shot_due = None
        self._invoke()

    def _invoke(self) -> None:
        try:
            self._run()
        except Exception:
            logger.exception("Scheduled remote purge run failed")
