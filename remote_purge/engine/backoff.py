# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Backoff and retry state machine for purge entries.

States::

    pending ──► processing ──► completed
                    │  ▲
                    ▼  │
                  retry ───► (processing) ... ──► failed

An entry is due when it is pending or retrying and its ``next_attempt_at``
has passed.  After each attempt :func:`decide` picks the next state from
the remaining destinations, the attempt count and the observed wait.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from remote_purge.purge_queue.models import ELIGIBLE_STATUSES, PurgeEntry, PurgeStatus


@dataclass(frozen=True)
class PurgePolicy:
    """Tunables of the purge engine.  Defaults are the production values."""

    max_attempts: int = 5
    backoff_base_seconds: float = 60.0
    backoff_cap_seconds: float = 900.0
    delay_alert_attempts: int = 3
    delay_alert_seconds: float = 600.0
    max_entries_per_run: int = 3
    lock_ttl_seconds: float = 60.0
    drain_delay_seconds: float = 30.0
    safety_interval_seconds: float = 60.0
    schedule_interval_seconds: float = 300.0
    async_delay_seconds: float = 15.0
    alert_threshold_seconds: float = 600.0
    warning_window_seconds: float = 300.0
    adapter_timeout_seconds: float = 30.0

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]]) -> "PurgePolicy":
        """Build a policy from ``config["purge"]``, ignoring unknown keys."""
        purge = (config or {}).get("purge", {}) or {}
        overrides = {
            name: purge[name]
            for name in cls.__dataclass_fields__
            if name in purge and purge[name] is not None
        }
        return cls(**overrides)


def backoff(attempts: int, base: float = 60.0, cap: float = 900.0) -> float:
    """Delay before the next attempt after *attempts* attempts.

    ``min(base * 2^(attempts-1), cap)``; attempts below 1 are treated as 1.
    """
    n = max(1, int(attempts))
    # Bound the exponent so huge attempt counts cannot overflow
    exponent = min(n - 1, 32)
    return float(min(base * (2 ** exponent), cap))


def is_due(entry: PurgeEntry, now: float) -> bool:
    """True when *entry* is eligible and its next attempt time has passed."""
    if entry.status not in ELIGIBLE_STATUSES:
        return False
    next_at = entry.next_attempt_at
    if next_at is None:
        return True
    return next_at <= now


def observed_wait(entry: PurgeEntry, now: float) -> float:
    """Seconds since the previous attempt (or registration), never negative."""
    since = entry.last_attempt_at
    if since is None:
        since = entry.registered_at
    if since is None:
        return 0.0
    return max(0.0, now - since)


@dataclass(frozen=True)
class RetryDecision:
    """Next state for an entry after one attempt."""

    status: PurgeStatus
    next_attempt_at: Optional[float] = None
    emit_delay_alert: bool = False
    delay_alerted: bool = False


def decide(
    attempts: int,
    remaining: Iterable[str],
    max_delay: float,
    delay_alerted: bool,
    now: float,
    policy: PurgePolicy = PurgePolicy(),
) -> RetryDecision:
    """Choose completed / failed / retry for an entry that was just attempted.

    Args:
        attempts: Attempt count including the one just made.
        remaining: Destinations still owing a deletion.
        max_delay: Peak observed wait for the entry.
        delay_alerted: Whether a delay alert was already emitted.
        now: Time of the attempt.
        policy: Engine tunables.
    """
    if not list(remaining):
        return RetryDecision(status=PurgeStatus.COMPLETED, delay_alerted=False)

    if attempts >= policy.max_attempts:
        return RetryDecision(status=PurgeStatus.FAILED, delay_alerted=True)

    next_at = now + backoff(
        attempts, policy.backoff_base_seconds, policy.backoff_cap_seconds
    )
    alert = not delay_alerted and (
        attempts >= policy.delay_alert_attempts
        or max_delay >= policy.delay_alert_seconds
    )
    return RetryDecision(
        status=PurgeStatus.RETRY,
        next_attempt_at=next_at,
        emit_delay_alert=alert,
        delay_alerted=delay_alerted or alert,
    )


def compute_rearm_delay(
    entries: Iterable[PurgeEntry],
    now: float,
    policy: PurgePolicy = PurgePolicy(),
) -> float:
    """Seconds until the worker should run again.

    Anything already due → drain delay.  Otherwise the earliest deadline,
    never sooner than the drain delay.  Nothing eligible → safety interval.
    """
    earliest: Optional[float] = None
    for entry in entries:
        if entry.status not in ELIGIBLE_STATUSES:
            continue
        deadline = entry.next_attempt_at
        if deadline is None or deadline <= now:
            return policy.drain_delay_seconds
        if earliest is None or deadline < earliest:
            earliest = deadline

    if earliest is None:
        return policy.safety_interval_seconds
    return max(policy.drain_delay_seconds, earliest - now)
