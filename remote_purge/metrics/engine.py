# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""SLA metrics and drain-time forecasts for the remote purge queue.

:func:`recompute` rebuilds the whole snapshot on every worker run from:

1. the current queue contents (pending counts, ages, per-destination split),
2. the outcomes of the run that just finished (completions, failures,
   waits, quota samples), and
3. the previous snapshot's :class:`MetricsState` (running means, counters,
   bounded histories).

Forecasts fit a least-squares line through each destination's
``(timestamp, cumulative completions)`` history; a positive slope is the
drain rate in items per second.
"""

import math
from typing import Any, Dict, Iterable, List, Optional

from remote_purge.metrics.quota import extract_quota_sample
from remote_purge.metrics.regression import linear_regression, trend_label
from remote_purge.metrics.state import (
    FORECAST_HISTORY_SIZE,
    MetricsSnapshot,
    MetricsState,
)
from remote_purge.purge_queue.models import OPEN_STATUSES, PurgeEntry, PurgeOutcome
from remote_purge.utils.logger import get_logger

logger = get_logger()

ALERT_THRESHOLD_SECONDS = 600.0
WARNING_WINDOW_SECONDS = 300.0

_BACKLOG_TRENDS = {
    "positive": "growing",
    "negative": "shrinking",
    "flat": "flat",
    "insufficient": "insufficient",
}


def format_duration(seconds: Optional[float]) -> str:
    """Compact human duration: ``45s``, ``3m 20s``, ``2h 05m``, ``1d 04h``."""
    if seconds is None:
        return "-"
    total = int(max(0, round(seconds)))
    if total < 60:
        return f"{total}s"
    minutes, secs = divmod(total, 60)
    if minutes < 60:
        return f"{minutes}m {secs:02d}s"
    hours, minutes = divmod(minutes, 60)
    if hours < 24:
        return f"{hours}h {minutes:02d}m"
    days, hours = divmod(hours, 24)
    return f"{days}d {hours:02d}h"


def _incremental_mean(mean: Optional[float], value: float, n: int) -> float:
    """mean += (x - mean) / n, with n already counting *value*."""
    if mean is None or n <= 1:
        return float(value)
    return mean + (value - mean) / n


def _entry_age(entry: PurgeEntry, now: float) -> float:
    registered = entry.registered_at
    if registered is None or not math.isfinite(registered):
        registered = now
    return max(0.0, now - registered)


# ----------------------------------------------------------------------
# Pending aggregation
# ----------------------------------------------------------------------


def _aggregate_pending(
    entries: Iterable[PurgeEntry], now: float, alert_threshold: float
) -> Dict[str, Any]:
    count = 0
    age_sum = 0.0
    oldest = 0.0
    over = 0
    per_destination: Dict[str, Dict[str, Any]] = {}

    for entry in entries:
        try:
            if entry.status not in OPEN_STATUSES:
                continue
            age = _entry_age(entry, now)
            destinations = list(dict.fromkeys(str(d) for d in entry.destinations))
        except (AttributeError, TypeError, ValueError) as e:
            logger.debug(f"Skipping malformed entry in metrics: {e}")
            continue

        count += 1
        age_sum += age
        oldest = max(oldest, age)
        if age > alert_threshold:
            over += 1

        for destination_id in destinations:
            bucket = per_destination.setdefault(
                destination_id, {"count": 0, "oldest_age": 0.0}
            )
            bucket["count"] += 1
            bucket["oldest_age"] = max(bucket["oldest_age"], age)

    return {
        "total": count,
        "average_age": (age_sum / count) if count else None,
        "oldest_age": oldest if count else None,
        "over_threshold": over,
        "threshold": alert_threshold,
        "destinations": per_destination,
    }


# ----------------------------------------------------------------------
# Outcomes → running accumulators
# ----------------------------------------------------------------------


def _apply_completed(state: MetricsState, outcome: PurgeOutcome, now: float) -> None:
    if outcome.duration is not None:
        duration = max(0.0, float(outcome.duration))
    else:
        registered = outcome.registered_at if outcome.registered_at is not None else now
        duration = max(0.0, now - registered)
    timestamp = outcome.timestamp if outcome.timestamp is not None else now

    state.duration_samples += 1
    n = state.duration_samples
    state.mean_duration = _incremental_mean(state.mean_duration, duration, n)
    state.mean_attempts = _incremental_mean(state.mean_attempts, float(outcome.attempts), n)
    state.peak_duration = duration if state.peak_duration is None else max(state.peak_duration, duration)
    state.last_duration = duration
    state.last_completed_at = timestamp
    state.completed_total += 1

    for destination_id in dict.fromkeys(outcome.destinations):
        state.completed_by_destination[destination_id] = (
            state.completed_by_destination.get(destination_id, 0) + 1
        )
        history = state.forecast_points(destination_id)
        point_time = float(timestamp)
        # x must be strictly increasing for the fit
        if history and point_time <= history[-1][0]:
            point_time = history[-1][0] + 1
        history.append((point_time, float(state.completed_by_destination[destination_id])))


def _apply_failed(state: MetricsState, outcome: PurgeOutcome, now: float) -> None:
    state.failed_total += 1
    state.last_failure_at = outcome.timestamp if outcome.timestamp is not None else now
    messages = [str(m) for m in outcome.errors.values() if str(m).strip()]
    state.last_failure_message = " | ".join(messages)


def _apply_outcomes(state: MetricsState, outcomes: Iterable[PurgeOutcome], now: float) -> None:
    for outcome in outcomes:
        try:
            if outcome.outcome == "completed":
                _apply_completed(state, outcome, now)
            elif outcome.outcome == "failed":
                _apply_failed(state, outcome, now)

            if outcome.max_delay is not None:
                wait = max(0.0, float(outcome.max_delay))
                state.wait_samples += 1
                state.mean_wait = _incremental_mean(state.mean_wait, wait, state.wait_samples)
                state.peak_wait = wait if state.peak_wait is None else max(state.peak_wait, wait)

            captured_at = outcome.timestamp if outcome.timestamp is not None else now
            for destination_id, raw in (outcome.quota_samples or {}).items():
                sample = extract_quota_sample(raw, captured_at)
                if sample is not None:
                    state.quota_samples(destination_id).append(sample)
        except (AttributeError, TypeError, ValueError) as e:
            logger.debug(f"Skipping malformed outcome in metrics: {e}")


# ----------------------------------------------------------------------
# Forecasts
# ----------------------------------------------------------------------


def _projection(slope: Optional[float], pending: int, now: float) -> Dict[str, Any]:
    trend = trend_label(slope)
    seconds_per_item = None
    forecast_seconds = None
    projected_clearance = None

    if slope is not None and slope > 0:
        seconds_per_item = 1.0 / slope
        if pending > 0:
            # Round first so float noise (50.0000000001) does not add a second
            forecast_seconds = int(math.ceil(round(pending / slope, 6)))
            projected_clearance = now + forecast_seconds

    if pending <= 0:
        label = "No pending purges"
    elif trend == "insufficient":
        label = "Not enough completions to forecast"
    elif trend == "flat":
        label = "Stalled: no completions over the sample window"
    elif trend == "negative":
        label = "Backlog not draining"
    else:
        label = f"Clears {pending} item(s) in ~{format_duration(forecast_seconds)}"

    return {
        "slope": slope,
        "pending": pending,
        "seconds_per_item": seconds_per_item,
        "forecast_seconds": forecast_seconds,
        "projected_clearance": projected_clearance,
        "label": label,
        "trend": trend,
    }


def _build_forecast(state: MetricsState, pending: Dict[str, Any], now: float) -> Dict[str, Any]:
    per_destination_pending = pending["destinations"]
    destination_ids = sorted(set(per_destination_pending) | set(state.forecast_history))

    destinations: Dict[str, Any] = {}
    positive_slopes: List[float] = []
    any_fit = False

    for destination_id in destination_ids:
        history = list(state.forecast_history.get(destination_id, ()))
        fit = linear_regression(history, window=FORECAST_HISTORY_SIZE)
        count = per_destination_pending.get(destination_id, {}).get("count", 0)

        projection = _projection(fit.slope, count, now)
        projection["history"] = [[x, y] for x, y in history]
        projection["intercept"] = fit.intercept
        destinations[destination_id] = projection

        if fit.defined:
            any_fit = True
            if fit.slope > 0:
                positive_slopes.append(fit.slope)

    if positive_slopes:
        aggregate_slope: Optional[float] = sum(positive_slopes)
    elif any_fit:
        aggregate_slope = 0.0
    else:
        aggregate_slope = None

    return {
        "destinations": destinations,
        "aggregate": _projection(aggregate_slope, pending["total"], now),
    }


# ----------------------------------------------------------------------
# Saturation / backlog
# ----------------------------------------------------------------------


def _saturation_for(
    count: int,
    oldest_age: Optional[float],
    now: float,
    threshold: float,
    warning_window: float,
) -> Dict[str, Any]:
    if not count or oldest_age is None:
        return {
            "oldest_pending_age": None,
            "time_to_threshold": None,
            "projected_breach_at": None,
            "breach_imminent": False,
        }
    remaining = max(0.0, threshold - oldest_age)
    return {
        "oldest_pending_age": oldest_age,
        "time_to_threshold": remaining,
        "projected_breach_at": now + remaining,
        "breach_imminent": remaining <= warning_window,
    }


def _build_saturation(
    pending: Dict[str, Any], now: float, threshold: float, warning_window: float
) -> Dict[str, Any]:
    saturation = _saturation_for(
        pending["total"], pending["oldest_age"], now, threshold, warning_window
    )
    saturation["threshold"] = threshold
    saturation["warning_window"] = warning_window
    saturation["destinations"] = {
        destination_id: _saturation_for(
            bucket["count"], bucket["oldest_age"], now, threshold, warning_window
        )
        for destination_id, bucket in sorted(pending["destinations"].items())
    }
    return saturation


def _build_backlog(state: MetricsState, total_pending: int, now: float) -> Dict[str, Any]:
    state.backlog_history.append((float(now), float(total_pending)))
    history = list(state.backlog_history)
    fit = linear_regression(history)
    return {
        "history": [[x, y] for x, y in history],
        "slope": fit.slope,
        "intercept": fit.intercept,
        "trend": _BACKLOG_TRENDS[trend_label(fit.slope)],
    }


# ----------------------------------------------------------------------
# Entry point
# ----------------------------------------------------------------------


def recompute(
    entries: Iterable[PurgeEntry],
    outcomes: Iterable[PurgeOutcome],
    now: float,
    previous: Optional[MetricsSnapshot] = None,
    alert_threshold: float = ALERT_THRESHOLD_SECONDS,
    warning_window: float = WARNING_WINDOW_SECONDS,
) -> MetricsSnapshot:
    """Build a fresh snapshot from queue state, run outcomes and prior state.

    *previous* is not modified; its state is deep-copied before update.

    Args:
        entries: Current queue contents (all statuses).
        outcomes: Outcome records of the run that just finished.
        now: Snapshot time.
        previous: Last persisted snapshot, if any.
        alert_threshold: Pending age (seconds) considered an SLA breach.
        warning_window: Remaining time under which a breach is imminent.
    """
    state = previous.state.copy() if previous is not None else MetricsState()

    pending = _aggregate_pending(entries, now, alert_threshold)
    _apply_outcomes(state, outcomes, now)

    terminal = state.completed_total + state.failed_total
    throughput = {
        "average_duration": state.mean_duration,
        "average_attempts": state.mean_attempts,
        "samples": state.duration_samples,
        "last_completed_at": state.last_completed_at,
        "last_duration": state.last_duration,
        "completed_total": state.completed_total,
        "failure_rate": (state.failed_total / terminal) if terminal else None,
        "success_rate": (state.completed_total / terminal) if terminal else None,
    }
    failures = {
        "total": state.failed_total,
        "last_failure_at": state.last_failure_at,
        "last_message": state.last_failure_message,
    }
    durations = {
        "average": state.mean_duration,
        "peak": state.peak_duration,
        "last": state.last_duration,
        "average_wait": state.mean_wait,
        "peak_wait": state.peak_wait,
    }

    return MetricsSnapshot(
        generated_at=now,
        pending=pending,
        throughput=throughput,
        failures=failures,
        durations=durations,
        forecast=_build_forecast(state, pending, now),
        saturation=_build_saturation(pending, now, alert_threshold, warning_window),
        backlog=_build_backlog(state, pending["total"], now),
        quotas={k: list(v) for k, v in sorted(state.quota_history.items())},
        state=state,
    )
