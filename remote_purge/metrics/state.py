# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Running accumulators and the persisted SLA snapshot.

:class:`MetricsState` carries everything that must survive from one run to
the next (running means, counters, bounded histories).  It is threaded
through :func:`remote_purge.metrics.engine.recompute` and stored inside the
snapshot, never kept as module-level state.
"""

import copy
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Tuple

SNAPSHOT_VERSION = 1

FORECAST_HISTORY_SIZE = 20
BACKLOG_HISTORY_SIZE = 40
QUOTA_HISTORY_SIZE = 20

Point = Tuple[float, float]


def _forecast_deque(points=()) -> Deque[Point]:
    return deque(points, maxlen=FORECAST_HISTORY_SIZE)


def _backlog_deque(points=()) -> Deque[Point]:
    return deque(points, maxlen=BACKLOG_HISTORY_SIZE)


def _quota_deque(samples=()) -> Deque[Dict[str, Any]]:
    return deque(samples, maxlen=QUOTA_HISTORY_SIZE)


def _points(raw: Any) -> List[Point]:
    points: List[Point] = []
    if not isinstance(raw, list):
        return points
    for item in raw:
        try:
            points.append((float(item[0]), float(item[1])))
        except (TypeError, ValueError, IndexError):
            continue
    return points


def _float_or_none(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass
class MetricsState:
    """Accumulators carried across runs."""

    completed_total: int = 0
    failed_total: int = 0

    duration_samples: int = 0
    mean_duration: Optional[float] = None
    mean_attempts: Optional[float] = None
    peak_duration: Optional[float] = None
    last_duration: Optional[float] = None
    last_completed_at: Optional[float] = None

    wait_samples: int = 0
    mean_wait: Optional[float] = None
    peak_wait: Optional[float] = None

    last_failure_at: Optional[float] = None
    last_failure_message: str = ""

    completed_by_destination: Dict[str, int] = field(default_factory=dict)
    forecast_history: Dict[str, Deque[Point]] = field(default_factory=dict)
    backlog_history: Deque[Point] = field(default_factory=_backlog_deque)
    quota_history: Dict[str, Deque[Dict[str, Any]]] = field(default_factory=dict)

    def copy(self) -> "MetricsState":
        return copy.deepcopy(self)

    def forecast_points(self, destination_id: str) -> Deque[Point]:
        if destination_id not in self.forecast_history:
            self.forecast_history[destination_id] = _forecast_deque()
        return self.forecast_history[destination_id]

    def quota_samples(self, destination_id: str) -> Deque[Dict[str, Any]]:
        if destination_id not in self.quota_history:
            self.quota_history[destination_id] = _quota_deque()
        return self.quota_history[destination_id]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completed_total": self.completed_total,
            "failed_total": self.failed_total,
            "duration_samples": self.duration_samples,
            "mean_duration": self.mean_duration,
            "mean_attempts": self.mean_attempts,
            "peak_duration": self.peak_duration,
            "last_duration": self.last_duration,
            "last_completed_at": self.last_completed_at,
            "wait_samples": self.wait_samples,
            "mean_wait": self.mean_wait,
            "peak_wait": self.peak_wait,
            "last_failure_at": self.last_failure_at,
            "last_failure_message": self.last_failure_message,
            "completed_by_destination": dict(self.completed_by_destination),
            "forecast_history": {
                k: [list(p) for p in v] for k, v in self.forecast_history.items()
            },
            "backlog_history": [list(p) for p in self.backlog_history],
            "quota_history": {k: list(v) for k, v in self.quota_history.items()},
        }

    @classmethod
    def from_dict(cls, data: Any) -> "MetricsState":
        """Rebuild state from a stored snapshot; unknown or junk fields are dropped."""
        if not isinstance(data, dict):
            return cls()

        def _int(key: str) -> int:
            try:
                return max(0, int(data.get(key) or 0))
            except (TypeError, ValueError):
                return 0

        completed_by = data.get("completed_by_destination") or {}
        forecast_raw = data.get("forecast_history") or {}
        quota_raw = data.get("quota_history") or {}

        return cls(
            completed_total=_int("completed_total"),
            failed_total=_int("failed_total"),
            duration_samples=_int("duration_samples"),
            mean_duration=_float_or_none(data.get("mean_duration")),
            mean_attempts=_float_or_none(data.get("mean_attempts")),
            peak_duration=_float_or_none(data.get("peak_duration")),
            last_duration=_float_or_none(data.get("last_duration")),
            last_completed_at=_float_or_none(data.get("last_completed_at")),
            wait_samples=_int("wait_samples"),
            mean_wait=_float_or_none(data.get("mean_wait")),
            peak_wait=_float_or_none(data.get("peak_wait")),
            last_failure_at=_float_or_none(data.get("last_failure_at")),
            last_failure_message=str(data.get("last_failure_message") or ""),
            completed_by_destination={
                str(k): int(v) for k, v in completed_by.items()
                if isinstance(v, (int, float)) and not isinstance(v, bool)
            } if isinstance(completed_by, dict) else {},
            forecast_history={
                str(k): _forecast_deque(_points(v)) for k, v in forecast_raw.items()
            } if isinstance(forecast_raw, dict) else {},
            backlog_history=_backlog_deque(_points(data.get("backlog_history"))),
            quota_history={
                str(k): _quota_deque(s for s in v if isinstance(s, dict))
                for k, v in quota_raw.items() if isinstance(v, list)
            } if isinstance(quota_raw, dict) else {},
        )


@dataclass
class MetricsSnapshot:
    """One full SLA snapshot, as produced by ``recompute`` and persisted."""

    generated_at: Optional[float] = None
    pending: Dict[str, Any] = field(default_factory=dict)
    throughput: Dict[str, Any] = field(default_factory=dict)
    failures: Dict[str, Any] = field(default_factory=dict)
    durations: Dict[str, Any] = field(default_factory=dict)
    forecast: Dict[str, Any] = field(default_factory=dict)
    saturation: Dict[str, Any] = field(default_factory=dict)
    backlog: Dict[str, Any] = field(default_factory=dict)
    quotas: Dict[str, Any] = field(default_factory=dict)
    state: MetricsState = field(default_factory=MetricsState)
    version: int = SNAPSHOT_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "generated_at": self.generated_at,
            "pending": self.pending,
            "throughput": self.throughput,
            "failures": self.failures,
            "durations": self.durations,
            "forecast": self.forecast,
            "saturation": self.saturation,
            "backlog": self.backlog,
            "quotas": self.quotas,
            "state": self.state.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "MetricsSnapshot":
        if not isinstance(data, dict):
            return cls()

        def _section(key: str) -> Dict[str, Any]:
            value = data.get(key)
            return value if isinstance(value, dict) else {}

        try:
            version = int(data.get("version", SNAPSHOT_VERSION))
        except (TypeError, ValueError):
            version = SNAPSHOT_VERSION

        return cls(
            generated_at=_float_or_none(data.get("generated_at")),
            pending=_section("pending"),
            throughput=_section("throughput"),
            failures=_section("failures"),
            durations=_section("durations"),
            forecast=_section("forecast"),
            saturation=_section("saturation"),
            backlog=_section("backlog"),
            quotas=_section("quotas"),
            state=MetricsState.from_dict(data.get("state")),
            version=version,
        )
