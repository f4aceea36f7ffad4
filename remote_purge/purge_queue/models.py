# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Purge entry and outcome records.

A :class:`PurgeEntry` is one archive that still has to be deleted from one or
more destinations.  A :class:`PurgeOutcome` is what the worker observed when
it processed an entry during a run; outcomes feed the metrics engine.
"""

import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class PurgeStatus(Enum):
    """Lifecycle states of a purge entry."""
    PENDING = "pending"
    RETRY = "retry"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


ELIGIBLE_STATUSES = (PurgeStatus.PENDING, PurgeStatus.RETRY)
OPEN_STATUSES = (PurgeStatus.PENDING, PurgeStatus.RETRY, PurgeStatus.PROCESSING)
TERMINAL_STATUSES = (PurgeStatus.COMPLETED, PurgeStatus.FAILED)


def _optional_float(value: Any) -> Optional[float]:
    """Coerce a stored timestamp/duration, returning None for junk."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


@dataclass
class PurgeEntry:
    """One archive awaiting deletion confirmation across destinations."""

    file: str
    destinations: List[str]
    status: PurgeStatus = PurgeStatus.PENDING
    attempts: int = 0
    registered_at: Optional[float] = None
    last_attempt_at: Optional[float] = None
    next_attempt_at: Optional[float] = None
    failed_at: Optional[float] = None
    completed_at: Optional[float] = None
    last_delay: float = 0.0
    max_delay: float = 0.0
    delay_alerted: bool = False
    errors: Dict[str, str] = field(default_factory=dict)
    last_error: str = ""
    purged: List[str] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PurgeEntry":
        """Build an entry from a stored record.

        Raises:
            ValueError: If the record has no usable file name, an unknown
                status, or a destinations field that is not a list.
        """
        if not isinstance(data, dict):
            raise ValueError(f"purge record must be a mapping, got {type(data).__name__}")

        file = str(data.get("file") or "").strip()
        if not file:
            raise ValueError("purge record has no file name")

        destinations = data.get("destinations", [])
        if not isinstance(destinations, list):
            raise ValueError(f"purge record {file!r} has non-list destinations")

        errors = data.get("errors") or {}
        if not isinstance(errors, dict):
            errors = {}

        purged = data.get("purged") or []
        if not isinstance(purged, list):
            purged = []

        return cls(
            file=file,
            destinations=[str(d) for d in destinations],
            status=PurgeStatus(data.get("status", PurgeStatus.PENDING.value)),
            attempts=max(0, int(data.get("attempts", 0) or 0)),
            registered_at=_optional_float(data.get("registered_at")),
            last_attempt_at=_optional_float(data.get("last_attempt_at")),
            next_attempt_at=_optional_float(data.get("next_attempt_at")),
            failed_at=_optional_float(data.get("failed_at")),
            completed_at=_optional_float(data.get("completed_at")),
            last_delay=_optional_float(data.get("last_delay")) or 0.0,
            max_delay=_optional_float(data.get("max_delay")) or 0.0,
            delay_alerted=bool(data.get("delay_alerted", False)),
            errors={str(k): str(v) for k, v in errors.items()},
            last_error=str(data.get("last_error") or ""),
            purged=[str(d) for d in purged],
        )


@dataclass
class PurgeOutcome:
    """What happened to one entry during one worker run."""

    outcome: str  # "completed" | "failed" | "retry"
    file: str
    registered_at: Optional[float]
    timestamp: float
    attempts: int
    destinations: List[str] = field(default_factory=list)
    succeeded: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)
    duration: Optional[float] = None
    max_delay: Optional[float] = None
    quota_samples: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
