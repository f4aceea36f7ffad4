# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Operator-facing history of purge activity.

Each line goes to the loguru logger (so it lands in the execution log) and
to a JSON-lines file the dashboard can tail.  Writing history must never
break a purge run, so file errors are logged and dropped.
"""

import json
import time
from collections import deque
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional

from remote_purge.utils.logger import get_logger

logger = get_logger()

# History level → loguru level
_LEVELS = {
    "info": "INFO",
    "success": "SUCCESS",
    "warning": "WARNING",
    "failure": "ERROR",
}


class HistorySink:
    """Fire-and-forget history log."""

    def __init__(
        self,
        path: Optional[str] = "data/logs/purge_history.jsonl",
        recent_size: int = 200,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            path: JSON-lines file to append to; None keeps history in memory only.
            recent_size: How many lines to keep in memory for ``recent()``.
            clock: Timestamp source.
        """
        self.path = Path(path) if path else None
        self._clock = clock
        self._recent: Deque[Dict[str, Any]] = deque(maxlen=recent_size)

    def log(self, category: str, level: str, message: str) -> None:
        if level not in _LEVELS:
            logger.debug(f"Unknown history level '{level}', using info")
            level = "info"

        line = {
            "timestamp": self._clock(),
            "category": category,
            "level": level,
            "message": message,
        }
        self._recent.append(line)
        logger.log(_LEVELS[level], f"[{category}] {message}")

        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(line) + "\n")
        except OSError as e:
            logger.warning(f"Could not append purge history to {self.path}: {e}")

    def recent(self, category: Optional[str] = None) -> List[Dict[str, Any]]:
        """Recent lines, oldest first, optionally filtered by category."""
        lines = list(self._recent)
        if category is not None:
            lines = [line for line in lines if line["category"] == category]
        return lines
