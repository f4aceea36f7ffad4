# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Minimal synchronous event emitter for purge lifecycle signals.

Topics emitted by the worker:

- ``completed``:          ``{file, destinations, attempts, duration}``
- ``permanent_failure``:  ``{file, entry, errors, destinations}``
- ``delayed``:            ``{file, attempts, wait, max_delay}``

Handlers run in the emitting thread.  A handler that raises is logged and
skipped; it never interrupts the worker or the other handlers.
"""

from collections import defaultdict
from typing import Any, Callable, Dict, List

from remote_purge.utils.logger import get_logger

logger = get_logger()

TOPIC_COMPLETED = "completed"
TOPIC_PERMANENT_FAILURE = "permanent_failure"
TOPIC_DELAYED = "delayed"

Handler = Callable[[str, Dict[str, Any]], None]


class EventEmitter:
    """Topic → handlers fan-out.

    Usage::

        emitter = EventEmitter()
        emitter.subscribe("permanent_failure", notify_operator)
        emitter.emit("permanent_failure", {"file": "backup-A.zip", ...})
    """

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> None:
        self._handlers[topic].append(handler)

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        if handler in self._handlers.get(topic, []):
            self._handlers[topic].remove(handler)

    def emit(self, topic: str, payload: Dict[str, Any]) -> int:
        """Deliver *payload* to every handler of *topic*.

        Returns:
            Number of handlers that ran without raising.
        """
        delivered = 0
        for handler in list(self._handlers.get(topic, [])):
            try:
                handler(topic, payload)
                delivered += 1
            except Exception:
                logger.exception(f"Event handler {handler!r} failed for topic '{topic}'")
        logger.debug(f"Emitted '{topic}' for {payload.get('file', '?')} to {delivered} handler(s)")
        return delivered
