# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""JSON-file purge queue store.

Holds one record per archive keyed by basename, in registration order.
Every mutation re-reads the file, applies the change and writes the whole
document back atomically (temp file + ``os.replace``), so a crash mid-write
leaves the previous version intact.
"""

import json
import os
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from remote_purge.purge_queue.models import PurgeEntry, PurgeStatus
from remote_purge.utils.logger import get_logger

logger = get_logger()

STORE_VERSION = 1


def normalize_file_name(file: str) -> str:
    """Reduce an archive reference to its basename."""
    name = os.path.basename(str(file or "").replace("\\", "/").rstrip("/"))
    return name.strip()


def _record_file(record: Any) -> Optional[str]:
    return record.get("file") if isinstance(record, dict) else None


class JsonPurgeQueueStore:
    """Durable purge queue backed by a single JSON document.

    Usage::

        store = JsonPurgeQueueStore("data/purge/queue.json")
        store.register_purge("backup-A.zip", ["s3", "b2"])
        for entry in store.load():
            ...
    """

    def __init__(
        self,
        path: str = "data/purge/queue.json",
        clock: Callable[[], float] = time.time,
    ):
        self.path = Path(path)
        self._clock = clock
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    def register_purge(
        self,
        file: str,
        destinations: Iterable[str],
        now: Optional[float] = None,
    ) -> PurgeEntry:
        """Create a pending entry for *file* unless an open one exists.

        Args:
            file: Archive name or path; only the basename is kept.
            destinations: Destination ids that must confirm the deletion.
            now: Registration timestamp (defaults to the store clock).

        Returns:
            The new entry, or the existing open entry for *file*.

        Raises:
            ValueError: If the file name is empty or no destination is given.
        """
        name = normalize_file_name(file)
        if not name:
            raise ValueError(f"Cannot register purge for empty file name: {file!r}")

        unique: List[str] = []
        for destination_id in destinations:
            destination_id = str(destination_id).strip()
            if destination_id and destination_id not in unique:
                unique.append(destination_id)
        if not unique:
            raise ValueError(f"No destinations given for {name}")

        now = self._clock() if now is None else now

        with self._lock:
            records = self._read_records()
            for index, record in enumerate(records):
                if _record_file(record) != name:
                    continue
                try:
                    existing = PurgeEntry.from_dict(record)
                except ValueError:
                    existing = None
                if existing is not None and existing.is_open:
                    logger.debug(f"Purge already queued for {name}, keeping existing entry")
                    return existing
                # Terminal or unreadable record: replace with a fresh intent
                del records[index]
                break

            entry = PurgeEntry(
                file=name,
                destinations=unique,
                status=PurgeStatus.PENDING,
                attempts=0,
                registered_at=now,
                next_attempt_at=now,
            )
            records.append(entry.to_dict())
            self._write_records(records)

        logger.info(f"Registered remote purge for {name} → {', '.join(unique)}")
        return entry

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load(self) -> List[PurgeEntry]:
        """Return all entries in store order, skipping malformed records."""
        entries: List[PurgeEntry] = []
        with self._lock:
            records = self._read_records()
        for record in records:
            try:
                entries.append(PurgeEntry.from_dict(record))
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed purge record: {e}")
        return entries

    def get(self, file: str) -> Optional[PurgeEntry]:
        name = normalize_file_name(file)
        for entry in self.load():
            if entry.file == name:
                return entry
        return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update(self, file: str, **fields: Any) -> Optional[PurgeEntry]:
        """Apply a partial update to the entry for *file*.

        Args:
            file: Archive name.
            **fields: PurgeEntry attribute names and new values.  ``status``
                accepts either a PurgeStatus or its string value.

        Returns:
            The updated entry, or None if no entry exists for *file*.

        Raises:
            AttributeError: If a field is not a PurgeEntry attribute.
        """
        name = normalize_file_name(file)
        with self._lock:
            records = self._read_records()
            for index, record in enumerate(records):
                if _record_file(record) != name:
                    continue
                entry = PurgeEntry.from_dict(record)
                for key, value in fields.items():
                    if not hasattr(entry, key):
                        raise AttributeError(f"PurgeEntry has no field '{key}'")
                    if key == "status" and not isinstance(value, PurgeStatus):
                        value = PurgeStatus(value)
                    setattr(entry, key, value)
                records[index] = entry.to_dict()
                self._write_records(records)
                return entry
        logger.warning(f"Purge update ignored, no entry for {name}")
        return None

    def mark_completed(self, file: str, destinations: Iterable[str]) -> Optional[PurgeEntry]:
        """Record that *destinations* confirmed deletion of *file*.

        The destinations leave the entry's remaining set and join its
        ``purged`` list.  Status is left to the caller.
        """
        done = [str(d) for d in destinations]
        name = normalize_file_name(file)
        with self._lock:
            records = self._read_records()
            for index, record in enumerate(records):
                if _record_file(record) != name:
                    continue
                entry = PurgeEntry.from_dict(record)
                entry.destinations = [d for d in entry.destinations if d not in done]
                for destination_id in done:
                    if destination_id not in entry.purged:
                        entry.purged.append(destination_id)
                records[index] = entry.to_dict()
                self._write_records(records)
                return entry
        return None

    def remove(self, file: str) -> bool:
        name = normalize_file_name(file)
        with self._lock:
            records = self._read_records()
            kept = [r for r in records if _record_file(r) != name]
            if len(kept) == len(records):
                return False
            self._write_records(kept)
        logger.info(f"Removed purge entry {name}")
        return True

    def prune_terminal(self, older_than_seconds: float, now: Optional[float] = None) -> int:
        """Drop completed/failed entries whose terminal time is older than the cutoff.

        Returns:
            Number of records removed.
        """
        now = self._clock() if now is None else now
        cutoff = now - older_than_seconds
        with self._lock:
            records = self._read_records()
            kept: List[Dict[str, Any]] = []
            for record in records:
                try:
                    entry = PurgeEntry.from_dict(record)
                except ValueError:
                    kept.append(record)
                    continue
                finished_at = entry.completed_at or entry.failed_at
                if entry.is_terminal and finished_at is not None and finished_at < cutoff:
                    continue
                kept.append(record)
            removed = len(records) - len(kept)
            if removed:
                self._write_records(kept)
        if removed:
            logger.info(f"Pruned {removed} terminal purge entries")
        return removed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _read_records(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            quarantine = self.path.with_name(
                f"{self.path.name}.corrupt-{int(self._clock())}"
            )
            os.replace(self.path, quarantine)
            logger.error(f"Purge queue {self.path} is corrupt ({e}); moved to {quarantine}")
            return []

        if isinstance(document, list):
            records = document
        elif isinstance(document, dict):
            records = document.get("entries", [])
        else:
            records = []
        return list(records) if isinstance(records, list) else []

    def _write_records(self, records: List[Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f".{self.path.name}.{os.getpid()}.tmp")
        payload = {"version": STORE_VERSION, "entries": records}
        tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)
