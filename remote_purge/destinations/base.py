# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Abstract base class for remote purge destinations."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class DestinationError(Exception):
    """Raised by adapters for a failed remote operation."""
    pass


class UnresolvedDestinationError(DestinationError):
    """No adapter could be built for a destination id."""

    def __init__(self, destination_id: str, reason: str = ""):
        message = f"Unknown destination: {destination_id}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.destination_id = destination_id


@dataclass
class DeleteResult:
    """Outcome of a single remote deletion.

    ``usage`` optionally carries whatever storage usage figures the remote
    returned alongside the deletion (used/quota/free, in bytes).
    """
    success: bool
    message: str = ""
    usage: Optional[Dict[str, Any]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def coerce(cls, raw: Any) -> "DeleteResult":
        """Normalize an adapter return value.

        Adapters may return a DeleteResult, a mapping shaped like
        ``{"success": bool, "message": str, "usage": {...}}``, or a bare bool.
        """
        if isinstance(raw, DeleteResult):
            return raw
        if isinstance(raw, dict):
            usage = raw.get("usage")
            extra = {
                k: v for k, v in raw.items()
                if k not in ("success", "message", "usage")
            }
            return cls(
                success=bool(raw.get("success", False)),
                message=str(raw.get("message") or "").strip(),
                usage=usage if isinstance(usage, dict) else None,
                extra=extra,
            )
        if isinstance(raw, bool):
            return cls(success=raw)
        return cls(success=False)


class PurgeDestination(ABC):
    """
    Abstract base class for remote storage destinations.

    Every backend the purge worker can delete from implements this interface.
    Implementations must be safe to call repeatedly for the same name: an
    object that is already gone counts as a successful deletion.
    """

    def __init__(self, destination_id: str, config: Dict[str, Any]):
        """
        Args:
            destination_id: Identifier used in purge entries (e.g. "s3").
            config: The destination's own settings block.
        """
        self.destination_id = destination_id
        self.config = config

    def name(self) -> str:
        """Human-readable destination name."""
        return str(self.config.get("label") or self.destination_id)

    @abstractmethod
    def delete_by_name(self, file: str) -> DeleteResult:
        """
        Delete the archive called *file* from the remote.

        Args:
            file: Archive basename.

        Returns:
            DeleteResult describing the outcome.  Adapters may also raise;
            the worker records the exception message as the failure.
        """
        pass
