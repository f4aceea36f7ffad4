# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Destination backed by a mounted directory (NAS share, sshfs/rclone mount).

Deletes ``<path>/<file>`` and reports the volume's disk usage with each
result, so the metrics engine can sample quota pressure without a separate
call.  OS errors with an errno (EBUSY, ESTALE, EIO, ...) are raised as
``RetryableError`` for the in-run retry; a missing file counts as deleted.
"""

import shutil
from pathlib import Path
from typing import Any, Dict

from remote_purge.destinations.base import DeleteResult, PurgeDestination
from remote_purge.utils.logger import get_logger
from remote_purge.utils.retry_handler import RetryableError

logger = get_logger()


class LocalDirectoryDestination(PurgeDestination):
    """Delete archives from a directory tree.

    Config block::

        nas:
          type: local
          path: /mnt/backups
          label: "Office NAS"
          quota_bytes: 500000000000   # optional, overrides volume size
    """

    def __init__(self, destination_id: str, config: Dict[str, Any]):
        super().__init__(destination_id, config)
        path = config.get("path")
        if not path:
            raise ValueError(f"destination '{destination_id}' requires a 'path'")
        self.root = Path(path)
        self.quota_bytes = config.get("quota_bytes")

    def delete_by_name(self, file: str) -> DeleteResult:
        if not self.root.is_dir():
            return DeleteResult(
                success=False,
                message=f"Destination directory not available: {self.root}",
            )

        target = self.root / Path(file).name
        try:
            target.unlink()
            logger.debug(f"Deleted {target} from {self.name()}")
            message = "Deleted"
        except FileNotFoundError:
            message = "Already absent"
        except PermissionError:
            return DeleteResult(success=False, message=f"Permission denied: {target}")
        except OSError as e:
            if e.errno is None:
                return DeleteResult(success=False, message=f"Failed to delete {target}: {e}")
            # retry_on_errnos decides whether with_retry tries again
            raise RetryableError(f"Failed to delete {target}: {e}", os_errno=e.errno) from e

        return DeleteResult(success=True, message=message, usage=self._usage())

    def _usage(self) -> Dict[str, Any]:
        try:
            total, used, free = shutil.disk_usage(self.root)
        except OSError as e:
            logger.debug(f"Disk usage unavailable for {self.root}: {e}")
            return {}
        if self.quota_bytes:
            quota = int(self.quota_bytes)
            return {"used": used, "quota": quota, "free": max(0, quota - used)}
        return {"used": used, "quota": total, "free": free}
