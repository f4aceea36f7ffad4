# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

from remote_purge.monitoring.events import EventEmitter
from remote_purge.monitoring.history import HistorySink

__all__ = ["EventEmitter", "HistorySink"]
