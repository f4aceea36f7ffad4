# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Destination registry: maps destination ids to adapter instances.

Destination ids come from ``config["destinations"]``; each block names a
``type`` that must have a registered constructor.
"""

from typing import Any, Callable, Dict, List, Optional

from remote_purge.destinations.base import PurgeDestination, UnresolvedDestinationError
from remote_purge.destinations.local import LocalDirectoryDestination
from remote_purge.utils.logger import get_logger

logger = get_logger()

DestinationFactory = Callable[[str, Dict[str, Any]], PurgeDestination]

_BUILTIN_TYPES: Dict[str, DestinationFactory] = {
    "local": LocalDirectoryDestination,
}


class DestinationRegistry:
    """Resolve destination ids into adapters, caching built instances.

    Usage::

        registry = DestinationRegistry(config)
        registry.register_type("s3", S3Destination)
        adapter = registry.resolve("s3-eu")   # may raise UnresolvedDestinationError
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Args:
            config: Full merged configuration dict.  Reads destination
                    definitions from ``config["destinations"]``.
        """
        self._settings: Dict[str, Dict[str, Any]] = dict(
            (config or {}).get("destinations", {}) or {}
        )
        self._factories: Dict[str, DestinationFactory] = dict(_BUILTIN_TYPES)
        self._instances: Dict[str, PurgeDestination] = {}

    def register_type(self, type_name: str, factory: DestinationFactory) -> None:
        """Make a destination ``type`` available to config blocks."""
        self._factories[type_name] = factory

    def register_instance(self, destination_id: str, destination: PurgeDestination) -> None:
        """Bind an already-built adapter to *destination_id*."""
        self._instances[destination_id] = destination

    def known_ids(self) -> List[str]:
        return sorted(set(self._settings) | set(self._instances))

    def resolve(self, destination_id: str) -> PurgeDestination:
        """Return the adapter for *destination_id*.

        Raises:
            UnresolvedDestinationError: If the id is not configured, its type
                has no constructor, or the constructor fails.
        """
        if destination_id in self._instances:
            return self._instances[destination_id]

        settings = self._settings.get(destination_id)
        if not isinstance(settings, dict):
            raise UnresolvedDestinationError(destination_id)

        type_name = str(settings.get("type", ""))
        factory = self._factories.get(type_name)
        if factory is None:
            raise UnresolvedDestinationError(destination_id, f"unsupported type '{type_name}'")

        try:
            destination = factory(destination_id, settings)
        except (ValueError, TypeError, KeyError, OSError) as e:
            logger.error(f"Could not build destination {destination_id} ({type_name}): {e}")
            raise UnresolvedDestinationError(destination_id, str(e)) from e

        self._instances[destination_id] = destination
        return destination
