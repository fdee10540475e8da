"""Parameter cache shared by the download and write coordinators."""

import asyncio
from datetime import datetime

from mavparam_gateway.core.models import Parameter


class ParameterCache:
    """Async-safe in-memory cache of vehicle parameters.

    Parameters are keyed by upper-cased name, so lookups are
    case-insensitive. Stored ``Parameter`` objects are immutable and are
    replaced whole, so a reader never observes a half-updated entry.
    """

    def __init__(self) -> None:
        """Initialize empty parameter cache."""
        self._lock = asyncio.Lock()
        self._parameters: dict[str, Parameter] = {}
        self._last_update: datetime | None = None

    @staticmethod
    def _key(name: str) -> str:
        return name.strip().upper()

    async def get(self, name: str) -> Parameter | None:
        """Get parameter by name (case-insensitive)."""
        async with self._lock:
            return self._parameters.get(self._key(name))

    async def get_all(self) -> list[Parameter]:
        """Get all cached parameters sorted by name."""
        async with self._lock:
            return [self._parameters[key] for key in sorted(self._parameters)]

    async def set(self, param: Parameter) -> None:
        """Store or update a parameter."""
        async with self._lock:
            self._parameters[self._key(param.name)] = param
            self._last_update = datetime.now()

    async def remove(self, name: str) -> bool:
        """Remove parameter by name.

        Returns:
            True if parameter was removed, False if not found.
        """
        async with self._lock:
            return self._parameters.pop(self._key(name), None) is not None

    async def clear(self) -> None:
        """Remove all cached parameters."""
        async with self._lock:
            self._parameters.clear()
            self._last_update = None

    @property
    def last_update(self) -> datetime | None:
        """Get timestamp of last cache update."""
        return self._last_update

    @property
    def count(self) -> int:
        """Get number of cached parameters."""
        return len(self._parameters)
