"""
Lumen Shared - Service Base.
Common lifecycle and status contract for long-running service components.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ServiceBase(ABC):
    """
    Abstract base for service components with a process lifecycle.

    Implementations own background work started in ``initialize`` and must
    release it in ``shutdown``.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Start background work and mark the service ready."""
        ...

    @abstractmethod
    async def shutdown(self) -> None:
        """Stop background work and release open resources."""
        ...

    @abstractmethod
    async def get_status(self) -> dict[str, Any]:
        """
        Report current status.

        Returns
        -------
        dict[str, Any]
            At minimum ``status`` ("operational", "initializing", "degraded"),
            ``initialized`` and ``statistics``.
        """
        ...

    @property
    @abstractmethod
    def stats(self) -> dict[str, int]:
        """Service-specific counters."""
        ...

    @property
    def is_initialized(self) -> bool:
        return getattr(self, "_initialized", False)
