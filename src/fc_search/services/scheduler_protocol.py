"""Shared interface for refresh schedulers."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class RefreshSchedulerProtocol(Protocol):
    """Scheduler surface consumed by the application runtime."""

    @property
    def is_initialized(self) -> bool:  # pragma: no cover - Protocol only
        """Return True once the scheduler loop was started."""

    @property
    def running(self) -> bool:  # pragma: no cover - Protocol only
        """Return True while a background scheduler loop is active."""

    @property
    def stats(self) -> dict[str, object]:  # pragma: no cover - Protocol only
        """Return scheduler-specific counters."""

    async def initialize(self) -> bool:  # pragma: no cover - Protocol only
        """Start the scheduler."""

    async def stop(self) -> None:  # pragma: no cover - Protocol only
        """Stop the scheduler and release resources."""

    async def trigger_refresh(self) -> dict:  # pragma: no cover - Protocol only
        """Run one refresh now and return structured status."""
