"""Periodic branch rediscovery."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from .base_scheduler_service import BaseSchedulerService


class DiscoverySchedulerService(BaseSchedulerService):
    """Re-read the upstream branch list on a cron schedule and reconcile the channels."""

    def __init__(self, rediscover: Callable[[], Awaitable[dict[str, Any]]], *, refresh_schedule: str | None) -> None:
        super().__init__(
            mode="discovery",
            refresh_schedule=refresh_schedule,
            enabled=bool(refresh_schedule),
            run_on_start=False,
        )
        self._rediscover = rediscover

    async def _execute_refresh_impl(self) -> dict:
        return await self._rediscover()
