"""Per-channel refresh scheduler.

The scheduler keeps only a weak reference to its channel: once the
registry drops the channel the loop notices and exits on its own.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
import weakref

from .base_scheduler_service import BaseSchedulerService


if TYPE_CHECKING:
    from fc_search.channel import ChannelSearcher


class ChannelSchedulerService(BaseSchedulerService):
    """Tick one channel on a cron schedule."""

    def __init__(
        self,
        channel: ChannelSearcher,
        *,
        refresh_schedule: str | None,
        initial_delay: float = 0.0,
        run_on_start: bool = True,
        enabled: bool = True,
    ) -> None:
        super().__init__(
            mode="channel",
            refresh_schedule=refresh_schedule,
            enabled=enabled,
            initial_delay=initial_delay,
            run_on_start=run_on_start,
        )
        self.channel_name = channel.name
        self._channel_ref = weakref.ref(channel)

    def _should_continue(self) -> bool:
        return self._channel_ref() is not None

    async def _execute_refresh_impl(self) -> dict:
        channel = self._channel_ref()
        if channel is None:
            return {"success": True, "message": "channel dropped"}
        result = await channel.tick()
        return result.to_dict()

    def _extra_stats(self) -> dict[str, Any]:
        return {"channel": self.channel_name}
