"""Shared lifecycle primitives for cron-driven refresh schedulers."""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from contextlib import suppress
from datetime import datetime, timezone
import logging
from typing import Any

from cron_converter import Cron

from .scheduler_protocol import RefreshSchedulerProtocol


logger = logging.getLogger(__name__)

BASE_RETRY_DELAY = 60.0
MAX_RETRY_DELAY = 3600.0
MAX_IDLE_WAIT = 60.0


class BaseSchedulerService(RefreshSchedulerProtocol, ABC):
    """Provide common lifecycle/state management for scheduler services.

    The loop optionally waits ``initial_delay`` seconds, runs one refresh
    when ``run_on_start`` is set, then follows the cron schedule. Failed
    refreshes back off exponentially from one minute up to one hour.
    """

    def __init__(
        self,
        *,
        mode: str,
        refresh_schedule: str | None = None,
        enabled: bool = True,
        initial_delay: float = 0.0,
        run_on_start: bool = True,
    ) -> None:
        self.mode = mode
        self.refresh_schedule = refresh_schedule
        self.enabled = enabled
        self.initial_delay = initial_delay
        self.run_on_start = run_on_start
        self._cron = self._build_cron(refresh_schedule)

        self._initialized = False
        self._running = False
        self._scheduler_task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

        self._total_runs = 0
        self._errors = 0
        self._last_run_at: datetime | None = None
        self._next_run_at: datetime | None = None
        self._last_result: dict[str, Any] | None = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def running(self) -> bool:
        if self._scheduler_task:
            return self._running and not self._scheduler_task.done()
        return self._running

    @property
    def stats(self) -> dict[str, Any]:
        base_stats: dict[str, Any] = {
            "mode": self.mode,
            "refresh_schedule": self.refresh_schedule,
            "total_runs": self._total_runs,
            "last_run_at": self._datetime_to_iso(self._last_run_at),
            "next_run_at": self._datetime_to_iso(self._next_run_at),
            "errors": self._errors,
            "last_result": self._last_result,
        }
        base_stats.update(self._extra_stats())
        return base_stats

    async def initialize(self) -> bool:
        if self.is_initialized:
            return True
        if not self.enabled:
            logger.debug("Scheduler disabled; skipping initialization")
            return False

        self._initialized = True
        self._start_scheduler_loop()
        return True

    async def stop(self) -> None:
        self._stop_event.set()
        if self._scheduler_task is not None:
            self._scheduler_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._scheduler_task
            self._scheduler_task = None

        self._running = False
        self._initialized = False

    async def trigger_refresh(self) -> dict:
        if not self.is_initialized:
            return {"success": False, "message": "Scheduler not initialized"}
        return await self._execute_and_record()

    def _build_cron(self, schedule: str | None) -> Cron | None:
        if not schedule:
            return None
        try:
            return Cron(schedule)
        except Exception as exc:  # pragma: no cover - invalid config should fail fast
            logger.error("Invalid cron schedule '%s': %s", schedule, exc)
            raise

    def _start_scheduler_loop(self) -> None:
        if self._scheduler_task and not self._scheduler_task.done():
            return

        self._stop_event.clear()
        self._running = True
        self._scheduler_task = asyncio.create_task(self._run_scheduler_loop())

    async def _sleep(self, seconds: float) -> bool:
        """Wait up to ``seconds``; return True when stop was requested meanwhile."""
        if seconds <= 0:
            return self._stop_event.is_set()
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def _run_scheduler_loop(self) -> None:
        consecutive_failures = 0

        try:
            if await self._sleep(self.initial_delay):
                return

            run_now = self.run_on_start
            while not self._stop_event.is_set() and self._should_continue():
                if not run_now:
                    if self._cron is None:
                        break
                    now = datetime.now(timezone.utc)
                    next_run = self._cron.schedule(start_date=self._last_run_at or now).next()
                    self._next_run_at = next_run

                    wait_seconds = (next_run - now).total_seconds()
                    if wait_seconds > 0:
                        if await self._sleep(min(wait_seconds, MAX_IDLE_WAIT)):
                            break
                        if wait_seconds > MAX_IDLE_WAIT:
                            continue
                run_now = False

                result = await self._execute_and_record()
                if result.get("success"):
                    consecutive_failures = 0
                    continue

                consecutive_failures += 1
                delay = min(BASE_RETRY_DELAY * (2 ** (consecutive_failures - 1)), MAX_RETRY_DELAY)
                logger.info("Refresh failed %d time(s) in a row; retrying in %.0fs", consecutive_failures, delay)
                if await self._sleep(delay):
                    break
                run_now = True
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            raise
        except Exception:  # pragma: no cover - defensive logging
            logger.error("Scheduler loop failed", exc_info=True)
        finally:
            self._running = False

    async def _execute_and_record(self) -> dict:
        try:
            result = await self._execute_refresh_impl()
        except Exception as exc:
            logger.error("Scheduled refresh failed: %s", exc, exc_info=True)
            result = {"success": False, "message": f"Scheduled refresh error: {exc}"}

        self._record_result(result)
        return result

    def _record_result(self, result: dict) -> None:
        self._last_run_at = datetime.now(timezone.utc)
        self._last_result = result
        if result.get("success"):
            self._total_runs += 1
        else:
            self._errors += 1

    def _datetime_to_iso(self, value: datetime | None) -> str | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()

    def _extra_stats(self) -> dict[str, Any]:
        return {}

    def _should_continue(self) -> bool:
        return True

    @abstractmethod
    async def _execute_refresh_impl(self) -> dict:
        """Execute a single refresh run."""
