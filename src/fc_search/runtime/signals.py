"""Translate SIGINT/SIGTERM into a shutdown event for ``fc-search serve``."""

from __future__ import annotations

import asyncio
import logging
import signal


logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def install_shutdown_signals(shutdown_event: asyncio.Event | None = None) -> asyncio.Event:
    """Register loop signal handlers that set ``shutdown_event`` and return it.

    Must be called from inside the running loop. The first signal starts the
    graceful shutdown; later ones are only logged while schedulers stop.
    """
    if shutdown_event is None:
        shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _on_signal(sig: signal.Signals) -> None:
        if shutdown_event.is_set():
            logger.warning("Received %s again, shutdown already in progress", sig.name)
            return
        logger.info("Received %s, stopping channel schedulers", sig.name)
        shutdown_event.set()

    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, _on_signal, sig)
        except (NotImplementedError, RuntimeError):  # pragma: no cover - platform without loop signal support
            logger.debug("Signal %s cannot be handled by the event loop", sig.name)

    return shutdown_event


def remove_shutdown_signals() -> None:
    """Restore default handling of the shutdown signals on the running loop."""
    loop = asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        loop.remove_signal_handler(sig)
