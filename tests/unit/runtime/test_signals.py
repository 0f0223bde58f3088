"""Tests for runtime signals."""

import asyncio
import os
import signal

from fc_search.runtime.signals import install_shutdown_signals, remove_shutdown_signals


async def test_sigterm_sets_shutdown_event():
    event = install_shutdown_signals()
    try:
        os.kill(os.getpid(), signal.SIGTERM)
        await asyncio.wait_for(event.wait(), timeout=1.0)
    finally:
        remove_shutdown_signals()

    assert event.is_set()


async def test_reuses_given_event():
    existing = asyncio.Event()
    try:
        assert install_shutdown_signals(existing) is existing
    finally:
        remove_shutdown_signals()
