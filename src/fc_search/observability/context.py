"""Context propagation for trace and channel correlation across async boundaries.

The context is a plain dict in a ``ContextVar``: ``trace_id`` and ``span_id``
always, plus ``channel`` and ``revision`` while a channel is loading or
ticking. Tasks started inside a block inherit a copy.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from uuid import uuid4


trace_context: ContextVar[dict | None] = ContextVar("trace_context", default=None)


def generate_trace_id() -> str:
    return uuid4().hex


def generate_span_id() -> str:
    return uuid4().hex[:16]


def get_trace_context() -> dict:
    """Return the current context, starting a fresh trace when there is none."""
    ctx = trace_context.get()
    if ctx is None or not ctx.get("trace_id"):
        ctx = {"trace_id": generate_trace_id(), "span_id": generate_span_id()}
        trace_context.set(ctx)
    return ctx


def set_trace_context(trace_id: str, span_id: str, **extra: object) -> None:
    trace_context.set({"trace_id": trace_id, "span_id": span_id, **extra})


def update_span_id(span_id: str) -> None:
    """Point log correlation at a new span of the same trace."""
    ctx = trace_context.get() or {}
    trace_context.set({**ctx, "span_id": span_id})


def bind_revision(revision: str) -> None:
    """Attach the revision being built to the current channel context."""
    trace_context.set({**get_trace_context(), "revision": revision})


@contextmanager
def channel_context(channel: str) -> Iterator[None]:
    """Tag log records emitted inside the block with ``channel``."""
    ctx = {key: value for key, value in get_trace_context().items() if key != "revision"}
    token = trace_context.set({**ctx, "channel": channel})
    try:
        yield
    finally:
        trace_context.reset(token)
