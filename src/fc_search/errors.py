"""Exception hierarchy shared across the indexing, channel and upstream layers."""

from __future__ import annotations


class FcSearchError(Exception):
    """Base class for all fc-search failures."""


class UpstreamError(FcSearchError):
    """The revision source could not tell us the current upstream commit."""


class BuildError(FcSearchError):
    """The record builder failed or exceeded its time budget."""


class IndexStoreError(FcSearchError):
    """An index directory could not be created, opened or committed."""


class CacheError(FcSearchError):
    """A channel cache artifact could not be written."""
