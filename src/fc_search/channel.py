"""One served channel: a branch, its two searchers, and the refresh tick.

A channel is either inactive (nothing to serve, every search returns an
empty page) or active (both searchers hold records of the same revision).
The searchers and the branch they were built from are published together
as one ``_ChannelContent`` swapped under ``_lock``; searches only take the
lock long enough to copy that reference.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
import logging
import threading
from typing import Any

import anyio

from fc_search.domain.branch import Branch, RevisionKind
from fc_search.domain.records import OptionRecord, PackageRecord
from fc_search.errors import BuildError, CacheError, IndexStoreError, UpstreamError
from fc_search.observability.context import bind_revision, channel_context
from fc_search.observability.metrics import (
    CHANNEL_ACTIVE,
    CHANNEL_REFRESHES,
    INDEXED_DOCUMENTS,
    SEARCH_LATENCY,
    track_latency,
)
from fc_search.observability.tracing import channel_span
from fc_search.search import GenericSearcher, OptionKind, PackageKind, SearchPage
from fc_search.upstream.ports import RecordBuilder, RevisionSource
from fc_search.utils.channel_cache import ChannelCache


logger = logging.getLogger(__name__)


class ChannelUpdateStatus(str, Enum):
    UPDATED = "updated"
    ACTIVATED = "activated"
    UP_TO_DATE = "up_to_date"
    FETCH_FAILED = "fetch_failed"
    BUILD_FAILED = "build_failed"


@dataclass(frozen=True)
class ChannelUpdateResult:
    """Outcome of one tick."""

    status: ChannelUpdateStatus
    message: str
    revision: str | None = None

    @property
    def success(self) -> bool:
        return self.status in (
            ChannelUpdateStatus.UPDATED,
            ChannelUpdateStatus.ACTIVATED,
            ChannelUpdateStatus.UP_TO_DATE,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value,
            "message": self.message,
            "revision": self.revision,
        }


@dataclass(frozen=True)
class _ChannelContent:
    branch: Branch
    options: GenericSearcher[OptionRecord]
    packages: GenericSearcher[PackageRecord]


class ChannelSearcher:
    """Serve and refresh the options and packages of one branch."""

    def __init__(
        self,
        branch: Branch,
        cache: ChannelCache,
        *,
        revisions: RevisionSource,
        builder: RecordBuilder,
        build_timeout: float = 3600.0,
        option_kind: OptionKind | None = None,
        package_kind: PackageKind | None = None,
    ) -> None:
        self.name = branch.branch
        self._cache = cache
        self._revisions = revisions
        self._builder = builder
        self._build_timeout = build_timeout
        self._option_kind = option_kind or OptionKind()
        self._package_kind = package_kind or PackageKind()

        self._lock = threading.Lock()
        self._tick_lock = asyncio.Lock()
        self._branch = branch
        self._content: _ChannelContent | None = None

    @classmethod
    async def from_cache(
        cls,
        branch: Branch,
        cache: ChannelCache,
        **kwargs: Any,
    ) -> ChannelSearcher:
        """Create a channel and activate it from ``cache`` when a complete build is stored there."""
        channel = cls(branch, cache, **kwargs)
        with channel_context(channel.name):
            await channel._load_cache()
        return channel

    @property
    def active(self) -> bool:
        with self._lock:
            return self._content is not None

    @property
    def branch(self) -> Branch:
        """The branch of the served content, or the configured branch while inactive."""
        with self._lock:
            return self._content.branch if self._content is not None else self._branch

    def _current(self) -> _ChannelContent | None:
        with self._lock:
            return self._content

    def search_options(self, query: str, n_items: int, page: int = 1) -> SearchPage[OptionRecord]:
        content = self._current()
        if content is None:
            return SearchPage.empty()
        with track_latency(SEARCH_LATENCY, channel=self.name, kind="options"):
            with channel_span("search_options", self.name, page=page, n_items=n_items):
                return content.options.search(query, n_items, page)

    def search_packages(self, query: str, n_items: int, page: int = 1) -> SearchPage[PackageRecord]:
        content = self._current()
        if content is None:
            return SearchPage.empty()
        with track_latency(SEARCH_LATENCY, channel=self.name, kind="packages"):
            with channel_span("search_packages", self.name, page=page, n_items=n_items):
                return content.packages.search(query, n_items, page)

    async def _load_cache(self) -> bool:
        cached = await self._cache.load()
        if cached is not None and cached.branch.branch != self.name:
            logger.debug("Cache in %s belongs to %s, ignoring it", self._cache.root, cached.branch.branch)
            cached = None

        if cached is None:
            if self._branch.revision.kind is RevisionKind.FALLBACK_TO_CACHED:
                stored = await self._cache.load_branch()
                if stored is not None and stored.branch == self.name:
                    self._branch = stored
            logger.info("No usable cache, channel starts inactive")
            self._publish_active_gauge(False)
            return False

        try:
            content = await anyio.to_thread.run_sync(
                self._build_content, cached.branch, cached.options, cached.packages
            )
        except IndexStoreError as err:
            logger.error("Could not index cached records: %s", err)
            self._publish_active_gauge(False)
            return False

        self._publish(content)
        logger.info(
            "Activated from cache at %s (%d options, %d packages)",
            cached.branch.revision,
            len(cached.options),
            len(cached.packages),
        )
        return True

    async def tick(self) -> ChannelUpdateResult:
        """Fetch the upstream revision and rebuild when it moved or nothing is served yet.

        Failures are logged and reported in the result; the served content
        is never touched unless the new build was indexed completely.
        """
        async with self._tick_lock:
            with channel_context(self.name):
                with channel_span("tick", self.name):
                    result = await self._tick()
        CHANNEL_REFRESHES.labels(channel=self.name, status=result.status.value).inc()
        return result

    async def _tick(self) -> ChannelUpdateResult:
        content = self._current()
        current = content.branch if content is not None else self._branch

        try:
            update = await self._revisions.get_latest_revision(current)
        except UpstreamError as err:
            logger.warning("Failed to fetch upstream revision: %s", err)
            return ChannelUpdateResult(ChannelUpdateStatus.FETCH_FAILED, str(err), str(current.revision))

        target = current.apply(update)
        if content is not None and target.revision == current.revision:
            logger.info("Up to date at %s", current.revision)
            if target != current:
                with self._lock:
                    self._content = _ChannelContent(target, content.options, content.packages)
            return ChannelUpdateResult(ChannelUpdateStatus.UP_TO_DATE, "revision unchanged", str(target.revision))

        bind_revision(str(target.revision))
        logger.info("Building %s (was %s)", target.revision, current.revision)
        try:
            options, packages = await asyncio.wait_for(
                self._builder.build_records(target),
                timeout=self._build_timeout,
            )
        except asyncio.TimeoutError:
            logger.error("Build of %s exceeded %.0fs", target.revision, self._build_timeout)
            return ChannelUpdateResult(ChannelUpdateStatus.BUILD_FAILED, "build timed out", str(target.revision))
        except BuildError as err:
            logger.error("Build of %s failed: %s", target.revision, err)
            return ChannelUpdateResult(ChannelUpdateStatus.BUILD_FAILED, str(err), str(target.revision))

        try:
            await self._cache.save(target, options, packages)
        except CacheError as err:
            logger.error("Serving %s without a cache: %s", target.revision, err)

        try:
            if content is None:
                new_content = await anyio.to_thread.run_sync(self._build_content, target, options, packages)
            else:
                new_content = await anyio.to_thread.run_sync(
                    self._refresh_content, content, target, options, packages
                )
        except IndexStoreError as err:
            logger.error("Indexing %s failed: %s", target.revision, err)
            return ChannelUpdateResult(ChannelUpdateStatus.BUILD_FAILED, str(err), str(target.revision))

        self._publish(new_content)
        logger.info("Serving %s (%d options, %d packages)", target.revision, len(options), len(packages))
        status = ChannelUpdateStatus.ACTIVATED if content is None else ChannelUpdateStatus.UPDATED
        message = f"indexed {len(options)} options and {len(packages)} packages"
        return ChannelUpdateResult(status, message, str(target.revision))

    def _build_content(
        self,
        branch: Branch,
        options: Mapping[str, OptionRecord],
        packages: Mapping[str, PackageRecord],
    ) -> _ChannelContent:
        return _ChannelContent(
            branch=branch,
            options=GenericSearcher.create(self._option_kind, self._cache.options_index_path, options),
            packages=GenericSearcher.create(self._package_kind, self._cache.packages_index_path, packages),
        )

    @staticmethod
    def _refresh_content(
        content: _ChannelContent,
        branch: Branch,
        options: Mapping[str, OptionRecord],
        packages: Mapping[str, PackageRecord],
    ) -> _ChannelContent:
        option_searcher = content.options.clone()
        option_searcher.update_entries(options)
        package_searcher = content.packages.clone()
        package_searcher.update_entries(packages)
        return _ChannelContent(branch=branch, options=option_searcher, packages=package_searcher)

    def _publish(self, content: _ChannelContent) -> None:
        with self._lock:
            self._content = content
            self._branch = content.branch
        self._publish_active_gauge(True)
        INDEXED_DOCUMENTS.labels(channel=self.name, kind="options").set(len(content.options))
        INDEXED_DOCUMENTS.labels(channel=self.name, kind="packages").set(len(content.packages))

    def _publish_active_gauge(self, active: bool) -> None:
        CHANNEL_ACTIVE.labels(channel=self.name).set(1.0 if active else 0.0)
