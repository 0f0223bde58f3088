"""Channel registry: the caller-facing search API over every served channel."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
import logging
import threading

from fc_search.channel import ChannelSearcher
from fc_search.domain.branch import Branch
from fc_search.domain.records import OptionRecord, PackageRecord
from fc_search.search import SearchPage


logger = logging.getLogger(__name__)

ChannelFactory = Callable[[Branch], Awaitable[ChannelSearcher]]


@dataclass
class ReconcileResult:
    """Channels created and dropped by one ``ChannelRegistry.reconcile`` call."""

    added: list[ChannelSearcher] = field(default_factory=list)
    removed: list[ChannelSearcher] = field(default_factory=list)


class ChannelRegistry:
    """Own the channels keyed by branch name.

    Schedulers only hold weak references, so dropping a channel here ends
    its refresh loop as well.
    """

    def __init__(self, *, prune_missing: bool = False) -> None:
        self.prune_missing = prune_missing
        self._channels: dict[str, ChannelSearcher] = {}
        self._lock = threading.Lock()

    def register(self, channel: ChannelSearcher) -> None:
        with self._lock:
            self._channels[channel.name] = channel

    def get(self, channel_id: str) -> ChannelSearcher | None:
        with self._lock:
            return self._channels.get(channel_id)

    def __contains__(self, channel_id: object) -> bool:
        with self._lock:
            return channel_id in self._channels

    def __len__(self) -> int:
        with self._lock:
            return len(self._channels)

    def channels(self) -> list[ChannelSearcher]:
        with self._lock:
            return list(self._channels.values())

    def active_channels(self) -> list[str]:
        """Names of channels that currently serve content, newest branch first."""
        return sorted((channel.name for channel in self.channels() if channel.active), reverse=True)

    def search_options(
        self,
        channel_id: str,
        query: str,
        n_items: int,
        page: int = 1,
    ) -> SearchPage[OptionRecord]:
        channel = self.get(channel_id)
        if channel is None:
            logger.debug("Options search on unknown channel %r", channel_id)
            return SearchPage.empty()
        return channel.search_options(query, n_items, page)

    def search_packages(
        self,
        channel_id: str,
        query: str,
        n_items: int,
        page: int = 1,
    ) -> SearchPage[PackageRecord]:
        channel = self.get(channel_id)
        if channel is None:
            logger.debug("Packages search on unknown channel %r", channel_id)
            return SearchPage.empty()
        return channel.search_packages(query, n_items, page)

    async def reconcile(self, branches: Iterable[Branch], factory: ChannelFactory) -> ReconcileResult:
        """Create channels for new branches and, when pruning is enabled, drop vanished ones.

        Disk caches of dropped channels are left in place.
        """
        result = ReconcileResult()
        wanted = {branch.branch: branch for branch in branches}

        for name, branch in wanted.items():
            if name in self:
                continue
            channel = await factory(branch)
            self.register(channel)
            result.added.append(channel)
            logger.info("Added channel %s", name)

        if self.prune_missing:
            with self._lock:
                for name in [name for name in self._channels if name not in wanted]:
                    result.removed.append(self._channels.pop(name))
                    logger.info("Pruned channel %s", name)
        else:
            missing = sorted(channel.name for channel in self.channels() if channel.name not in wanted)
            if missing:
                logger.info("Keeping channels no longer reported upstream: %s", ", ".join(missing))

        return result