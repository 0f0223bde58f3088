"""Application wiring and command line entry point.

``FcSearchApp`` discovers the branches to serve, builds one channel per
branch from its disk cache and runs a staggered refresh scheduler per
channel. ``main`` exposes three commands:

    fc-search serve                          # run until SIGINT/SIGTERM
    fc-search refresh fc-24.05-dev           # one tick for one branch
    fc-search search options fc-24.05-dev "webserver enable"
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Any

import orjson
from pydantic import ValidationError

from fc_search import __version__
from fc_search.channel import ChannelSearcher
from fc_search.config import Settings
from fc_search.domain.branch import Branch, Revision
from fc_search.errors import UpstreamError
from fc_search.observability import (
    build_metric_reader,
    configure_logging,
    configure_trace_exporter,
    init_metrics,
    init_tracing,
    start_metrics_server,
)
from fc_search.registry import ChannelRegistry
from fc_search.runtime.signals import install_shutdown_signals, remove_shutdown_signals
from fc_search.search import OptionKind
from fc_search.services import ChannelSchedulerService, DiscoverySchedulerService
from fc_search.upstream import (
    BranchSource,
    GitHubRevisionSource,
    HydraBranchSource,
    NixRecordBuilder,
    RecordBuilder,
    RevisionSource,
    StaticBranchSource,
)
from fc_search.utils.channel_cache import ChannelCache


logger = logging.getLogger(__name__)


class FcSearchApp:
    """Own the registry, the collaborators and the schedulers of one process."""

    def __init__(
        self,
        settings: Settings,
        *,
        revisions: RevisionSource | None = None,
        builder: RecordBuilder | None = None,
        branch_source: BranchSource | None = None,
    ) -> None:
        self.settings = settings
        self.revisions = revisions or GitHubRevisionSource(settings.github_api_url, timeout=settings.http_timeout)
        self.builder = builder or NixRecordBuilder(
            nixpkgs_url=settings.nixpkgs_blob_url,
            timeout=settings.build_timeout_seconds,
        )
        self.branch_source = branch_source or self._default_branch_source()
        self.registry = ChannelRegistry(prune_missing=settings.prune_missing_channels)
        self._schedulers: dict[str, ChannelSchedulerService] = {}
        self._discovery = DiscoverySchedulerService(self.rediscover, refresh_schedule=settings.discovery_schedule)

    def _default_branch_source(self) -> BranchSource:
        static = self.settings.get_static_branches()
        if static:
            return StaticBranchSource(
                self.revisions,
                static,
                owner=self.settings.default_owner,
                repository=self.settings.default_repository,
            )
        return HydraBranchSource(
            self.revisions,
            base_url=self.settings.hydra_base_url,
            project=self.settings.hydra_project,
            owner=self.settings.default_owner,
            repository=self.settings.default_repository,
            max_branches=self.settings.max_branches,
            timeout=self.settings.http_timeout,
        )

    def fallback_branch(self) -> Branch:
        return Branch(
            owner=self.settings.default_owner,
            name=self.settings.default_repository,
            branch=self.settings.default_branch,
            revision=Revision.fallback_to_cached(),
        )

    async def discover(self) -> list[Branch]:
        """Return the branches to serve; the configured default branch when discovery fails or finds none."""
        try:
            branches = await self.branch_source.discover_branches()
        except UpstreamError as err:
            logger.error("Branch discovery failed: %s", err)
            branches = []
        if not branches:
            fallback = self.fallback_branch()
            logger.warning("No branches discovered, serving %s", fallback.branch)
            branches = [fallback]
        return branches

    async def create_channel(self, branch: Branch) -> ChannelSearcher:
        return await ChannelSearcher.from_cache(
            branch,
            ChannelCache(self.settings.channel_dir(branch.branch)),
            revisions=self.revisions,
            builder=self.builder,
            build_timeout=self.settings.build_timeout_seconds,
            option_kind=OptionKind(self.settings.reserved_namespace),
        )

    async def start(self) -> None:
        logger.info("Starting fc-search %s with state in %s", __version__, self.settings.state_dir)
        await self.rediscover()
        await self._discovery.initialize()

    async def rediscover(self) -> dict[str, Any]:
        """Reconcile the registry with upstream and start or stop schedulers accordingly."""
        branches = await self.discover()
        result = await self.registry.reconcile(branches, self.create_channel)

        for channel in result.removed:
            scheduler = self._schedulers.pop(channel.name, None)
            if scheduler is not None:
                await scheduler.stop()

        for position, channel in enumerate(result.added):
            scheduler = ChannelSchedulerService(
                channel,
                refresh_schedule=self.settings.refresh_schedule,
                initial_delay=position * self.settings.channel_stagger_seconds,
                run_on_start=self.settings.refresh_on_start,
            )
            self._schedulers[channel.name] = scheduler
            await scheduler.initialize()

        return {
            "success": True,
            "message": f"{len(result.added)} channels added, {len(result.removed)} removed",
            "channels": sorted(channel.name for channel in self.registry.channels()),
        }

    async def stop(self) -> None:
        await self._discovery.stop()
        for scheduler in self._schedulers.values():
            await scheduler.stop()
        self._schedulers.clear()
        logger.info("Stopped all schedulers")

    @property
    def schedulers(self) -> dict[str, ChannelSchedulerService]:
        return dict(self._schedulers)


async def _serve(settings: Settings) -> int:
    shutdown_event = install_shutdown_signals()
    metrics_server = None
    if settings.metrics_port is not None:
        metrics_server, _thread = start_metrics_server(settings.metrics_port, settings.metrics_address)
    app = FcSearchApp(settings)
    await app.start()
    try:
        await shutdown_event.wait()
    finally:
        await app.stop()
        remove_shutdown_signals()
        if metrics_server is not None:
            metrics_server.shutdown()
            metrics_server.server_close()
    return 0


def _branch_for(settings: Settings, branch_name: str) -> Branch:
    return Branch(owner=settings.default_owner, name=settings.default_repository, branch=branch_name)


async def _refresh(settings: Settings, branch_name: str) -> int:
    app = FcSearchApp(settings)
    channel = await app.create_channel(_branch_for(settings, branch_name))
    result = await channel.tick()
    print(orjson.dumps(result.to_dict()).decode())
    return 0 if result.success else 1


async def _search(settings: Settings, kind: str, branch_name: str, query: str, n_items: int, page: int) -> int:
    app = FcSearchApp(settings)
    channel = await app.create_channel(_branch_for(settings, branch_name))
    if not channel.active:
        logger.error("Channel %s has no cached build; run `fc-search refresh %s` first", branch_name, branch_name)
        return 1
    if kind == "options":
        results = channel.search_options(query, n_items, page)
    else:
        results = channel.search_packages(query, n_items, page)
    payload = {
        "items": [item.model_dump(mode="json") for item in results],
        "has_next_page": results.has_next_page,
    }
    print(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode())
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fc-search", description=__doc__.splitlines()[0])
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    commands = parser.add_subparsers(dest="command")

    commands.add_parser("serve", help="Serve discovered channels and refresh them on schedule")

    refresh = commands.add_parser("refresh", help="Fetch, build and index one branch once")
    refresh.add_argument("branch")

    search = commands.add_parser("search", help="Query the cached index of one branch")
    search.add_argument("kind", choices=("options", "packages"))
    search.add_argument("branch")
    search.add_argument("query")
    search.add_argument("--page", type=int, default=1)
    search.add_argument("--n-items", type=int, default=None)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        settings = Settings()
    except ValidationError as exc:
        logging.basicConfig(level=logging.ERROR)
        logger.error("Configuration is invalid: %s", exc)
        return 2

    configure_logging(settings.log_level, settings.log_json)
    collector = settings.collector_config()
    configure_trace_exporter(collector, init_tracing())
    reader = build_metric_reader(collector)
    init_metrics(metric_readers=[reader] if reader else None)

    if args.command == "refresh":
        return asyncio.run(_refresh(settings, args.branch))
    if args.command == "search":
        n_items = args.n_items if args.n_items is not None else settings.default_n_items
        return asyncio.run(_search(settings, args.kind, args.branch, args.query, n_items, args.page))
    return asyncio.run(_serve(settings))


if __name__ == "__main__":
    raise SystemExit(main())
