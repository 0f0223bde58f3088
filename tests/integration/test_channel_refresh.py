from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import anyio
from fakes import FakeRecordBuilder, FakeRevisionSource, make_package
import pytest

from fc_search.channel import ChannelSearcher, ChannelUpdateStatus
from fc_search.domain import Branch
from fc_search.errors import BuildError
from fc_search.registry import ChannelRegistry
from fc_search.services import ChannelSchedulerService
from fc_search.utils.channel_cache import ChannelCache


def _python_packages(count: int) -> dict:
    packages = [make_package(f"python3{minor:02d}", "Python interpreter") for minor in range(count)]
    return {package.attribute_name: package for package in packages}


@pytest.mark.integration
async def test_refresh_search_restart_cycle(tmp_path: Path, branch: Branch, option_records) -> None:
    revisions = FakeRevisionSource(commit="rev1")
    builder = FakeRecordBuilder(option_records, _python_packages(12))

    async def factory(target: Branch) -> ChannelSearcher:
        return await ChannelSearcher.from_cache(
            target,
            ChannelCache(tmp_path / target.branch),
            revisions=revisions,
            builder=builder,
        )

    registry = ChannelRegistry()
    await registry.reconcile([branch], factory)
    scheduler = ChannelSchedulerService(registry.get(branch.branch), refresh_schedule="0 */5 * * *")
    await scheduler.initialize()
    try:
        # the loop runs its first tick on start; a manual trigger must then be a no-op
        with anyio.fail_after(5):
            while not registry.active_channels():
                await anyio.sleep(0.01)
        result = await scheduler.trigger_refresh()
        assert result["status"] == ChannelUpdateStatus.UP_TO_DATE.value
    finally:
        await scheduler.stop()

    seen: list[str] = []
    page = 1
    while True:
        results = registry.search_packages(branch.branch, "python", 5, page)
        seen.extend(record.attribute_name for record in results)
        if not results.has_next_page:
            break
        page += 1
    assert page == 3
    assert sorted(seen) == sorted(_python_packages(12))

    # a restarted process serves the cached build without rebuilding
    restarted = ChannelRegistry()
    await restarted.reconcile([branch], factory)
    assert restarted.active_channels() == [branch.branch]
    assert len(builder.calls) == 1

    # a failed rebuild keeps serving the previous revision
    channel = restarted.get(branch.branch)
    revisions.commit = "rev2"
    builder.error = BuildError("evaluation error")
    assert (await channel.tick()).status is ChannelUpdateStatus.BUILD_FAILED
    assert len(restarted.search_packages(branch.branch, "python", 50)) == 12

    # searches running during an update see either the old or the new record set, never a mix
    builder.error = None
    builder.packages = {"ripgrep": make_package("ripgrep", "grep replacement")}

    def search_sizes() -> list[int]:
        return [len(restarted.search_packages(branch.branch, "python", 50)) for _ in range(50)]

    with ThreadPoolExecutor(max_workers=4) as pool:
        futures = [pool.submit(search_sizes) for _ in range(4)]
        assert (await channel.tick()).status is ChannelUpdateStatus.UPDATED
        sizes = {size for future in futures for size in future.result()}

    assert sizes <= {0, 12}
    assert channel.branch.revision.commit == "rev2"
    assert [record.attribute_name for record in restarted.search_packages(branch.branch, "ripgrep", 5)] == ["ripgrep"]
