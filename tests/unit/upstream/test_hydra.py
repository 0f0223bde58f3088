"""Unit tests for Hydra based branch discovery."""

from __future__ import annotations

import httpx
import pytest

from fc_search.domain import Revision
from fc_search.errors import UpstreamError
from fc_search.upstream import HydraBranchSource, StaticBranchSource
from fc_search.upstream.hydra import is_channel_jobset


JOBSETS = {
    "fc-23.11-dev": "https://github.com/flyingcircusio/fc-nixos fc-23.11-dev",
    "fc-24.05-dev": "https://github.com/flyingcircusio/fc-nixos fc-24.05-dev",
    "fc-24.05-production": "https://github.com/flyingcircusio/fc-nixos fc-24.05-production",
    "fc-24.05-staging": "https://github.com/flyingcircusio/fc-nixos fc-24.05-staging",
    "fc-fork-dev": "https://github.com/someone/fc-nixos fc-fork-dev",
}


def _handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/project/flyingcircus":
        return httpx.Response(200, json={"jobsets": [*JOBSETS, "fc-24.05-pr123", "nixpkgs-unstable", "fc-legacy-dev"]})
    if path == "/jobset/flyingcircus/fc-legacy-dev":
        return httpx.Response(200, json={"inputs": {"nixpkgs": {"value": "https://github.com/nixos/nixpkgs"}}})
    jobset = path.rsplit("/", 1)[-1]
    if jobset in JOBSETS:
        return httpx.Response(200, json={"inputs": {"fc": {"value": JOBSETS[jobset]}}})
    return httpx.Response(404)


def _source(revisions, handler=_handler, max_branches: int = 9) -> HydraBranchSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HydraBranchSource(revisions, base_url="https://hydra.test", max_branches=max_branches, client=client)


class TestIsChannelJobset:
    @pytest.mark.parametrize("jobset", ["fc-24.05-dev", "fc-24.05-staging", "fc-23.11-production"])
    def test_accepts_channel_jobsets(self, jobset):
        assert is_channel_jobset(jobset)

    @pytest.mark.parametrize("jobset", ["fc-24.05-pr123", "nixpkgs-unstable", "24.05-dev"])
    def test_rejects_other_jobsets(self, jobset):
        assert not is_channel_jobset(jobset)


class TestHydraBranchSource:
    async def test_discovers_branches_newest_first(self, revisions):
        branches = await _source(revisions).discover_branches()

        assert [branch.branch for branch in branches] == [
            "fc-24.05-staging",
            "fc-24.05-production",
            "fc-24.05-dev",
            "fc-23.11-dev",
        ]
        assert all(branch.revision == Revision.specific("c0ffee") for branch in branches)
        assert all(branch.owner == "flyingcircusio" and branch.name == "fc-nixos" for branch in branches)

    async def test_truncates_to_max_branches(self, revisions):
        branches = await _source(revisions, max_branches=2).discover_branches()

        assert [branch.branch for branch in branches] == ["fc-24.05-staging", "fc-24.05-production"]

    async def test_unresolvable_branch_falls_back_to_cache(self, revisions):
        revisions.error = UpstreamError("rate limited")

        branches = await _source(revisions).discover_branches()

        assert len(branches) == 4
        assert all(branch.revision == Revision.fallback_to_cached() for branch in branches)

    async def test_project_lookup_failure_raises(self, revisions):
        source = _source(revisions, handler=lambda request: httpx.Response(502))

        with pytest.raises(UpstreamError):
            await source.discover_branches()

    async def test_non_object_payload_raises(self, revisions):
        source = _source(revisions, handler=lambda request: httpx.Response(200, json=["fc-24.05-dev"]))

        with pytest.raises(UpstreamError, match="expected an object"):
            await source.discover_branches()

    async def test_skips_jobsets_with_malformed_inputs(self, revisions):
        malformed = {
            "fc-24.05-dev": {"fc": "https://github.com/flyingcircusio/fc-nixos fc-24.05-dev"},
            "fc-24.05-staging": {"fc": None, "nixpkgs": "https://github.com/nixos/nixpkgs"},
            "fc-24.05-production": ["fc"],
        }

        def handler(request: httpx.Request) -> httpx.Response:
            jobset = request.url.path.rsplit("/", 1)[-1]
            if jobset in malformed:
                return httpx.Response(200, json={"inputs": malformed[jobset]})
            return _handler(request)

        branches = await _source(revisions, handler=handler).discover_branches()

        assert [branch.branch for branch in branches] == ["fc-23.11-dev"]

    async def test_jobsets_that_are_not_a_list_raise(self, revisions):
        source = _source(revisions, handler=lambda request: httpx.Response(200, json={"jobsets": "fc-24.05-dev"}))

        with pytest.raises(UpstreamError, match="expected a list"):
            await source.discover_branches()


class TestStaticBranchSource:
    async def test_resolves_configured_branches(self, revisions):
        source = StaticBranchSource(revisions, ["fc-23.11-dev", "fc-24.05-dev", "fc-23.11-dev"])

        branches = await source.discover_branches()

        assert [branch.branch for branch in branches] == ["fc-24.05-dev", "fc-23.11-dev"]
        assert [call.branch for call in revisions.calls] == ["fc-24.05-dev", "fc-23.11-dev"]
