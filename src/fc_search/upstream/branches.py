"""Branch resolution shared by the branch sources."""

from __future__ import annotations

from collections.abc import Iterable
import logging

from fc_search.domain.branch import Branch, Revision
from fc_search.errors import UpstreamError
from fc_search.upstream.ports import RevisionSource


logger = logging.getLogger(__name__)


async def resolve_branch(revisions: RevisionSource, branch: Branch) -> Branch:
    """Pin ``branch`` to its head commit, or mark it ``fallback_to_cached`` when upstream is unreachable."""
    try:
        update = await revisions.get_latest_revision(branch)
    except UpstreamError as err:
        logger.warning("Could not resolve %s (%s); falling back to cached data", branch.branch, err)
        return branch.model_copy(update={"revision": Revision.fallback_to_cached()})
    return branch.apply(update)


class StaticBranchSource:
    """``BranchSource`` serving a fixed list of branches of one repository."""

    def __init__(
        self,
        revisions: RevisionSource,
        names: Iterable[str],
        *,
        owner: str = "flyingcircusio",
        repository: str = "fc-nixos",
    ) -> None:
        self.revisions = revisions
        self.names = sorted(set(names), reverse=True)
        self.owner = owner
        self.repository = repository

    async def discover_branches(self) -> list[Branch]:
        return [
            await resolve_branch(self.revisions, Branch(owner=self.owner, name=self.repository, branch=name))
            for name in self.names
        ]
