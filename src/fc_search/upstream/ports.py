"""Collaborator interfaces the channel layer depends on.

Channels never talk to GitHub, Hydra or nix directly; they receive these
protocols so tests can substitute in-memory fakes.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from fc_search.domain.branch import Branch, RevisionUpdate
from fc_search.domain.records import OptionRecord, PackageRecord


BuiltRecords = tuple[dict[str, OptionRecord], dict[str, PackageRecord]]


@runtime_checkable
class RevisionSource(Protocol):
    async def get_latest_revision(self, branch: Branch) -> RevisionUpdate:  # pragma: no cover - Protocol only
        """Return the branch head; raise ``UpstreamError`` when it cannot be determined."""


@runtime_checkable
class RecordBuilder(Protocol):
    async def build_records(self, branch: Branch) -> BuiltRecords:  # pragma: no cover - Protocol only
        """Return ``(options, packages)`` for ``branch``; raise ``BuildError`` on failure."""


@runtime_checkable
class BranchSource(Protocol):
    async def discover_branches(self) -> list[Branch]:  # pragma: no cover - Protocol only
        """Return the branches that should be served, newest first."""
