"""Upstream collaborators: revision lookup, branch discovery and record builds."""

from fc_search.upstream.branches import StaticBranchSource, resolve_branch
from fc_search.upstream.github import GitHubRevisionSource
from fc_search.upstream.hydra import HydraBranchSource
from fc_search.upstream.nix_builder import NixRecordBuilder
from fc_search.upstream.ports import BranchSource, BuiltRecords, RecordBuilder, RevisionSource


__all__ = [
    "BranchSource",
    "BuiltRecords",
    "GitHubRevisionSource",
    "HydraBranchSource",
    "NixRecordBuilder",
    "RecordBuilder",
    "RevisionSource",
    "StaticBranchSource",
    "resolve_branch",
]
