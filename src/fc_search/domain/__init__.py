"""Domain value objects: records, branches and revisions."""

from fc_search.domain.branch import Branch, Revision, RevisionKind, RevisionUpdate
from fc_search.domain.records import Declaration, InformativeLicense, License, OptionRecord, PackageRecord


__all__ = [
    "Branch",
    "Declaration",
    "InformativeLicense",
    "License",
    "OptionRecord",
    "PackageRecord",
    "Revision",
    "RevisionKind",
    "RevisionUpdate",
]
