"""Channel descriptors: which upstream branch a channel tracks and at which revision."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Self

from pydantic import BaseModel, ConfigDict, model_validator


class RevisionKind(str, Enum):
    SPECIFIC = "specific"
    LATEST = "latest"
    FALLBACK_TO_CACHED = "fallback_to_cached"


class Revision(BaseModel):
    """Upstream revision of a branch.

    ``specific`` pins a commit. ``latest`` means "whatever the branch head is"
    and ``fallback_to_cached`` marks a branch whose head could not be resolved
    at startup, so the cached descriptor should be trusted instead.
    """

    model_config = ConfigDict(frozen=True)

    kind: RevisionKind
    commit: str | None = None

    @model_validator(mode="after")
    def _commit_matches_kind(self) -> Self:
        if self.kind is RevisionKind.SPECIFIC and not self.commit:
            raise ValueError("a specific revision needs a commit")
        if self.kind is not RevisionKind.SPECIFIC and self.commit is not None:
            raise ValueError(f"a {self.kind.value} revision cannot carry a commit")
        return self

    @classmethod
    def specific(cls, commit: str) -> Revision:
        return cls(kind=RevisionKind.SPECIFIC, commit=commit)

    @classmethod
    def latest(cls) -> Revision:
        return cls(kind=RevisionKind.LATEST)

    @classmethod
    def fallback_to_cached(cls) -> Revision:
        return cls(kind=RevisionKind.FALLBACK_TO_CACHED)

    def __str__(self) -> str:
        return self.commit if self.commit else self.kind.value


class RevisionUpdate(BaseModel):
    """Answer of a revision source; ``modified=False`` means upstream reported no change."""

    model_config = ConfigDict(frozen=True)

    modified: bool
    revision: Revision | None = None
    last_modified: datetime | None = None
    etag: str | None = None

    @classmethod
    def not_modified(cls) -> RevisionUpdate:
        return cls(modified=False)


class Branch(BaseModel):
    """An upstream branch at a revision; persisted as ``flake_info.json``."""

    model_config = ConfigDict(frozen=True)

    owner: str
    name: str
    branch: str
    revision: Revision = Revision.latest()
    last_modified: datetime | None = None
    etag: str | None = None

    @property
    def flake_uri(self) -> str:
        if self.revision.kind is RevisionKind.SPECIFIC:
            return f"github:{self.owner}/{self.name}?rev={self.revision.commit}"
        return f"github:{self.owner}/{self.name}/{self.branch}"

    @property
    def github_blob_url(self) -> str:
        return f"https://github.com/{self.owner}/{self.name}/blob/{self.branch}"

    def apply(self, update: RevisionUpdate) -> Branch:
        """Return the descriptor after an upstream answer; unchanged when not modified."""
        if not update.modified or update.revision is None:
            return self
        return self.model_copy(
            update={
                "revision": update.revision,
                "last_modified": update.last_modified,
                "etag": update.etag,
            }
        )
