"""Generic searcher over one record kind.

A searcher pairs a ``DocumentStore`` with the ``identifier -> record`` map
for the same commit. Both halves live in one immutable ``_SearchState``
that is swapped in a single assignment, so a concurrent ``search`` always
resolves hits against the map built for the snapshot it queried.
"""

from __future__ import annotations

from collections.abc import Mapping
import copy
from dataclasses import dataclass
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Generic, Protocol, TypeVar

import tantivy

from fc_search.search.collector import SearchPage, TopDocs, paginate
from fc_search.search.document_store import DocumentStore, IndexSnapshot
from fc_search.search.schema import Schema


logger = logging.getLogger(__name__)

T = TypeVar("T")


class RecordKind(Protocol[T]):
    """What a searcher needs to know about one record type."""

    name: str
    # largest ratio score_tweak can put between two raw scores
    score_spread: float

    def schema(self) -> Schema: ...

    def to_document(self, identifier: str, record: T) -> dict[str, str | None]: ...

    def build_query(self, schema: tantivy.Schema, query: str) -> tantivy.Query: ...

    def score_tweak(self, identifier: str, score: float) -> tuple[float, float]: ...


@dataclass(frozen=True)
class _SearchState(Generic[T]):
    snapshot: IndexSnapshot
    entries: Mapping[str, T]


class GenericSearcher(Generic[T]):
    """Ranked, paginated search over the records of one kind."""

    def __init__(self, kind: RecordKind[T], store: DocumentStore) -> None:
        self.kind = kind
        self._store = store
        self._tantivy_schema = store.schema.build()
        self._state = _SearchState(snapshot=store.snapshot, entries=MappingProxyType({}))

    @classmethod
    def create(cls, kind: RecordKind[T], path: str | Path, entries: Mapping[str, T]) -> GenericSearcher[T]:
        """Open (or recreate) the index at ``path`` and load ``entries`` into it."""
        store = DocumentStore.create_or_open(path, kind.schema())
        searcher = cls(kind, store)
        searcher.update_entries(entries)
        return searcher

    def clone(self) -> GenericSearcher[T]:
        """Return a searcher sharing the store but holding its own state.

        Updating the clone leaves this searcher's published state untouched.
        """
        return copy.copy(self)

    @property
    def entries(self) -> Mapping[str, T]:
        return self._state.entries

    def __len__(self) -> int:
        return len(self._state.entries)

    def update_entries(self, entries: Mapping[str, T]) -> None:
        """Replace every indexed document with ``entries`` and publish the new state."""
        frozen = MappingProxyType(dict(entries))
        snapshot = self._store.replace_all(
            self.kind.to_document(identifier, record) for identifier, record in frozen.items()
        )
        self._state = _SearchState(snapshot=snapshot, entries=frozen)
        logger.debug("Indexed %d %s", len(frozen), self.kind.name)

    def search(self, query: str, n_items: int, page: int = 1) -> SearchPage[T]:
        """Return the records on ``page`` (1-based) ranked for ``query``."""
        state = self._state
        if not query.strip() or not state.entries:
            return SearchPage.empty()

        tantivy_query = self.kind.build_query(self._tantivy_schema, query)
        collector = TopDocs.for_page(n_items, page, tweak=self.kind.score_tweak)
        hits = state.snapshot.candidates(tantivy_query, collector.offset + collector.limit, self.kind.score_spread)
        rows, has_next_page = paginate(collector.collect(hits), n_items)

        items: list[T] = []
        for hit in rows:
            record = state.entries.get(hit.identifier)
            if record is None:
                logger.error("Index returned %r which has no %s record", hit.identifier, self.kind.name)
                if __debug__:
                    raise AssertionError(f"identifier {hit.identifier!r} missing from {self.kind.name} entries")
                continue
            items.append(record)
        return SearchPage(items=tuple(items), has_next_page=has_next_page)
