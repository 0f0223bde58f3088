"""Schema-bound tantivy index with wholesale replacement and snapshot readers.

``DocumentStore`` owns one index directory. Every commit produces a new
``IndexSnapshot``: a tantivy searcher plus the table mapping each document
address to its identifier. Snapshots are immutable, so a reader holding one
keeps a consistent view while a writer replaces the index underneath.

On open the declarative schema persisted in ``schema.json`` is compared with
the expected one; any mismatch or unreadable index destroys the directory and
starts over. Indexes are derived data, they are rebuilt on the next refresh.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
import logging
from pathlib import Path
import shutil
import threading
from types import MappingProxyType

import tantivy

from fc_search.errors import IndexStoreError
from fc_search.search.collector import DocAddress
from fc_search.search.schema import Schema
from fc_search.utils.json_files import atomic_write_json, read_json


logger = logging.getLogger(__name__)

SCHEMA_FILENAME = "schema.json"
WRITER_HEAP_BYTES = 50_000_000
# relative margin so float rounding in tweaks never drops a hit at the bound
SCORE_SLACK = 1e-6


@dataclass(frozen=True)
class IndexSnapshot:
    """A committed, reloaded view of the index."""

    searcher: tantivy.Searcher
    identifiers: Mapping[DocAddress, str]

    @property
    def doc_count(self) -> int:
        return len(self.identifiers)

    def hits(self, query: tantivy.Query, limit: int | None = None) -> list[tuple[str, float, DocAddress]]:
        """Return the best ``limit`` matches (all of them when ``None``) as ``(identifier, score, address)``.

        Addresses unknown to the identifier table map to an empty identifier;
        the caller decides how to treat them.
        """
        total = len(self.identifiers)
        limit = total if limit is None else min(limit, total)
        if limit <= 0:
            return []
        result = self.searcher.search(query, limit=limit)
        hits: list[tuple[str, float, DocAddress]] = []
        for score, address in result.hits:
            key = (address.segment_ord, address.doc)
            hits.append((self.identifiers.get(key, ""), score, key))
        return hits

    def candidates(
        self, query: tantivy.Query, needed: int, score_spread: float = 1.0
    ) -> list[tuple[str, float, DocAddress]]:
        """Return enough hits to rank the best ``needed`` under a score tweak.

        ``score_spread`` is the largest ratio a tweak can put between two raw
        scores. A hit scoring below the ``needed``-th raw score divided by the
        spread can never move into the window, so the fetch doubles until the
        last fetched score falls under that bound or the index is exhausted.
        Hits tied at the bound are always included. A non-positive bound
        falls back to every match.
        """
        total = len(self.identifiers)
        limit = min(max(needed, 1), total)
        while True:
            hits = self.hits(query, limit)
            if len(hits) < limit or limit >= total:
                return hits
            cutoff = hits[needed - 1][1]
            if cutoff <= 0:
                return self.hits(query)
            if hits[-1][1] < cutoff / score_spread * (1 - SCORE_SLACK):
                return hits
            limit = min(limit * 2, total)


def _read_persisted_schema(path: Path) -> Schema | None:
    try:
        return Schema.from_dict(read_json(path / SCHEMA_FILENAME))
    except FileNotFoundError:
        return None
    except (OSError, ValueError, KeyError, TypeError) as exc:
        logger.debug("Unreadable schema file in %s: %s", path, exc)
        return None


class DocumentStore:
    """One record kind's index directory plus its current snapshot."""

    def __init__(self, path: Path, schema: Schema, index: tantivy.Index) -> None:
        self.path = path
        self.schema = schema
        self._index = index
        self._write_lock = threading.Lock()
        self._snapshot = self._load_snapshot()

    @classmethod
    def create_or_open(cls, path: str | Path, schema: Schema) -> DocumentStore:
        """Open the index at ``path`` or recreate it empty.

        Raises ``IndexStoreError`` only when the directory cannot be
        recreated.
        """
        path = Path(path)
        persisted = _read_persisted_schema(path)
        if persisted is not None and persisted.to_dict() == schema.to_dict():
            try:
                index = tantivy.Index(schema.build(), path=str(path), reuse=True)
                return cls(path, schema, index)
            except (ValueError, OSError) as exc:
                logger.warning("Index at %s could not be opened (%s); recreating", path, exc)
        elif persisted is not None:
            logger.info("Schema of index at %s changed; recreating", path)
        elif path.exists():
            logger.info("Index at %s has no readable schema; recreating", path)

        return cls._recreate(path, schema)

    @classmethod
    def _recreate(cls, path: Path, schema: Schema) -> DocumentStore:
        try:
            if path.exists():
                shutil.rmtree(path)
            path.mkdir(parents=True)
            index = tantivy.Index(schema.build(), path=str(path), reuse=False)
            atomic_write_json(path / SCHEMA_FILENAME, schema.to_dict())
            return cls(path, schema, index)
        except (OSError, ValueError) as exc:
            raise IndexStoreError(f"Could not create index at {path}: {exc}") from exc

    @property
    def snapshot(self) -> IndexSnapshot:
        return self._snapshot

    def replace_all(self, documents: Iterable[Mapping[str, str | None]]) -> IndexSnapshot:
        """Replace every document in one commit and return the reloaded snapshot."""
        with self._write_lock:
            count = 0
            writer = None
            try:
                writer = self._index.writer(heap_size=WRITER_HEAP_BYTES)
                writer.delete_all_documents()
                for values in documents:
                    writer.add_document(self.schema.to_document(values))
                    count += 1
                writer.commit()
                writer.wait_merging_threads()
            except (OSError, ValueError) as exc:
                # dropping the writer discards the uncommitted batch and frees the index lock
                writer = None
                raise IndexStoreError(f"Failed to replace documents in {self.path}: {exc}") from exc

            self._snapshot = self._load_snapshot()
            logger.debug("Committed %d documents to %s", count, self.path)
            return self._snapshot

    def _load_snapshot(self) -> IndexSnapshot:
        self._index.reload()
        searcher = self._index.searcher()
        identifiers: dict[DocAddress, str] = {}
        if searcher.num_docs:
            result = searcher.search(tantivy.Query.all_query(), limit=searcher.num_docs)
            for _score, address in result.hits:
                document = searcher.doc(address)
                identifiers[(address.segment_ord, address.doc)] = document.get_first(self.schema.unique_field)
        return IndexSnapshot(searcher=searcher, identifiers=MappingProxyType(identifiers))
