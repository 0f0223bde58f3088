"""Unit tests for DocumentStore lifecycle against a real tantivy index."""

from __future__ import annotations

import orjson
import pytest
import tantivy

from fc_search.errors import IndexStoreError
from fc_search.search.document_store import SCHEMA_FILENAME, DocumentStore, IndexSnapshot
from fc_search.search.query import term
from fc_search.search.schema import KeywordField, Schema, TextField


def _schema(tokenizer: str = "default") -> Schema:
    return Schema(
        name="packages",
        unique_field="attribute_name",
        fields=[KeywordField("attribute_name"), TextField("description", tokenizer=tokenizer)],
    )


def _docs(*names: str):
    return [{"attribute_name": name, "description": f"{name} package"} for name in names]


class TestDocumentStore:
    def test_creates_empty_index_and_persists_schema(self, tmp_path):
        store = DocumentStore.create_or_open(tmp_path / "index", _schema())

        assert store.snapshot.doc_count == 0
        persisted = orjson.loads((tmp_path / "index" / SCHEMA_FILENAME).read_bytes())
        assert persisted == _schema().to_dict()

    def test_replace_all_publishes_new_snapshot(self, tmp_path):
        store = DocumentStore.create_or_open(tmp_path / "index", _schema())
        snapshot = store.replace_all(_docs("hello", "ripgrep"))

        assert snapshot is store.snapshot
        assert sorted(snapshot.identifiers.values()) == ["hello", "ripgrep"]

    def test_replace_all_is_full_replacement(self, tmp_path):
        store = DocumentStore.create_or_open(tmp_path / "index", _schema())
        store.replace_all(_docs("hello", "ripgrep"))
        snapshot = store.replace_all(_docs("nginx"))

        assert list(snapshot.identifiers.values()) == ["nginx"]

    def test_old_snapshot_stays_readable_after_replace(self, tmp_path):
        store = DocumentStore.create_or_open(tmp_path / "index", _schema())
        old = store.replace_all(_docs("hello", "ripgrep"))
        store.replace_all(_docs("nginx"))

        query = tantivy.Query.all_query()
        assert sorted(identifier for identifier, _score, _addr in old.hits(query)) == ["hello", "ripgrep"]

    def test_reopen_keeps_documents_when_schema_matches(self, tmp_path):
        path = tmp_path / "index"
        DocumentStore.create_or_open(path, _schema()).replace_all(_docs("hello"))

        reopened = DocumentStore.create_or_open(path, _schema())
        assert list(reopened.snapshot.identifiers.values()) == ["hello"]

    def test_schema_mismatch_recreates_empty_index(self, tmp_path):
        path = tmp_path / "index"
        DocumentStore.create_or_open(path, _schema()).replace_all(_docs("hello"))

        reopened = DocumentStore.create_or_open(path, _schema(tokenizer="whitespace"))

        assert reopened.snapshot.doc_count == 0
        persisted = orjson.loads((path / SCHEMA_FILENAME).read_bytes())
        assert persisted["fields"][1]["tokenizer"] == "whitespace"

    def test_corrupt_schema_file_recreates_index(self, tmp_path):
        path = tmp_path / "index"
        DocumentStore.create_or_open(path, _schema()).replace_all(_docs("hello"))
        (path / SCHEMA_FILENAME).write_bytes(b"{not json")

        reopened = DocumentStore.create_or_open(path, _schema())
        assert reopened.snapshot.doc_count == 0

    def test_directory_without_schema_is_recreated(self, tmp_path):
        path = tmp_path / "index"
        path.mkdir()
        (path / "leftover.bin").write_bytes(b"junk")

        store = DocumentStore.create_or_open(path, _schema())

        assert not (path / "leftover.bin").exists()
        assert store.snapshot.doc_count == 0

    def test_unrecoverable_path_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        with pytest.raises(IndexStoreError):
            DocumentStore.create_or_open(blocker / "index", _schema())

    def test_invalid_document_leaves_index_untouched(self, tmp_path):
        store = DocumentStore.create_or_open(tmp_path / "index", _schema())
        store.replace_all(_docs("hello"))

        with pytest.raises(IndexStoreError):
            store.replace_all([{"attribute_name": "", "description": "nameless"}])

        assert list(store.snapshot.identifiers.values()) == ["hello"]


class RecordingSearcher:
    def __init__(self, searcher: tantivy.Searcher) -> None:
        self._searcher = searcher
        self.limits: list[int] = []

    def search(self, query: tantivy.Query, limit: int):
        self.limits.append(limit)
        return self._searcher.search(query, limit=limit)


def _recording(snapshot: IndexSnapshot) -> tuple[IndexSnapshot, RecordingSearcher]:
    recorder = RecordingSearcher(snapshot.searcher)
    return IndexSnapshot(searcher=recorder, identifiers=snapshot.identifiers), recorder


class TestCandidates:
    @pytest.fixture
    def store(self, tmp_path):
        store = DocumentStore.create_or_open(tmp_path / "index", _schema())
        # equal lengths, so more repetitions of the term give a strictly higher score
        store.replace_all(
            {"attribute_name": f"widget{i:02d}", "description": " ".join(["widget"] * (i + 1) + ["filler"] * (39 - i))}
            for i in range(40)
        )
        return store

    @pytest.fixture
    def query(self, store):
        return term(store.schema.build(), "description", "widget")

    def test_fetches_a_bounded_window(self, store, query):
        snapshot, recorder = _recording(store.snapshot)

        candidates = snapshot.candidates(query, 5)

        assert recorder.limits == [5, 10]
        assert candidates[:5] == store.snapshot.hits(query)[:5]
        assert [identifier for identifier, _score, _addr in candidates[:2]] == ["widget39", "widget38"]

    def test_wide_score_spread_widens_the_fetch(self, store, query):
        snapshot, recorder = _recording(store.snapshot)

        candidates = snapshot.candidates(query, 5, score_spread=1e6)

        assert len(candidates) == 40
        assert recorder.limits == [5, 10, 20, 40]

    def test_ties_at_the_cut_off_are_all_fetched(self, tmp_path):
        store = DocumentStore.create_or_open(tmp_path / "index", _schema())
        store.replace_all({"attribute_name": f"tool{i}", "description": "widget"} for i in range(12))
        query = term(store.schema.build(), "description", "widget")

        assert len(store.snapshot.candidates(query, 3)) == 12

    def test_window_past_the_index_returns_every_match(self, store, query):
        assert len(store.snapshot.candidates(query, 100)) == 40

    def test_empty_index_has_no_candidates(self, tmp_path):
        store = DocumentStore.create_or_open(tmp_path / "index", _schema())
        query = term(store.schema.build(), "description", "widget")

        assert store.snapshot.candidates(query, 5) == []
