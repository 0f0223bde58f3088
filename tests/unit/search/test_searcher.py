"""GenericSearcher: pagination, replacement and record consistency."""

from __future__ import annotations

import pytest

from fakes import make_option, make_package
from fc_search.search import GenericSearcher, OptionKind, PackageKind
from fc_search.search.collector import TopDocs


@pytest.fixture
def many_packages():
    packages = [make_package(f"python3{i:02d}", "python interpreter") for i in range(23)]
    return {package.attribute_name: package for package in packages}


@pytest.fixture
def searcher(tmp_path, many_packages):
    return GenericSearcher.create(PackageKind(), tmp_path / "index", many_packages)


class TestPagination:
    def test_pages_concatenate_to_full_result(self, searcher, many_packages):
        collected = []
        page_number = 1
        while True:
            page = searcher.search("python", 5, page_number)
            collected.extend(record.attribute_name for record in page)
            if not page.has_next_page:
                break
            page_number += 1

        assert page_number == 5
        assert sorted(collected) == sorted(many_packages)
        assert collected == [record.attribute_name for record in searcher.search("python", 25)]
        assert len(collected) == len(set(collected))

    def test_exact_multiple_has_no_next_page(self, tmp_path):
        packages = {f"pkg{i}": make_package(f"pkg{i}", "demo tool") for i in range(10)}
        searcher = GenericSearcher.create(PackageKind(), tmp_path / "index", packages)

        page = searcher.search("demo", 5, 2)
        assert len(page) == 5
        assert page.has_next_page is False

    def test_page_zero_is_first_page(self, searcher):
        first = [record.attribute_name for record in searcher.search("python", 5, 1)]
        zero = [record.attribute_name for record in searcher.search("python", 5, 0)]
        assert zero == first

    def test_page_past_end_is_empty(self, searcher):
        page = searcher.search("python", 5, 40)
        assert len(page) == 0
        assert page.has_next_page is False


def _equal_length_text(term: str, count: int, length: int) -> str:
    return " ".join([term] * count + ["filler"] * (length - count))


def _all_pages(searcher, query: str, n_items: int) -> list[str]:
    names: list[str] = []
    page_number = 1
    while True:
        page = searcher.search(query, n_items, page_number)
        names.extend(record.name for record in page)
        if not page.has_next_page:
            return names
        page_number += 1


def _full_scan_ranking(searcher, query: str) -> list[str]:
    state = searcher._state
    tantivy_query = searcher.kind.build_query(searcher._tantivy_schema, query)
    collector = TopDocs(len(state.entries), tweak=searcher.kind.score_tweak)
    return [hit.identifier for hit in collector.collect(state.snapshot.hits(tantivy_query))]


class TestPaginationOrder:
    @pytest.fixture
    def ranked_packages(self):
        # more term repetitions at equal length give every package its own score
        packages = [make_package(f"widget{i:02d}", _equal_length_text("widget", i + 1, 23)) for i in range(23)]
        return {package.attribute_name: package for package in packages}

    @pytest.mark.parametrize(("k", "m"), [(1, 5), (4, 5), (5, 4), (7, 3)])
    def test_pages_match_one_large_request(self, tmp_path, ranked_packages, k, m):
        searcher = GenericSearcher.create(PackageKind(), tmp_path / "index", ranked_packages)

        pages: list[str] = []
        for page in range(1, m + 1):
            pages.extend(record.attribute_name for record in searcher.search("widget", k, page))

        assert pages == [record.attribute_name for record in searcher.search("widget", k * m)]
        assert pages[:3] == ["widget22", "widget21", "widget20"]

    @pytest.mark.parametrize("n_items", [1, 3, 7, 50])
    def test_tweaked_option_order_matches_full_scan(self, tmp_path, n_items):
        options = {}
        for i in range(8):
            for name in (
                f"flyingcircus.roles.widget{i}.enable",
                f"flyingcircus.widget{i}.enable",
                f"services.widget{i}.enable",
                f"services.widget{i}.extra.enable",
                f"services.widget{i}.package",
            ):
                options[name] = make_option(name, _equal_length_text("widget", i + 1, 8))
        searcher = GenericSearcher.create(OptionKind(), tmp_path / "index", options)

        expected = _full_scan_ranking(searcher, "enable widget")

        assert len(expected) == len(options)
        assert _all_pages(searcher, "enable widget", n_items) == expected


class TestUpdates:
    def test_update_entries_replaces_everything(self, searcher):
        searcher.update_entries({"ripgrep": make_package("ripgrep", "grep replacement")})

        assert len(searcher) == 1
        assert len(searcher.search("python", 10)) == 0
        assert [record.attribute_name for record in searcher.search("ripgrep", 10)] == ["ripgrep"]

    def test_clone_keeps_original_state(self, searcher):
        clone = searcher.clone()
        clone.update_entries({"ripgrep": make_package("ripgrep", "grep replacement")})

        assert len(searcher) == 23
        assert len(searcher.search("python", 30)) == 23
        assert len(clone.search("python", 30)) == 0

    def test_results_come_from_record_map(self, searcher, many_packages):
        for record in searcher.search("python", 30):
            assert record is many_packages[record.attribute_name]

    def test_empty_searcher_returns_empty_page(self, tmp_path):
        searcher = GenericSearcher.create(PackageKind(), tmp_path / "index", {})
        assert len(searcher.search("python", 10)) == 0

    def test_reopen_reindexes_from_entries(self, tmp_path, many_packages):
        GenericSearcher.create(PackageKind(), tmp_path / "index", many_packages)
        reopened = GenericSearcher.create(PackageKind(), tmp_path / "index", {"hello": make_package("hello", "hi")})
        assert len(reopened.search("python", 30)) == 0


class TestConsistency:
    def test_missing_record_is_an_invariant_violation(self, searcher):
        state = searcher._state
        entries = dict(state.entries)
        entries.pop("python300")
        searcher._state = type(state)(snapshot=state.snapshot, entries=entries)

        with pytest.raises(AssertionError, match="python300"):
            searcher.search("python300", 5)
