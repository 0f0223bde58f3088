"""
Search layer on top of tantivy.

- schema: declarative field definitions persisted next to each index
- document_store: index lifecycle (open/recreate, wholesale replace, snapshots)
- collector: score tweak, top-K window and pagination
- searcher: generic searcher pairing a store with its record map
- options / packages: per record kind schema and ranking rules
"""

from fc_search.search.collector import SearchPage
from fc_search.search.options import OptionKind
from fc_search.search.packages import PackageKind
from fc_search.search.searcher import GenericSearcher, RecordKind


__all__ = ["GenericSearcher", "OptionKind", "PackageKind", "RecordKind", "SearchPage"]
