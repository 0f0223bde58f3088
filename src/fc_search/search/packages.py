"""Ranking rules and schema for nixpkgs packages."""

from __future__ import annotations

import tantivy

from fc_search.domain.records import PackageRecord
from fc_search.search import query as q
from fc_search.search.schema import KeywordField, Schema, TextField


ATTRIBUTE_WEIGHT = 1.3
REGEX_WEIGHT = 1.2
EXACT_PREFIX_WEIGHT = 1.1
DESCRIPTION_WEIGHT = 1.2


def build_packages_query(schema: tantivy.Schema, query: str) -> tantivy.Query:
    """Build the packages query; the attribute name dominates, the description is secondary."""
    clauses = q.Disjunction()
    # the raw query string, unstripped, doubles as a pattern so "python3.*" style input works
    pattern = q.regex(schema, "attribute_name", query)

    for position, word in enumerate(query.split()):
        decay = q.positional_decay(position)

        clauses.add(q.term(schema, "attribute_name", word), ATTRIBUTE_WEIGHT)
        clauses.add(pattern, REGEX_WEIGHT * decay)
        if len(word) > 1:
            clauses.add(
                q.fuzzy(schema, "attribute_name", word, 0, prefix=True, transposition=True),
                EXACT_PREFIX_WEIGHT * decay,
            )
        if len(word) > 2:
            clauses.add(q.fuzzy(schema, "attribute_name", word, 1, prefix=True, transposition=True), decay)

        clauses.add(q.term(schema, "description", word), DESCRIPTION_WEIGHT * decay)
        if len(word) > 2:
            clauses.add(q.fuzzy(schema, "description", word, 1, prefix=True, transposition=True), decay)

    return clauses.build()


class PackageKind:
    """Record kind for ``PackageRecord``, keyed by the attribute path."""

    name = "packages"
    # the tweak only orders equal scores
    score_spread = 1.0

    def schema(self) -> Schema:
        return Schema(
            name="packages",
            unique_field="attribute_name",
            fields=[
                KeywordField("attribute_name"),
                TextField("description"),
            ],
        )

    def to_document(self, identifier: str, record: PackageRecord) -> dict[str, str | None]:
        return {"attribute_name": identifier, "description": record.description}

    def build_query(self, schema: tantivy.Schema, query: str) -> tantivy.Query:
        return build_packages_query(schema, query)

    def score_tweak(self, identifier: str, score: float) -> tuple[float, float]:
        # shorter attribute paths win ties
        return score, 1.0 / max(len(identifier), 1)
