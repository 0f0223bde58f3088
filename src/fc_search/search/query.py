"""Thin helpers over tantivy query primitives shared by the ranking rules.

Query terms are used verbatim: they are not run through the field's
tokenizer, matching how the ranking rules were tuned.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
import logging

import tantivy


logger = logging.getLogger(__name__)


def term(schema: tantivy.Schema, field_name: str, text: str) -> tantivy.Query:
    return tantivy.Query.term_query(schema, field_name, text, index_option="position")


def fuzzy(
    schema: tantivy.Schema,
    field_name: str,
    text: str,
    distance: int,
    *,
    prefix: bool,
    transposition: bool,
) -> tantivy.Query:
    """Levenshtein match; with ``prefix`` the term only needs a prefix within ``distance``."""
    return tantivy.Query.fuzzy_term_query(
        schema,
        field_name,
        text,
        distance=distance,
        transposition_cost_one=transposition,
        prefix=prefix,
    )


def phrase(schema: tantivy.Schema, field_name: str, words: Sequence[str]) -> tantivy.Query | None:
    """Exact phrase over ``words``; ``None`` when tantivy rejects it (fewer than two words)."""
    try:
        return tantivy.Query.phrase_query(schema, field_name, list(words))
    except ValueError as exc:
        logger.debug("Skipping phrase %r on %s: %s", words, field_name, exc)
        return None


def regex(schema: tantivy.Schema, field_name: str, pattern: str) -> tantivy.Query | None:
    """Full-term regex match; ``None`` for patterns tantivy cannot compile."""
    try:
        return tantivy.Query.regex_query(schema, field_name, pattern)
    except ValueError as exc:
        logger.debug("Skipping regex %r on %s: %s", pattern, field_name, exc)
        return None


def boost(query: tantivy.Query, factor: float) -> tantivy.Query:
    return tantivy.Query.boost_query(query, factor)


def const_score(query: tantivy.Query, score: float) -> tantivy.Query:
    return tantivy.Query.const_score_query(query, score)


def any_of(queries: Iterable[tantivy.Query]) -> tantivy.Query:
    """Disjunction whose score is the sum of the matching clauses."""
    return tantivy.Query.boolean_query([(tantivy.Occur.Should, query) for query in queries])


def positional_decay(position: int, start: float = 1.0) -> float:
    """Weight of the term at ``position``; turns negative past the tenth step."""
    return start - position / 10


@dataclass
class Disjunction:
    """Collects SHOULD clauses and skips the ones that could not be built."""

    clauses: list[tantivy.Query] = field(default_factory=list)

    def add(self, query: tantivy.Query | None, weight: float | None = None) -> None:
        if query is None:
            return
        self.clauses.append(query if weight is None else boost(query, weight))

    def build(self) -> tantivy.Query:
        return any_of(self.clauses)
