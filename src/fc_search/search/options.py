"""Ranking rules and schema for NixOS options."""

from __future__ import annotations

import html
import re

import tantivy

from fc_search.domain.records import OptionRecord
from fc_search.search import query as q
from fc_search.search.schema import FacetField, KeywordField, Schema, TextField


PATH_SEPARATOR = "."

NAME_WEIGHT = 1.5
DOTTED_PARTS_WEIGHT = 3.0
NAME_FUZZY_WEIGHT = 2.2
DESCRIPTION_WEIGHT = 0.2

NAMESPACE_BONUS = 1.3
ENABLE_BONUS = 1.05
ROLES_PENALTY = 0.8

_MARKUP = re.compile(r"<[^>]+>")


def plain_text(markup: str) -> str:
    """Text content of rendered documentation, which is what gets indexed."""
    return html.unescape(_MARKUP.sub(" ", markup))


def name_fuzzy_distance(term: str) -> int:
    """Edit distance for the name prefix match: 0 up to 2 chars, 2 from 4 chars on."""
    return min(max(len(term), 2), 4) - 2


def build_options_query(schema: tantivy.Schema, query: str) -> tantivy.Query:
    """Build the options query for a whitespace separated ``query``.

    Each term contributes name clauses weighted by its position, a fuzzy
    prefix clause on the name with a fixed weight, and a weak constant-score
    description clause.
    """
    terms = query.split()
    clauses = q.Disjunction()

    for position, word in enumerate(terms):
        decay = q.positional_decay(position)
        if PATH_SEPARATOR in word:
            parts = word.split(PATH_SEPARATOR)
            clauses.add(q.phrase(schema, "name", parts), NAME_WEIGHT * decay)
            exact_parts = q.any_of(
                q.fuzzy(schema, "name", part, 0, prefix=True, transposition=False) for part in parts
            )
            clauses.add(exact_parts, DOTTED_PARTS_WEIGHT * decay)
        else:
            clauses.add(q.term(schema, "name", word), NAME_WEIGHT * decay)

        clauses.add(
            q.fuzzy(schema, "name", word, name_fuzzy_distance(word), prefix=True, transposition=True),
            NAME_FUZZY_WEIGHT,
        )

    description = q.Disjunction()
    for position, word in enumerate(terms):
        weight = q.positional_decay(position, start=0.5)
        description.add(q.const_score(q.term(schema, "description", word), weight))
        if len(word) >= 3:
            fuzzy_match = q.fuzzy(schema, "description", word, 1, prefix=True, transposition=False)
            description.add(q.const_score(fuzzy_match, 0.5 * weight))
    clauses.add(description.build(), DESCRIPTION_WEIGHT)

    return clauses.build()


class OptionKind:
    """Record kind for ``OptionRecord``, keyed by the dotted option name."""

    name = "options"
    score_spread = NAMESPACE_BONUS * ENABLE_BONUS / ROLES_PENALTY

    def __init__(self, reserved_namespace: str = "flyingcircus") -> None:
        self.reserved_namespace = reserved_namespace

    def schema(self) -> Schema:
        return Schema(
            name="options",
            unique_field="attribute_name",
            fields=[
                KeywordField("attribute_name"),
                FacetField("name_facet", separator=PATH_SEPARATOR),
                TextField("name", tokenizer="whitespace"),
                TextField("description"),
            ],
        )

    def to_document(self, identifier: str, record: OptionRecord) -> dict[str, str | None]:
        return {
            "attribute_name": identifier,
            "name_facet": identifier,
            "name": identifier.replace(PATH_SEPARATOR, " "),
            "description": plain_text(record.description),
        }

    def build_query(self, schema: tantivy.Schema, query: str) -> tantivy.Query:
        return build_options_query(schema, query)

    def score_tweak(self, identifier: str, score: float) -> tuple[float, float]:
        if identifier.startswith(self.reserved_namespace):
            score *= NAMESPACE_BONUS
        if identifier.endswith("enable"):
            score *= ENABLE_BONUS
        # umbrella role toggles rank below concrete settings
        if "roles" in identifier:
            score *= ROLES_PENALTY
        return score, 1.0
