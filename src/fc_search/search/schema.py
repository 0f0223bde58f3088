"""
Declarative schema definitions for the tantivy-backed document stores.

A ``Schema`` describes the fields of one record kind independently of
tantivy so it can be serialized next to the index and compared on open.
Supported field kinds:
- TextField: tokenized full-text fields (``default`` or ``whitespace`` tokenizer)
- KeywordField: untokenized exact-match fields (``raw`` tokenizer)
- FacetField: hierarchical path facets derived from a separator-joined value

Each schema names a ``unique_field`` whose stored value is the record
identifier used to resolve hits back to records.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import tantivy


class FieldType(str, Enum):
    """Types of fields supported in the schema."""

    TEXT = "text"
    KEYWORD = "keyword"
    FACET = "facet"


@dataclass(frozen=True)
class SchemaField(ABC):
    """Base class for all schema fields."""

    name: str
    stored: bool = False

    @property
    @abstractmethod
    def field_type(self) -> FieldType:
        """Return the field type."""

    @abstractmethod
    def add_to(self, builder: tantivy.SchemaBuilder) -> None:
        """Declare the field on a tantivy schema builder."""

    @abstractmethod
    def add_value(self, document: tantivy.Document, value: str) -> None:
        """Append ``value`` to ``document`` under this field."""

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "type": self.field_type.value, "stored": self.stored}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SchemaField:
        field_type = FieldType(data["type"])
        if field_type == FieldType.TEXT:
            return TextField(
                name=data["name"],
                stored=data.get("stored", False),
                tokenizer=data.get("tokenizer", "default"),
            )
        if field_type == FieldType.KEYWORD:
            return KeywordField(name=data["name"], stored=data.get("stored", True))
        if field_type == FieldType.FACET:
            return FacetField(name=data["name"], separator=data.get("separator", "."))
        msg = f"Unknown field type: {field_type}"
        raise ValueError(msg)


@dataclass(frozen=True)
class TextField(SchemaField):
    """
    Tokenized text field indexed with frequencies and positions.

    Args:
        name: Field name (e.g., "description")
        stored: Store the raw value in the index (default: False)
        tokenizer: tantivy tokenizer name, ``default`` lowercases and splits
            on non-alphanumerics, ``whitespace`` splits on whitespace only
    """

    tokenizer: str = "default"

    @property
    def field_type(self) -> FieldType:
        return FieldType.TEXT

    def add_to(self, builder: tantivy.SchemaBuilder) -> None:
        builder.add_text_field(self.name, stored=self.stored, tokenizer_name=self.tokenizer, index_option="position")

    def add_value(self, document: tantivy.Document, value: str) -> None:
        document.add_text(self.name, value)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["tokenizer"] = self.tokenizer
        return data


@dataclass(frozen=True)
class KeywordField(SchemaField):
    """
    Exact-match field; the whole value is a single term.

    Use for identifiers such as attribute paths.
    """

    stored: bool = True

    @property
    def field_type(self) -> FieldType:
        return FieldType.KEYWORD

    def add_to(self, builder: tantivy.SchemaBuilder) -> None:
        builder.add_text_field(self.name, stored=self.stored, tokenizer_name="raw", index_option="position")

    def add_value(self, document: tantivy.Document, value: str) -> None:
        document.add_text(self.name, value)


def facet_path(value: str, separator: str = ".") -> str:
    """Return the tantivy facet path for ``value`` split on ``separator``.

    >>> facet_path("services.nginx.enable")
    '/services/nginx/enable'
    """
    segments = (segment.replace("\\", "\\\\").replace("/", "\\/") for segment in value.split(separator))
    return "/" + "/".join(segments)


@dataclass(frozen=True)
class FacetField(SchemaField):
    """Hierarchical facet of a separator-joined value (never stored)."""

    separator: str = "."

    @property
    def field_type(self) -> FieldType:
        return FieldType.FACET

    def add_to(self, builder: tantivy.SchemaBuilder) -> None:
        builder.add_facet_field(self.name)

    def add_value(self, document: tantivy.Document, value: str) -> None:
        document.add_facet(self.name, tantivy.Facet.from_string(facet_path(value, self.separator)))

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["separator"] = self.separator
        return data


@dataclass
class Schema:
    """
    Schema definition for one record kind.

    Example:
        schema = Schema(
            name="packages",
            unique_field="attribute_name",
            fields=[KeywordField("attribute_name"), TextField("description")],
        )
    """

    fields: list[SchemaField]
    unique_field: str
    name: str = "default"

    def __post_init__(self) -> None:
        self._field_map: dict[str, SchemaField] = {f.name: f for f in self.fields}
        if len(self._field_map) != len(self.fields):
            raise ValueError(f"Schema '{self.name}' declares a field twice")

        unique = self._field_map.get(self.unique_field)
        if unique is None:
            msg = f"Unique field '{self.unique_field}' not found in schema"
            raise ValueError(msg)
        if not isinstance(unique, KeywordField) or not unique.stored:
            msg = f"Unique field '{self.unique_field}' must be a stored keyword field"
            raise ValueError(msg)

    def __getitem__(self, name: str) -> SchemaField:
        return self._field_map[name]

    def __contains__(self, name: str) -> bool:
        return name in self._field_map

    def __iter__(self):
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def build(self) -> tantivy.Schema:
        """Return the equivalent tantivy schema."""
        builder = tantivy.SchemaBuilder()
        for schema_field in self.fields:
            schema_field.add_to(builder)
        return builder.build()

    def to_document(self, values: Mapping[str, str | None]) -> tantivy.Document:
        """Build a tantivy document; ``None`` values leave the field empty."""
        identifier = values.get(self.unique_field)
        if not identifier:
            raise ValueError(f"Document is missing its '{self.unique_field}' value")

        document = tantivy.Document()
        for name, value in values.items():
            if value is None:
                continue
            self._field_map[name].add_value(document, value)
        return document

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "unique_field": self.unique_field,
            "fields": [f.to_dict() for f in self.fields],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Schema:
        return cls(
            fields=[SchemaField.from_dict(f) for f in data["fields"]],
            unique_field=data["unique_field"],
            name=data.get("name", "default"),
        )
