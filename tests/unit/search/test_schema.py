"""Unit tests for the declarative index schema."""

import pytest
import tantivy

from fc_search.search.options import OptionKind
from fc_search.search.packages import PackageKind
from fc_search.search.schema import FacetField, KeywordField, Schema, SchemaField, TextField, facet_path


class TestSchema:
    def test_unique_field_must_exist(self):
        with pytest.raises(ValueError, match="not found"):
            Schema(fields=[TextField("description")], unique_field="attribute_name")

    def test_unique_field_must_be_stored_keyword(self):
        with pytest.raises(ValueError, match="stored keyword"):
            Schema(fields=[TextField("attribute_name", stored=True)], unique_field="attribute_name")
        with pytest.raises(ValueError, match="stored keyword"):
            Schema(fields=[KeywordField("attribute_name", stored=False)], unique_field="attribute_name")

    def test_duplicate_fields_rejected(self):
        with pytest.raises(ValueError, match="twice"):
            Schema(fields=[KeywordField("id"), TextField("id")], unique_field="id")

    @pytest.mark.parametrize("kind", [OptionKind(), PackageKind()])
    def test_dict_round_trip_preserves_fields(self, kind):
        schema = kind.schema()
        restored = Schema.from_dict(schema.to_dict())
        assert restored.to_dict() == schema.to_dict()
        assert restored.unique_field == "attribute_name"

    def test_tokenizer_change_changes_serialized_form(self):
        base = Schema(fields=[KeywordField("id"), TextField("body")], unique_field="id")
        changed = Schema(fields=[KeywordField("id"), TextField("body", tokenizer="whitespace")], unique_field="id")
        assert base.to_dict() != changed.to_dict()

    def test_unknown_field_type_rejected(self):
        with pytest.raises(ValueError):
            SchemaField.from_dict({"name": "x", "type": "vector"})

    def test_build_returns_tantivy_schema(self):
        assert isinstance(OptionKind().schema().build(), tantivy.Schema)

    def test_to_document_requires_identifier(self):
        schema = PackageKind().schema()
        with pytest.raises(ValueError, match="attribute_name"):
            schema.to_document({"attribute_name": "", "description": "x"})

    def test_to_document_skips_missing_values(self):
        schema = PackageKind().schema()
        document = schema.to_document({"attribute_name": "hello", "description": None})
        assert document.get_first("attribute_name") == "hello"


class TestFacetPath:
    def test_splits_on_separator(self):
        assert facet_path("services.nginx.enable") == "/services/nginx/enable"

    def test_escapes_slashes(self):
        assert facet_path("a/b.c") == "/a\\/b/c"

    def test_facet_field_keeps_separator(self):
        assert FacetField("name_facet", separator=":").to_dict()["separator"] == ":"
