"""
Unit tests for model_builder module.
"""

import pytest
from datetime import date
from typing import Optional
from pydantic import ValidationError

from inline_forms.model_builder import (
    create_model_from_schema,
    create_field_from_config,
    get_field_type,
    is_reference_field,
    validate_model_data,
    clean_form_values,
    validate_form_values,
    get_model_fields_info
)


ARTICLE_SCHEMA = {
    "fields": {
        "title": {"type": "string", "label": "Title", "required": True, "max_length": 20},
        "rating": {"type": "integer", "label": "Rating", "min_value": 1, "max_value": 5},
        "style": {"type": "enum", "label": "Style", "choices": ["plain", "boxed"]},
        "url": {"type": "string", "pattern": r"^https?://"},
        "related": {"type": "reference", "settings": {"target_type": "node"}}
    }
}


class TestModelBuilder:
    """Test class for model builder."""

    def test_create_model_from_schema_basic(self):
        """Test creating a basic model from schema."""
        model_class = create_model_from_schema(ARTICLE_SCHEMA, "ArticleModel")

        assert model_class.__name__ == "ArticleModel"
        assert model_class.model_fields["title"].is_required() is True
        assert model_class.model_fields["title"].annotation == str
        assert model_class.model_fields["rating"].is_required() is False

    def test_reference_fields_are_skipped(self):
        """Test that reference fields are left to nested forms."""
        model_class = create_model_from_schema(ARTICLE_SCHEMA)

        assert "related" not in model_class.model_fields
        assert is_reference_field(ARTICLE_SCHEMA["fields"]["related"])
        assert not is_reference_field(ARTICLE_SCHEMA["fields"]["title"])

    def test_schema_without_fields(self):
        """Test that a schema needs a fields key."""
        with pytest.raises(ValueError):
            create_model_from_schema({})

    def test_extra_values_are_ignored(self):
        """Test that unknown keys do not fail validation."""
        model_class = create_model_from_schema(ARTICLE_SCHEMA)
        instance = model_class(title="Hello", unknown="x")
        assert instance.title == "Hello"

    def test_constraints(self):
        """Test length, range, pattern and enum constraints."""
        model_class = create_model_from_schema(ARTICLE_SCHEMA)

        with pytest.raises(ValidationError):
            model_class(title="x" * 21)
        with pytest.raises(ValidationError):
            model_class(title="ok", rating=9)
        with pytest.raises(ValidationError):
            model_class(title="ok", style="fancy")
        with pytest.raises(ValidationError):
            model_class(title="ok", url="ftp://example.com")

        assert model_class(title="ok", rating=3, style="boxed", url="https://example.com").rating == 3

    @pytest.mark.parametrize("type_name,expected", [
        ("string", str),
        ("text", str),
        ("enum", str),
        ("integer", int),
        ("number", float),
        ("boolean", bool),
        ("date", date),
        ("unknown_type", str),
    ])
    def test_get_field_type(self, type_name, expected):
        """Test schema type mapping."""
        assert get_field_type({"type": type_name}) is expected

    def test_optional_field_defaults_to_none(self):
        """Test optional fields are Optional with a None default."""
        field_type, field_info = create_field_from_config("body", {"type": "text"})

        assert field_type == Optional[str]
        assert field_info.default is None


class TestFormValueValidation:
    """Test class for sub-form value validation."""

    def test_clean_form_values(self):
        """Test that blanks, unknown names and references are dropped."""
        cleaned = clean_form_values(ARTICLE_SCHEMA, {
            "title": "  ", "rating": 2, "related": [1], "other": "x", "style": None
        })
        assert cleaned == {"rating": 2}

    def test_required_blank_title(self):
        """Test that a blank required field is reported with its name."""
        errors = validate_form_values(ARTICLE_SCHEMA, {"title": ""})

        assert len(errors) == 1
        assert errors[0].startswith("title:")

    def test_valid_values(self):
        """Test that valid values produce no errors."""
        assert validate_form_values(ARTICLE_SCHEMA, {"title": "Hello", "rating": "4"}) == []

    def test_validate_model_data_messages(self):
        """Test error message formatting."""
        model_class = create_model_from_schema(ARTICLE_SCHEMA)
        errors = validate_model_data({"title": "ok", "rating": 0}, model_class)

        assert len(errors) == 1
        assert errors[0].startswith("rating:")


class TestModelFieldsInfo:
    """Test class for field descriptions used by forms."""

    def test_get_model_fields_info(self):
        """Test labels, types and choices."""
        info = get_model_fields_info(ARTICLE_SCHEMA)

        assert info["title"]["label"] == "Title"
        assert info["title"]["required"] is True
        assert info["style"]["choices"] == ["plain", "boxed"]
        assert info["url"]["label"] == "Url"
        assert info["related"]["type"] == "reference"
