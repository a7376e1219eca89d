"""Tests for the exception hierarchy."""

import pytest

from lessidentify.core import (
    ConfigurationError,
    CrosswalkError,
    DateParseError,
    LessidentifyError,
    PolicyError,
    ValidationError,
    create_crosswalk_error,
    create_date_parse_error,
)


class TestLessidentifyError:
    """Test the base exception."""

    def test_defaults(self) -> None:
        error = LessidentifyError("boom")
        assert str(error) == "boom"
        assert error.error_code == "LESSIDENTIFY_ERROR"
        assert error.component == "core"
        assert error.context == {}

    def test_context_and_suggestions(self) -> None:
        error = LessidentifyError("boom")
        error.add_context("field", "visit_date")
        error.add_recovery_suggestion("try again")
        error.add_recovery_suggestion("try again")
        assert error.to_dict() == {
            "error_type": "LessidentifyError",
            "message": "boom",
            "error_code": "LESSIDENTIFY_ERROR",
            "component": "core",
            "context": {"field": "visit_date"},
            "recovery_suggestions": ["try again"],
        }

    @pytest.mark.parametrize(
        "error,component",
        [
            (ValidationError("x"), "validation"),
            (ConfigurationError("x"), "validation"),
            (PolicyError("x"), "policy"),
            (DateParseError("x"), "dates"),
            (CrosswalkError("x"), "crosswalk"),
        ],
    )
    def test_component_inferred(self, error: LessidentifyError, component: str) -> None:
        assert error.component == component

    def test_value_errors_are_value_errors(self) -> None:
        """Validation and date errors can be caught as ValueError."""
        assert isinstance(ConfigurationError("x"), ValueError)
        assert isinstance(DateParseError("x"), ValueError)
        assert not isinstance(CrosswalkError("x"), ValueError)


class TestErrorHelpers:
    """Test the create_* helpers."""

    def test_create_date_parse_error(self) -> None:
        cause = ValueError("Unknown string format")
        error = create_date_parse_error("visit_date", "31/02/x", person_id=7, original_error=cause)
        assert "visit_date" in error.message
        assert error.context["value"] == "31/02/x"
        assert error.context["person_id"] == "7"
        assert error.context["original_error_type"] == "ValueError"
        assert error.recovery_suggestions

    def test_create_crosswalk_error(self) -> None:
        error = create_crosswalk_error("cannot read", "/tmp/x.json", "read", OSError("denied"))
        assert error.context["path"] == "/tmp/x.json"
        assert error.context["stage"] == "read"
        assert error.context["original_error"] == "denied"
