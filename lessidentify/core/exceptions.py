"""Lessidentify exception hierarchy.

Every fatal condition in the engine surfaces as a subclass of
:class:`LessidentifyError`, carrying enough context to tell the caller which
field, value or file was involved.
"""

from typing import Any, Dict, List, Optional


class LessidentifyError(Exception):
    """Base exception for all lessidentify errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable error identifier
        context: Additional error context and metadata
        recovery_suggestions: List of suggested recovery actions
        component: Component where the error originated
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        recovery_suggestions: Optional[List[str]] = None,
        component: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self._default_error_code()
        self.context = context or {}
        self.recovery_suggestions = recovery_suggestions or []
        self.component = component or self._infer_component()

    def _default_error_code(self) -> str:
        """Generate default error code based on exception class name."""
        return self.__class__.__name__.upper().replace("ERROR", "_ERROR")

    def _infer_component(self) -> str:
        """Infer component name from exception class."""
        name = self.__class__.__name__.lower()
        if "validation" in name or "configuration" in name:
            return "validation"
        elif "policy" in name:
            return "policy"
        elif "date" in name:
            return "dates"
        elif "crosswalk" in name:
            return "crosswalk"
        else:
            return "core"

    def add_context(self, key: str, value: Any) -> None:
        """Add additional context to the error."""
        self.context[key] = value

    def add_recovery_suggestion(self, suggestion: str) -> None:
        """Add a recovery suggestion to help users resolve the error."""
        if suggestion not in self.recovery_suggestions:
            self.recovery_suggestions.append(suggestion)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to structured dictionary for logging/reporting."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "component": self.component,
            "context": self.context,
            "recovery_suggestions": self.recovery_suggestions,
        }


class ValidationError(LessidentifyError, ValueError):
    """Raised when a rule, setting or argument is invalid."""

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        expected_type: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        if field_name:
            self.add_context("field_name", field_name)
        if expected_type:
            self.add_context("expected_type", expected_type)
        if actual_value is not None:
            self.add_context("actual_value", str(actual_value))


class ConfigurationError(ValidationError):
    """Raised when scrubber configuration is invalid or incomplete."""

    def __init__(
        self,
        message: str,
        config_file: Optional[str] = None,
        config_section: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        if config_file:
            self.add_context("config_file", config_file)
        if config_section:
            self.add_context("config_section", config_section)


class PolicyError(LessidentifyError):
    """Raised when a policy file cannot be read or does not validate."""

    def __init__(
        self,
        message: str,
        policy_file: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        if policy_file:
            self.add_context("policy_file", policy_file)


class DateParseError(LessidentifyError, ValueError):
    """Raised when a non-empty date or datetime value cannot be parsed."""

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        value: Optional[Any] = None,
        person_id: Optional[Any] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        if field_name:
            self.add_context("field_name", field_name)
        if value is not None:
            self.add_context("value", str(value))
        if person_id is not None:
            self.add_context("person_id", str(person_id))


class CrosswalkError(LessidentifyError):
    """Raised when crosswalk state cannot be saved or loaded.

    A failed load never leaves partially adopted state behind.
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        stage: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        if path:
            self.add_context("path", path)
        if stage:
            self.add_context("stage", stage)


def create_date_parse_error(
    field_name: str,
    value: Any,
    person_id: Any = None,
    original_error: Optional[Exception] = None,
) -> DateParseError:
    """Create a date parsing error with standard context."""
    error = DateParseError(
        f"Date parsing failure for {person_id}: {value!r} in {field_name}",
        field_name=field_name,
        value=value,
        person_id=person_id,
    )
    if original_error:
        error.add_context("original_error", str(original_error))
        error.add_context("original_error_type", type(original_error).__name__)
    error.add_recovery_suggestion("Check that the field holds an ISO-8601 date or datetime")
    error.add_recovery_suggestion("Route free-text fields to redaction instead of date shifting")
    return error


def create_crosswalk_error(
    message: str,
    path: str,
    stage: str,
    original_error: Optional[Exception] = None,
) -> CrosswalkError:
    """Create a crosswalk persistence error with standard context."""
    error = CrosswalkError(message=message, path=path, stage=stage)
    if original_error:
        error.add_context("original_error", str(original_error))
        error.add_context("original_error_type", type(original_error).__name__)
    error.add_recovery_suggestion("Verify the crosswalk file exists and is readable")
    error.add_recovery_suggestion("Verify the crosswalk file was written by save_crosswalk")
    return error
