"""Rule system describing how individual attributes are transformed."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from .exceptions import ConfigurationError


class MethodKind(Enum):
    """Mapping methods that can be applied to an attribute value."""

    REMAP_ID = "remap_id"
    REMAP_LABEL = "remap_label"
    REMAP_DATE = "remap_date"
    REMAP_DATETIME = "remap_datetime"
    REMAP_DATETIME_ALWAYS = "remap_datetime_always"
    REDACT_VALUE = "redact_value"

    @classmethod
    def from_name(cls, name: Union[str, "MethodKind"]) -> "MethodKind":
        """Look up a method by its configuration name."""
        if isinstance(name, MethodKind):
            return name
        try:
            return cls(name)
        except ValueError as e:
            valid = [m.value for m in cls]
            raise ConfigurationError(
                f"Unknown mapping method '{name}'. Valid methods: {valid}",
                field_name="method",
                actual_value=name,
            ) from e


class RuleKind(Enum):
    """Rule tiers, listed in priority order."""

    REDACT = "redact"
    PRESERVE = "preserve"
    FORCE_MAP = "force_map"
    DEFAULT_MAP = "default_map"


class ActionKind(Enum):
    """Outcome of classifying an attribute name."""

    REDACT = "redact"
    PRESERVE = "preserve"
    APPLY = "apply"
    PASS_THROUGH = "pass_through"


@dataclass(frozen=True)
class FieldPattern:
    """
    A match target tested against attribute names.

    Literal patterns compare by equality; regex patterns match anywhere in
    the name (``re.search``), so anchors must be written explicitly.

    Examples:
        >>> FieldPattern.literal("site").matches("site")
        True
        >>> FieldPattern.regex(r"_date$", ignore_case=True).matches("BIRTH_DATE")
        True
    """

    text: str
    is_regex: bool = False
    ignore_case: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.text, str):
            raise ConfigurationError(
                "Field pattern must be a string",
                field_name="pattern",
                expected_type="str",
                actual_value=self.text,
            )
        if self.is_regex:
            try:
                compiled = re.compile(self.text, re.IGNORECASE if self.ignore_case else 0)
            except re.error as e:
                raise ConfigurationError(
                    f"Invalid regex pattern '{self.text}': {e}",
                    field_name="pattern",
                    actual_value=self.text,
                ) from e
            object.__setattr__(self, "_compiled", compiled)

    @classmethod
    def literal(cls, text: str, ignore_case: bool = False) -> "FieldPattern":
        return cls(text=text, is_regex=False, ignore_case=ignore_case)

    @classmethod
    def regex(cls, text: str, ignore_case: bool = False) -> "FieldPattern":
        return cls(text=text, is_regex=True, ignore_case=ignore_case)

    @classmethod
    def coerce(cls, target: Any) -> "FieldPattern":
        """Build a pattern from a string, compiled regex or existing pattern."""
        if isinstance(target, FieldPattern):
            return target
        if isinstance(target, re.Pattern):
            return cls.regex(target.pattern, ignore_case=bool(target.flags & re.IGNORECASE))
        if isinstance(target, str):
            return cls.literal(target)
        raise ConfigurationError(
            f"Cannot build a field pattern from {type(target).__name__}",
            field_name="pattern",
            expected_type="str | re.Pattern | FieldPattern",
            actual_value=target,
        )

    def matches(self, field_name: str) -> bool:
        """Test whether *field_name* is matched by this pattern."""
        if self.is_regex:
            return self._compiled.search(field_name) is not None  # type: ignore[attr-defined]
        if self.ignore_case:
            return field_name.casefold() == self.text.casefold()
        return field_name == self.text

    def to_dict(self) -> dict[str, Any]:
        key = "pattern" if self.is_regex else "value"
        return {key: self.text, "ignore_case": self.ignore_case}

    @classmethod
    def from_dict(cls, data: Union[str, dict[str, Any]]) -> "FieldPattern":
        if isinstance(data, str):
            return cls.literal(data)
        ignore_case = bool(data.get("ignore_case", False))
        if "pattern" in data:
            return cls.regex(data["pattern"], ignore_case=ignore_case)
        if "value" in data:
            return cls.literal(data["value"], ignore_case=ignore_case)
        raise ConfigurationError(
            "Pattern item needs a 'pattern' or 'value' key",
            field_name="pattern",
            actual_value=data,
        )


def coerce_patterns(targets: Any) -> tuple[FieldPattern, ...]:
    """Normalize a single target or an iterable of targets to patterns."""
    if targets is None:
        return ()
    if isinstance(targets, (str, re.Pattern, FieldPattern)):
        return (FieldPattern.coerce(targets),)
    return tuple(FieldPattern.coerce(t) for t in targets)


@dataclass(frozen=True)
class AttributeRule:
    """
    A tagged rule: a tier, an optional mapping method and its patterns.

    Attributes:
        kind: The tier this rule belongs to
        patterns: Match targets tested against attribute names
        method: Mapping method, required for FORCE_MAP and DEFAULT_MAP rules

    Examples:
        >>> AttributeRule(RuleKind.REDACT, (FieldPattern.regex("_source_value$"),))
        >>> AttributeRule(
        ...     RuleKind.FORCE_MAP,
        ...     (FieldPattern.literal("value_as_string"),),
        ...     MethodKind.REMAP_LABEL,
        ... )
    """

    kind: RuleKind
    patterns: tuple[FieldPattern, ...] = ()
    method: Optional[MethodKind] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "patterns", coerce_patterns(self.patterns))
        if self.kind in (RuleKind.FORCE_MAP, RuleKind.DEFAULT_MAP):
            if self.method is None:
                raise ConfigurationError(
                    f"{self.kind.value} rule requires a mapping method",
                    field_name="method",
                )
            object.__setattr__(self, "method", MethodKind.from_name(self.method))
        elif self.method is not None:
            raise ConfigurationError(
                f"{self.kind.value} rule does not take a mapping method",
                field_name="method",
                actual_value=self.method,
            )

    def matches(self, field_name: str) -> bool:
        return any(p.matches(field_name) for p in self.patterns)


@dataclass(frozen=True)
class Action:
    """What to do with one attribute."""

    kind: ActionKind
    method: Optional[MethodKind] = None

    def __post_init__(self) -> None:
        if self.kind is ActionKind.APPLY and self.method is None:
            raise ConfigurationError("APPLY action requires a mapping method", field_name="method")

    @property
    def method_name(self) -> Optional[str]:
        return self.method.value if self.method else None


REDACT_ACTION = Action(ActionKind.REDACT)
PRESERVE_ACTION = Action(ActionKind.PRESERVE)
PASS_THROUGH_ACTION = Action(ActionKind.PASS_THROUGH)
