"""Policy system deciding which transformation applies to each attribute."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from .exceptions import ConfigurationError
from .strategies import (
    PASS_THROUGH_ACTION,
    PRESERVE_ACTION,
    REDACT_ACTION,
    Action,
    ActionKind,
    AttributeRule,
    FieldPattern,
    MethodKind,
    RuleKind,
    coerce_patterns,
)

logger = logging.getLogger(__name__)


def _normalize_mappings(value: Any, kind: RuleKind) -> tuple[AttributeRule, ...]:
    """Turn ``{method: targets}`` or a rule sequence into ordered rules.

    Sequence items are ``AttributeRule`` instances or ``{"method": ...,
    "patterns": [...]}`` mappings, the form ``ScrubPolicy.to_dict`` writes.
    """
    if value is None:
        return ()
    if isinstance(value, Mapping):
        return tuple(
            AttributeRule(kind, coerce_patterns(targets), MethodKind.from_name(method))
            for method, targets in value.items()
        )
    rules = []
    for rule in value:
        if isinstance(rule, Mapping) and "method" in rule:
            rule = AttributeRule(
                kind, _patterns_from_dicts(rule.get("patterns")), MethodKind.from_name(rule["method"])
            )
        if not isinstance(rule, AttributeRule):
            raise ConfigurationError(
                "Mappings must be a mapping of method names to targets or a sequence of rules",
                field_name=kind.value,
                actual_value=rule,
            )
        if rule.kind != kind:
            rule = AttributeRule(kind, rule.patterns, rule.method)
        rules.append(rule)
    return tuple(rules)


def _patterns_from_dicts(items: Any) -> tuple[FieldPattern, ...]:
    if items is None:
        return ()
    if isinstance(items, (str, dict)):
        items = [items]
    return tuple(FieldPattern.from_dict(i) for i in items)


def _normalize_aliases(value: Any) -> dict[str, tuple[FieldPattern, ...]]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(
            "alias_attributes must map canonical names to alternate names",
            field_name="alias_attributes",
            expected_type="mapping",
            actual_value=value,
        )
    return {str(canonical): coerce_patterns(alts) for canonical, alts in value.items()}


def _rules_to_list(rules: tuple[AttributeRule, ...]) -> list[dict[str, Any]]:
    """Serialize mapping rules as an ordered list, one entry per rule."""
    result = []
    for rule in rules:
        if rule.method is None:
            raise ConfigurationError(
                f"{rule.kind.value} rule has no mapping method", field_name="method"
            )
        result.append(
            {"method": rule.method.value, "patterns": [p.to_dict() for p in rule.patterns]}
        )
    return result


@dataclass(frozen=True)
class ScrubPolicy:
    """
    Configuration for how the attributes of a record are scrubbed.

    Rules are evaluated per attribute name in fixed priority order: redact,
    preserve, forced mappings (user supplied), default mappings (preset
    supplied), and finally pass-through. Within a mapping tier the first
    declared method whose patterns match wins, so declaration order matters.

    Attributes:
        redact_attributes: Names whose values are always redacted
        preserve_attributes: Names whose values are always kept unchanged
        force_mappings: User mapping rules, ``{method: targets}`` or rules
        default_mappings: Preset mapping rules, consulted after force_mappings
        alias_attributes: Canonical name to alternate names sharing its table
        default_aliases: Preset aliases, overridden by alias_attributes
        redaction_marker: Value written in place of redacted data

    Examples:
        >>> policy = ScrubPolicy(
        ...     preserve_attributes=["value_source_value"],
        ...     force_mappings={"remap_label": ["value_as_string"]},
        ... )
        >>> policy = ScrubPolicy(
        ...     redact_attributes=[re.compile("_source_value$")],
        ...     alias_attributes={"person_id": ["sibling_id"]},
        ... )
    """

    redact_attributes: tuple[FieldPattern, ...] = field(default=())
    preserve_attributes: tuple[FieldPattern, ...] = field(default=())
    force_mappings: tuple[AttributeRule, ...] = field(default=())
    default_mappings: tuple[AttributeRule, ...] = field(default=())
    alias_attributes: dict[str, tuple[FieldPattern, ...]] = field(default_factory=dict)
    default_aliases: dict[str, tuple[FieldPattern, ...]] = field(default_factory=dict)
    redaction_marker: Optional[str] = field(default=None)

    def __post_init__(self) -> None:
        """Normalize loosely typed configuration into rules and patterns."""
        object.__setattr__(self, "redact_attributes", coerce_patterns(self.redact_attributes))
        object.__setattr__(
            self, "preserve_attributes", coerce_patterns(self.preserve_attributes)
        )
        object.__setattr__(
            self, "force_mappings", _normalize_mappings(self.force_mappings, RuleKind.FORCE_MAP)
        )
        object.__setattr__(
            self,
            "default_mappings",
            _normalize_mappings(self.default_mappings, RuleKind.DEFAULT_MAP),
        )
        object.__setattr__(self, "alias_attributes", _normalize_aliases(self.alias_attributes))
        object.__setattr__(self, "default_aliases", _normalize_aliases(self.default_aliases))
        self._validate_redaction_marker()

    def _validate_redaction_marker(self) -> None:
        if self.redaction_marker is not None and not isinstance(self.redaction_marker, str):
            raise ConfigurationError(
                "redaction_marker must be a string or None",
                field_name="redaction_marker",
                expected_type="str",
                actual_value=self.redaction_marker,
            )

    @property
    def rules(self) -> tuple[AttributeRule, ...]:
        """All rules in evaluation order."""
        return (
            AttributeRule(RuleKind.REDACT, self.redact_attributes),
            AttributeRule(RuleKind.PRESERVE, self.preserve_attributes),
            *self.force_mappings,
            *self.default_mappings,
        )

    @property
    def aliases(self) -> dict[str, tuple[FieldPattern, ...]]:
        """Preset aliases overlaid with user aliases."""
        return {**self.default_aliases, **self.alias_attributes}

    def with_force_mapping(self, method: str, targets: Any) -> "ScrubPolicy":
        """Create a new policy with an additional forced mapping rule."""
        rule = AttributeRule(RuleKind.FORCE_MAP, coerce_patterns(targets), MethodKind.from_name(method))
        return replace(self, force_mappings=(*self.force_mappings, rule))

    def with_preserved(self, targets: Any) -> "ScrubPolicy":
        """Create a new policy preserving additional attributes."""
        return replace(
            self, preserve_attributes=(*self.preserve_attributes, *coerce_patterns(targets))
        )

    def with_redacted(self, targets: Any) -> "ScrubPolicy":
        """Create a new policy redacting additional attributes."""
        return replace(
            self, redact_attributes=(*self.redact_attributes, *coerce_patterns(targets))
        )

    def with_defaults(self, other: "ScrubPolicy") -> "ScrubPolicy":
        """Layer *other*'s default mappings and aliases beneath this policy's."""
        return replace(
            self,
            default_mappings=(*self.default_mappings, *other.default_mappings),
            default_aliases={**other.default_aliases, **self.default_aliases},
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert policy to dictionary for serialization."""
        return {
            "redact_attributes": [p.to_dict() for p in self.redact_attributes],
            "preserve_attributes": [p.to_dict() for p in self.preserve_attributes],
            "force_mappings": _rules_to_list(self.force_mappings),
            "default_mappings": _rules_to_list(self.default_mappings),
            "alias_attributes": {
                k: [p.to_dict() for p in v] for k, v in self.alias_attributes.items()
            },
            "default_aliases": {
                k: [p.to_dict() for p in v] for k, v in self.default_aliases.items()
            },
            "redaction_marker": self.redaction_marker,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScrubPolicy":
        """Create policy from dictionary representation."""
        patterns = _patterns_from_dicts

        def mappings(raw: Any) -> Any:
            # Ordered rule lists pass through; ``{method: targets}`` is the older form.
            if isinstance(raw, list):
                return raw
            return {method: patterns(items) for method, items in (raw or {}).items()}

        return cls(
            redact_attributes=patterns(data.get("redact_attributes")),
            preserve_attributes=patterns(data.get("preserve_attributes")),
            force_mappings=mappings(data.get("force_mappings")),
            default_mappings=mappings(data.get("default_mappings")),
            alias_attributes=mappings(data.get("alias_attributes")),
            default_aliases=mappings(data.get("default_aliases")),
            redaction_marker=data.get("redaction_marker"),
        )


class AttributeClassifier:
    """
    Classify attribute names against a :class:`ScrubPolicy`.

    Policies are immutable, so decisions are cached per attribute name.
    """

    def __init__(self, policy: Optional[ScrubPolicy] = None):
        self.policy = policy or ScrubPolicy()
        self._actions: dict[str, Action] = {}
        self._alias_targets: dict[str, str] = {}

    def classify(self, field_name: str) -> Action:
        """Return the action for *field_name*."""
        action = self._actions.get(field_name)
        if action is None:
            action = self._classify(field_name)
            self._actions[field_name] = action
            logger.debug(f"Attribute {field_name} classified as {action.kind.value} "
                         f"{action.method_name or ''}".rstrip())
        return action

    def _classify(self, field_name: str) -> Action:
        policy = self.policy
        if any(p.matches(field_name) for p in policy.redact_attributes):
            return REDACT_ACTION
        if any(p.matches(field_name) for p in policy.preserve_attributes):
            return PRESERVE_ACTION
        for rule in (*policy.force_mappings, *policy.default_mappings):
            if rule.matches(field_name):
                return Action(ActionKind.APPLY, rule.method)
        return PASS_THROUGH_ACTION

    def alias_target(self, field_name: str) -> str:
        """Return the canonical table key for *field_name*."""
        target = self._alias_targets.get(field_name)
        if target is None:
            target = field_name
            for canonical, alternates in self.policy.aliases.items():
                if field_name != canonical and any(p.matches(field_name) for p in alternates):
                    target = canonical
                    break
            self._alias_targets[field_name] = target
        return target
