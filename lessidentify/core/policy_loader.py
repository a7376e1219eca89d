"""Policy loading from YAML files or plain mappings, validated with pydantic."""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .config import AgeUnit, DateShiftSettings, RemapSettings, ThresholdAction
from .exceptions import ConfigurationError, PolicyError
from .policies import ScrubPolicy
from .strategies import FieldPattern, MethodKind

logger = logging.getLogger(__name__)


class PatternItem(BaseModel):
    """Pydantic model for one pattern item."""

    pattern: Optional[str] = Field(None, description="Regex searched in attribute names")
    value: Optional[str] = Field(None, description="Exact attribute name")
    ignore_case: bool = Field(False, description="Match case-insensitively")

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: Any) -> Any:
        """Validate regex pattern if provided."""
        if v is not None:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"Invalid regex pattern: {e}") from e
        return v

    def to_field_pattern(self) -> FieldPattern:
        if self.pattern is not None:
            return FieldPattern.regex(self.pattern, ignore_case=self.ignore_case)
        if self.value is not None:
            return FieldPattern.literal(self.value, ignore_case=self.ignore_case)
        raise ValueError("Pattern item needs a 'pattern' or 'value' key")


PatternList = list[Union[str, PatternItem]]


def _to_patterns(items: Optional[PatternList]) -> tuple[FieldPattern, ...]:
    if not items:
        return ()
    return tuple(
        FieldPattern.literal(item) if isinstance(item, str) else item.to_field_pattern()
        for item in items
    )


class RemapConfig(BaseModel):
    """Pydantic model for identifier issuance settings."""

    base: Optional[Union[int, dict[str, int]]] = Field(None, description="First candidate ID")
    block_size: Union[int, dict[str, int]] = Field(1000, description="Reserved block size")
    per_attribute_blocks: bool = Field(False, description="One block per attribute")


class DateShiftConfig(BaseModel):
    """Pydantic model for date shifting settings."""

    person_id_key: Optional[str] = None
    birth_datetime_key: Optional[str] = None
    window_days: float = Field(366.0, ge=0, description="Offset window width in days")
    before_date_threshold: Optional[str] = None
    after_date_threshold: Optional[str] = None
    threshold_action: str = Field("none", description="none, warn or retry")
    datetime_to_age: Optional[str] = Field(None, description="days, months or years")

    @field_validator("before_date_threshold", "after_date_threshold", mode="before")
    @classmethod
    def stringify_threshold(cls, v: Any) -> Any:
        """YAML turns bare dates into date objects; keep them as text."""
        return str(v) if v is not None else v

    @field_validator("threshold_action")
    @classmethod
    def validate_threshold_action(cls, v: Any) -> Any:
        valid = [a.value for a in ThresholdAction]
        if v not in valid:
            raise ValueError(f"Invalid threshold action '{v}'. Valid actions: {valid}")
        return v

    @field_validator("datetime_to_age")
    @classmethod
    def validate_age_unit(cls, v: Any) -> Any:
        if v is not None:
            valid = [u.value for u in AgeUnit]
            if v not in valid:
                raise ValueError(f"Invalid age unit '{v}'. Valid units: {valid}")
        return v


class PolicyFileSchema(BaseModel):
    """Pydantic model for policy file schema validation."""

    version: Optional[str] = Field("1.0", description="Policy schema version")
    name: Optional[str] = Field(None, description="Policy name")
    description: Optional[str] = Field(None, description="Policy description")
    preset: Optional[str] = Field(None, description="Preset supplying default mappings")

    redact_attributes: Optional[PatternList] = None
    preserve_attributes: Optional[PatternList] = None
    force_mappings: Optional[dict[str, PatternList]] = None
    alias_attributes: Optional[dict[str, PatternList]] = None
    redaction_marker: Optional[str] = None

    remap: Optional[RemapConfig] = None
    date_shift: Optional[DateShiftConfig] = None

    @field_validator("force_mappings")
    @classmethod
    def validate_methods(cls, v: Any) -> Any:
        """Validate mapping method names."""
        if v is not None:
            valid = [m.value for m in MethodKind]
            for method in v:
                if method not in valid:
                    raise ValueError(f"Invalid mapping method '{method}'. Valid methods: {valid}")
        return v

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: Any) -> Any:
        """Validate version format."""
        if v is not None:
            version_pattern = r"^\d+\.\d+(\.\d+)?$"
            if not re.match(version_pattern, v):
                raise ValueError(f"Version must follow format 'x.y' or 'x.y.z', got '{v}'")
        return v


@dataclass
class LoadedPolicy:
    """A policy together with the settings declared alongside it."""

    policy: ScrubPolicy
    remap_settings: RemapSettings = field(default_factory=RemapSettings)
    date_settings: DateShiftSettings = field(default_factory=DateShiftSettings)
    name: Optional[str] = None


class PolicyLoader:
    """
    Load scrub policies from YAML files or mappings.

    A policy file may name a ``preset``; the preset's mappings and aliases
    then sit in the default tier beneath the file's own rules, and the
    preset's person and birth keys apply unless the file sets them.
    """

    def __init__(self, base_path: Optional[Path] = None):
        self.base_path = base_path or Path.cwd()

    def load_policy(self, policy_path: Union[str, Path]) -> LoadedPolicy:
        """
        Load a policy and its settings from a YAML file.

        Raises:
            PolicyError: If the file cannot be read, is not valid YAML or
                does not validate
        """
        policy_path = Path(policy_path)
        if not policy_path.is_absolute():
            policy_path = self.base_path / policy_path

        try:
            with open(policy_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise PolicyError(
                f"Failed to read policy {policy_path}: {e}", policy_file=str(policy_path)
            ) from e
        except yaml.YAMLError as e:
            raise PolicyError(
                f"Invalid YAML in {policy_path}: {e}", policy_file=str(policy_path)
            ) from e

        try:
            loaded = self.load_dict(data)
        except PolicyError as e:
            e.add_context("policy_file", str(policy_path))
            raise
        logger.info(f"Loaded policy {loaded.name or policy_path.name} from {policy_path}")
        return loaded

    def load_dict(self, data: Any) -> LoadedPolicy:
        """Build a policy and its settings from an already parsed mapping."""
        if not isinstance(data, dict):
            raise PolicyError(f"Policy must be a mapping, got {type(data).__name__}")
        try:
            schema = PolicyFileSchema(**data)
        except ValidationError as e:
            raise PolicyError(f"Schema validation failed: {e}") from e

        try:
            return self._schema_to_loaded_policy(schema)
        except (ConfigurationError, ValueError) as e:
            raise PolicyError(f"Policy is invalid: {e}") from e

    def validate_policy_file(self, policy_path: Union[str, Path]) -> list[str]:
        """Return a list of problems with *policy_path*; empty when it loads."""
        try:
            self.load_policy(policy_path)
        except PolicyError as e:
            return [e.message]
        return []

    def _schema_to_loaded_policy(self, schema: PolicyFileSchema) -> LoadedPolicy:
        policy = ScrubPolicy(
            redact_attributes=_to_patterns(schema.redact_attributes),
            preserve_attributes=_to_patterns(schema.preserve_attributes),
            force_mappings={
                method: _to_patterns(items) for method, items in (schema.force_mappings or {}).items()
            },
            alias_attributes={
                canonical: _to_patterns(items)
                for canonical, items in (schema.alias_attributes or {}).items()
            },
            redaction_marker=schema.redaction_marker,
        )

        date_config = schema.date_shift or DateShiftConfig()
        person_id_key = date_config.person_id_key
        birth_datetime_key = date_config.birth_datetime_key

        if schema.preset:
            from ..defaults import get_policy_preset, get_preset_keys

            policy = policy.with_defaults(get_policy_preset(schema.preset))
            preset_person, preset_birth = get_preset_keys(schema.preset)
            person_id_key = person_id_key or preset_person
            birth_datetime_key = birth_datetime_key or preset_birth

        remap_config = schema.remap or RemapConfig()
        remap_settings = RemapSettings(
            base=remap_config.base,
            block_size=remap_config.block_size,
            per_attribute_blocks=remap_config.per_attribute_blocks,
        )
        date_settings = DateShiftSettings(
            person_id_key=person_id_key,
            birth_datetime_key=birth_datetime_key,
            window_days=date_config.window_days,
            before_date_threshold=date_config.before_date_threshold,
            after_date_threshold=date_config.after_date_threshold,
            threshold_action=date_config.threshold_action,
            datetime_to_age=date_config.datetime_to_age,
        )
        return LoadedPolicy(
            policy=policy,
            remap_settings=remap_settings,
            date_settings=date_settings,
            name=schema.name,
        )


def load_policy_file(policy_path: Union[str, Path]) -> LoadedPolicy:
    """Load a policy and its settings from a YAML file."""
    return PolicyLoader().load_policy(policy_path)


def load_policy_dict(data: dict[str, Any]) -> LoadedPolicy:
    """Load a policy and its settings from a mapping."""
    return PolicyLoader().load_dict(data)
