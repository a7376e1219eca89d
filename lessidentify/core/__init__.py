"""Core functionality for lessidentify: rules, crosswalk, remapping and date shifting."""

from .config import (
    DEFAULT_BLOCK_SIZE,
    DEFAULT_WINDOW_DAYS,
    AgeUnit,
    DateShiftSettings,
    RemapSettings,
    ThresholdAction,
)
from .crosswalk import CrosswalkState, PersonOffset
from .crosswalk_serializer import CrosswalkSerializer
from .dates import DateShiftEngine, parse_temporal
from .exceptions import (
    ConfigurationError,
    CrosswalkError,
    DateParseError,
    LessidentifyError,
    PolicyError,
    ValidationError,
    create_crosswalk_error,
    create_date_parse_error,
)
from .identifiers import IdentifierRemapper
from .policies import AttributeClassifier, ScrubPolicy
from .policy_loader import LoadedPolicy, PolicyLoader, load_policy_dict, load_policy_file
from .strategies import (
    Action,
    ActionKind,
    AttributeRule,
    FieldPattern,
    MethodKind,
    RuleKind,
)

__all__ = [
    # Configuration
    "DEFAULT_BLOCK_SIZE",
    "DEFAULT_WINDOW_DAYS",
    "AgeUnit",
    "DateShiftSettings",
    "RemapSettings",
    "ThresholdAction",
    # Crosswalk
    "CrosswalkState",
    "CrosswalkSerializer",
    "PersonOffset",
    # Engines
    "DateShiftEngine",
    "IdentifierRemapper",
    "parse_temporal",
    # Exceptions
    "ConfigurationError",
    "CrosswalkError",
    "DateParseError",
    "LessidentifyError",
    "PolicyError",
    "ValidationError",
    "create_crosswalk_error",
    "create_date_parse_error",
    # Policy system
    "AttributeClassifier",
    "LoadedPolicy",
    "PolicyLoader",
    "ScrubPolicy",
    "load_policy_dict",
    "load_policy_file",
    # Rule system
    "Action",
    "ActionKind",
    "AttributeRule",
    "FieldPattern",
    "MethodKind",
    "RuleKind",
]
