"""lessidentify: consistent de-identification of tabular clinical records.

Identifiers are replaced by stable random substitutes, dates are shifted by
a per-person offset (or converted to ages), and sensitive values are
redacted, all driven by attribute-name rules. The crosswalk of everything
issued can be saved and reloaded to keep later runs consistent.
"""

__version__ = "0.1.0"

from .core import (
    AgeUnit,
    AttributeClassifier,
    ConfigurationError,
    CrosswalkError,
    CrosswalkState,
    DateParseError,
    DateShiftSettings,
    FieldPattern,
    LessidentifyError,
    MethodKind,
    PolicyError,
    RemapSettings,
    ScrubPolicy,
    ThresholdAction,
    load_policy_file,
)
from .defaults import get_pcornet_policy, get_pedsnet_policy, get_policy_preset
from .engine import RecordScrubber, ScrubStats
from .engine_builder import RecordScrubberBuilder

__all__ = [
    "__version__",
    # Main API
    "RecordScrubber",
    "RecordScrubberBuilder",
    "ScrubStats",
    # Policies and presets
    "ScrubPolicy",
    "FieldPattern",
    "MethodKind",
    "AttributeClassifier",
    "get_pedsnet_policy",
    "get_pcornet_policy",
    "get_policy_preset",
    "load_policy_file",
    # Settings
    "AgeUnit",
    "DateShiftSettings",
    "RemapSettings",
    "ThresholdAction",
    # Crosswalk
    "CrosswalkState",
    # Exceptions
    "LessidentifyError",
    "ConfigurationError",
    "CrosswalkError",
    "DateParseError",
    "PolicyError",
]
