"""Preset policies for common clinical data models."""

import re
from typing import Optional

from lessidentify.core.exceptions import ConfigurationError
from lessidentify.core.policies import ScrubPolicy

# Person and birth attribute names per preset.
PRESET_KEYS: dict[str, tuple[Optional[str], Optional[str]]] = {
    "pedsnet": ("person_id", None),
    "pcornet": ("patid", "birth_date"),
}


def get_pedsnet_policy() -> ScrubPolicy:
    """Return the default-tier policy for the PEDSnet CDM.

    Identifiers ending in ``_id`` are remapped except ``*_concept_id``
    vocabulary references. ``*_date`` attributes are date-shifted,
    ``*_time`` and ``time_of_birth`` datetime-shifted, ``site`` becomes a
    label and ``*_source_value`` is redacted.
    """
    return ScrubPolicy(
        default_mappings={
            "remap_id": [re.compile(r"(?<!_concept)_id$", re.IGNORECASE)],
            "remap_date": [re.compile(r"_date$", re.IGNORECASE)],
            "remap_datetime": [re.compile(r"^time_of_birth$|_time$", re.IGNORECASE)],
            "remap_label": ["site"],
            "redact_value": [re.compile(r"_source_value$", re.IGNORECASE)],
        }
    )


def get_pcornet_policy() -> ScrubPolicy:
    """Return the default-tier policy for the PCORnet CDM.

    Label attributes are listed before the broad ``id$`` rule so that
    ``facilityid`` stays a label. Provider IDs from the per-domain tables
    share the ``providerid`` table.
    """
    return ScrubPolicy(
        default_mappings={
            "remap_label": ["site", "facilityid", "pro_response_text", "vx_lot_num"],
            "remap_id": [re.compile(r"id$", re.IGNORECASE)],
            "remap_date": [re.compile(r"_date$", re.IGNORECASE)],
            "remap_datetime": [re.compile(r"_time$", re.IGNORECASE)],
            "redact_value": [
                re.compile(
                    r"^raw_|^trial_invite_code$|^provider_npi$|result_text$|zip9$",
                    re.IGNORECASE,
                )
            ],
        },
        default_aliases={
            "providerid": [
                "medadmin_providerid",
                "obsgen_providerid",
                "obsclin_providerid",
                "rx_providerid",
                "vx_providerid",
            ]
        },
    )


_PRESETS = {
    "pedsnet": get_pedsnet_policy,
    "pcornet": get_pcornet_policy,
}


def _preset_name(name: str) -> str:
    key = name.strip().lower()
    if key not in _PRESETS:
        raise ConfigurationError(
            f"Unknown preset '{name}'. Valid presets: {sorted(_PRESETS)}",
            field_name="preset",
            actual_value=name,
        )
    return key


def get_policy_preset(name: str) -> ScrubPolicy:
    """Return a preset policy by name (``pedsnet`` or ``pcornet``)."""
    return _PRESETS[_preset_name(name)]()


def get_preset_keys(name: str) -> tuple[Optional[str], Optional[str]]:
    """Return the ``(person_id_key, birth_datetime_key)`` a preset expects."""
    return PRESET_KEYS[_preset_name(name)]
