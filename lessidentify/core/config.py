"""Settings that control identifier issuance and date shifting.

Both settings objects travel with the crosswalk, because reproducing the
remapping of a previous run needs the same window, thresholds and block
layout. They can be built directly, from a policy file (see
:mod:`lessidentify.core.policy_loader`) or from ``LESSIDENTIFY_*``
environment variables.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Union

from dateutil import parser as date_parser

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 366.0
DEFAULT_BLOCK_SIZE = 1000
SHARED_BLOCK_KEY = "all"


class ThresholdAction(Enum):
    """What to do when a shifted date falls outside the configured bounds."""

    NONE = "none"
    WARN = "warn"
    RETRY = "retry"


class AgeUnit(Enum):
    """Granularity for expressing dates as elapsed time since birth."""

    DAYS = "days"
    MONTHS = "months"
    YEARS = "years"

    @property
    def days_per_unit(self) -> float:
        return {"days": 1.0, "months": 30.44, "years": 365.25}[self.value]


def _coerce_enum(enum_cls: type, value: Any, field_name: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError as e:
        valid = [m.value for m in enum_cls]  # type: ignore[attr-defined]
        raise ConfigurationError(
            f"{field_name} must be one of {valid}, got {value!r}",
            field_name=field_name,
            actual_value=value,
        ) from e


def coerce_threshold(value: Any, field_name: str) -> Optional[datetime]:
    """Convert a threshold given as text, date or datetime to a datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return date_parser.parse(str(value))
    except (ValueError, OverflowError) as e:
        raise ConfigurationError(
            f"{field_name} is not a recognizable date: {value!r}",
            field_name=field_name,
            actual_value=value,
        ) from e


@dataclass
class RemapSettings:
    """
    Identifier issuance settings.

    Attributes:
        base: First candidate ID, either one integer for every key or a
            mapping of key to integer (``"default"`` covers unlisted keys).
            ``None`` picks a random base per counter.
        block_size: Size of each reserved block, as an integer or per-key mapping
        per_attribute_blocks: Draw each key from its own block instead of
            the single shared ``"all"`` block
    """

    base: Optional[Union[int, dict[str, int]]] = None
    block_size: Union[int, dict[str, int]] = DEFAULT_BLOCK_SIZE
    per_attribute_blocks: bool = False

    def __post_init__(self) -> None:
        self._validate_base()
        self._validate_block_size()

    def _validate_base(self) -> None:
        values = self.base.values() if isinstance(self.base, dict) else [self.base]
        for value in values:
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConfigurationError(
                    f"remap_base must be a non-negative integer, got {value!r}",
                    field_name="remap_base",
                    expected_type="int",
                    actual_value=value,
                )

    def _validate_block_size(self) -> None:
        values = self.block_size.values() if isinstance(self.block_size, dict) else [self.block_size]
        for value in values:
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigurationError(
                    f"remap_block_size must be a positive integer, got {value!r}",
                    field_name="remap_block_size",
                    expected_type="int",
                    actual_value=value,
                )
        if isinstance(self.block_size, dict) and "default" not in self.block_size:
            self.block_size = {**self.block_size, "default": DEFAULT_BLOCK_SIZE}

    def block_key(self, key: str) -> str:
        """Key of the block (and counter) that serves *key*."""
        return key if self.per_attribute_blocks else SHARED_BLOCK_KEY

    def base_for(self, key: str) -> Optional[int]:
        if isinstance(self.base, dict):
            return self.base.get(key, self.base.get("default"))
        return self.base

    def block_size_for(self, key: str) -> int:
        if isinstance(self.block_size, dict):
            return self.block_size.get(key, self.block_size["default"])
        return self.block_size

    def to_dict(self) -> dict[str, Any]:
        return {
            "remap_base": self.base,
            "remap_block_size": self.block_size,
            "remap_per_attribute_blocks": self.per_attribute_blocks,
        }

    @classmethod
    def from_environment(cls) -> "RemapSettings":
        """Load settings from ``LESSIDENTIFY_REMAP_*`` environment variables."""
        return cls(
            base=_get_env_int("LESSIDENTIFY_REMAP_BASE", None, allow_zero=True),
            block_size=_get_env_int("LESSIDENTIFY_REMAP_BLOCK_SIZE", DEFAULT_BLOCK_SIZE)
            or DEFAULT_BLOCK_SIZE,
            per_attribute_blocks=_get_env_bool("LESSIDENTIFY_REMAP_PER_ATTRIBUTE_BLOCKS", False),
        )


@dataclass
class DateShiftSettings:
    """
    Date shifting settings.

    Attributes:
        person_id_key: Attribute holding the person identifier in records
        birth_datetime_key: Attribute holding the birth date(time), used as
            the anchor in age-conversion mode
        window_days: Width of the window offsets are drawn from, centred on zero
        before_date_threshold: Earliest acceptable shifted value
        after_date_threshold: Latest acceptable shifted value
        threshold_action: none, warn or retry
        datetime_to_age: Age unit; when set, dates become elapsed time since birth
    """

    person_id_key: Optional[str] = None
    birth_datetime_key: Optional[str] = None
    window_days: float = DEFAULT_WINDOW_DAYS
    before_date_threshold: Optional[datetime] = None
    after_date_threshold: Optional[datetime] = None
    threshold_action: ThresholdAction = ThresholdAction.NONE
    datetime_to_age: Optional[AgeUnit] = field(default=None)

    def __post_init__(self) -> None:
        self._validate_window()
        self.before_date_threshold = coerce_threshold(
            self.before_date_threshold, "before_date_threshold"
        )
        self.after_date_threshold = coerce_threshold(
            self.after_date_threshold, "after_date_threshold"
        )
        self.threshold_action = _coerce_enum(
            ThresholdAction, self.threshold_action or ThresholdAction.NONE, "date_threshold_action"
        )
        if self.datetime_to_age is not None:
            self.datetime_to_age = _coerce_enum(AgeUnit, self.datetime_to_age, "datetime_to_age")
        self._validate_thresholds()

    def _validate_window(self) -> None:
        if isinstance(self.window_days, bool) or not isinstance(self.window_days, (int, float)):
            raise ConfigurationError(
                "datetime_window_days must be a number",
                field_name="datetime_window_days",
                expected_type="float",
                actual_value=self.window_days,
            )
        if self.window_days < 0:
            raise ConfigurationError(
                f"datetime_window_days must not be negative, got {self.window_days}",
                field_name="datetime_window_days",
                actual_value=self.window_days,
            )
        self.window_days = float(self.window_days)

    def _validate_thresholds(self) -> None:
        before, after = self.before_date_threshold, self.after_date_threshold
        if before is not None and after is not None:
            if _naive(before) > _naive(after):
                logger.warning(
                    f"before_date_threshold {before} is later than after_date_threshold "
                    f"{after}; no shifted date can satisfy both"
                )

    @property
    def has_thresholds(self) -> bool:
        return (
            self.threshold_action is not ThresholdAction.NONE
            and (self.before_date_threshold is not None or self.after_date_threshold is not None)
        )

    def out_of_bounds(self, value: datetime) -> bool:
        """Whether *value* falls before the early bound or after the late bound."""
        value = _naive(value)
        if self.before_date_threshold is not None and value < _naive(self.before_date_threshold):
            return True
        if self.after_date_threshold is not None and value > _naive(self.after_date_threshold):
            return True
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "person_id_key": self.person_id_key,
            "birth_datetime_key": self.birth_datetime_key,
            "datetime_window_days": self.window_days,
            "before_date_threshold": (
                self.before_date_threshold.isoformat() if self.before_date_threshold else None
            ),
            "after_date_threshold": (
                self.after_date_threshold.isoformat() if self.after_date_threshold else None
            ),
            "date_threshold_action": self.threshold_action.value,
            "datetime_to_age": self.datetime_to_age.value if self.datetime_to_age else None,
        }

    @classmethod
    def from_environment(cls) -> "DateShiftSettings":
        """Load settings from ``LESSIDENTIFY_*`` environment variables.

        Environment Variables:
            LESSIDENTIFY_PERSON_ID_KEY: Person identifier attribute
            LESSIDENTIFY_BIRTH_DATETIME_KEY: Birth date(time) attribute
            LESSIDENTIFY_DATETIME_WINDOW_DAYS: Offset window width in days
            LESSIDENTIFY_BEFORE_DATE_THRESHOLD: Earliest acceptable shifted date
            LESSIDENTIFY_AFTER_DATE_THRESHOLD: Latest acceptable shifted date
            LESSIDENTIFY_DATE_THRESHOLD_ACTION: none|warn|retry
            LESSIDENTIFY_DATETIME_TO_AGE: days|months|years
        """
        settings = cls(
            person_id_key=os.getenv("LESSIDENTIFY_PERSON_ID_KEY") or None,
            birth_datetime_key=os.getenv("LESSIDENTIFY_BIRTH_DATETIME_KEY") or None,
            window_days=_get_env_float("LESSIDENTIFY_DATETIME_WINDOW_DAYS", DEFAULT_WINDOW_DAYS),
            before_date_threshold=os.getenv("LESSIDENTIFY_BEFORE_DATE_THRESHOLD") or None,
            after_date_threshold=os.getenv("LESSIDENTIFY_AFTER_DATE_THRESHOLD") or None,
            threshold_action=os.getenv("LESSIDENTIFY_DATE_THRESHOLD_ACTION") or ThresholdAction.NONE,
            datetime_to_age=os.getenv("LESSIDENTIFY_DATETIME_TO_AGE") or None,
        )
        logger.info(f"Loaded date shift settings from environment: {settings.to_dict()}")
        return settings


def _naive(value: datetime) -> datetime:
    return value.replace(tzinfo=None) if value.tzinfo is not None else value


def _get_env_bool(key: str, default: bool) -> bool:
    """Only 'true' and 'false' (case insensitive) override the default."""
    value = os.getenv(key)
    if value is None:
        return default
    cleaned = value.strip().lower()
    if cleaned == "true":
        return True
    elif cleaned == "false":
        return False
    return default


def _get_env_int(key: str, default: Optional[int], allow_zero: bool = False) -> Optional[int]:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        logger.warning(
            f"Environment variable {key}={value} is not a valid integer, using default {default}"
        )
        return default
    if parsed < 0 or (parsed == 0 and not allow_zero):
        logger.warning(f"Environment variable {key}={value} is out of range, using default {default}")
        return default
    return parsed


def _get_env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value.strip())
    except ValueError:
        logger.warning(
            f"Environment variable {key}={value} is not a valid number, using default {default}"
        )
        return default
