"""Builder pattern for advanced RecordScrubber configuration."""

import random
from pathlib import Path
from typing import Any, Optional, Union

from lessidentify.core.config import (
    DEFAULT_BLOCK_SIZE,
    DEFAULT_WINDOW_DAYS,
    AgeUnit,
    DateShiftSettings,
    RemapSettings,
    ThresholdAction,
)
from lessidentify.core.exceptions import ConfigurationError
from lessidentify.core.policies import ScrubPolicy
from lessidentify.core.policy_loader import load_policy_file
from lessidentify.defaults import get_policy_preset, get_preset_keys
from lessidentify.engine import RecordScrubber


class RecordScrubberBuilder:
    """Fluent builder for RecordScrubber.

    Examples:
        # PCORnet preset with thresholds
        scrubber = RecordScrubber.builder()
            .with_preset("pcornet")
            .with_thresholds(before="2010-01-01", after="2020-12-31", action="retry")
            .build()

        # Custom policy, reproducible draws
        scrubber = RecordScrubber.builder()
            .with_policy(my_policy)
            .with_person_id_key("mrn")
            .with_random(random.Random(42))
            .build()
    """

    def __init__(self) -> None:
        """Initialize builder with default values."""
        self.reset()

    def with_policy(self, policy: ScrubPolicy) -> "RecordScrubberBuilder":
        """Set the scrub policy.

        Args:
            policy: ScrubPolicy whose rules decide each attribute's fate

        Returns:
            Self for method chaining
        """
        self._policy = policy
        return self

    def with_policy_file(self, policy_path: Union[str, Path]) -> "RecordScrubberBuilder":
        """Load policy and settings from a YAML policy file.

        Settings declared in the file replace the builder's current ones;
        later ``with_*`` calls can still override them.
        """
        loaded = load_policy_file(policy_path)
        self._policy = loaded.policy
        remap, dates = loaded.remap_settings, loaded.date_settings
        self._remap_base = remap.base
        self._block_size = remap.block_size
        self._per_attribute_blocks = remap.per_attribute_blocks
        self._person_id_key = dates.person_id_key
        self._birth_datetime_key = dates.birth_datetime_key
        self._window_days = dates.window_days
        self._before = dates.before_date_threshold
        self._after = dates.after_date_threshold
        self._threshold_action = dates.threshold_action
        self._age_unit = dates.datetime_to_age
        return self

    def with_preset(self, name: str) -> "RecordScrubberBuilder":
        """Use a preset (``pedsnet`` or ``pcornet``) as the default rule tier.

        The preset's person and birth attribute names are used unless set
        explicitly.

        Raises:
            ConfigurationError: If *name* is not a known preset
        """
        get_preset_keys(name)
        self._preset = name
        return self

    def with_person_id_key(self, key: Optional[str]) -> "RecordScrubberBuilder":
        self._person_id_key = key
        return self

    def with_birth_datetime_key(self, key: Optional[str]) -> "RecordScrubberBuilder":
        self._birth_datetime_key = key
        return self

    def with_window_days(self, days: float) -> "RecordScrubberBuilder":
        """Set the width of the window date offsets are drawn from.

        Raises:
            ConfigurationError: If *days* is negative
        """
        if days < 0:
            raise ConfigurationError(
                "Window must not be negative", field_name="datetime_window_days", actual_value=days
            )
        self._window_days = days
        return self

    def with_thresholds(
        self,
        before: Any = None,
        after: Any = None,
        action: Union[str, ThresholdAction] = ThresholdAction.WARN,
    ) -> "RecordScrubberBuilder":
        """Bound shifted dates.

        Args:
            before: Earliest acceptable shifted value
            after: Latest acceptable shifted value
            action: ``warn`` or ``retry`` (``none`` disables the check)

        Returns:
            Self for method chaining
        """
        self._before = before
        self._after = after
        self._threshold_action = action
        return self

    def with_age_conversion(
        self, unit: Optional[Union[str, AgeUnit]] = AgeUnit.DAYS
    ) -> "RecordScrubberBuilder":
        """Replace dates with elapsed time since birth in *unit*; ``None`` turns it off."""
        self._age_unit = unit
        return self

    def with_remap_blocks(
        self,
        block_size: Union[int, dict[str, int]] = DEFAULT_BLOCK_SIZE,
        base: Optional[Union[int, dict[str, int]]] = None,
        per_attribute: bool = False,
    ) -> "RecordScrubberBuilder":
        """Configure how substitute IDs are reserved and drawn."""
        self._block_size = block_size
        self._remap_base = base
        self._per_attribute_blocks = per_attribute
        return self

    def with_random(self, rng: random.Random) -> "RecordScrubberBuilder":
        """Use *rng* for all random draws, e.g. a seeded ``random.Random`` in tests."""
        self._rng = rng
        return self

    def build(self) -> RecordScrubber:
        """Build and return the configured RecordScrubber instance.

        Raises:
            ConfigurationError: If the collected settings are invalid
        """
        policy = self._policy or ScrubPolicy()
        person_id_key, birth_datetime_key = self._person_id_key, self._birth_datetime_key
        if self._preset:
            policy = policy.with_defaults(get_policy_preset(self._preset))
            preset_person, preset_birth = get_preset_keys(self._preset)
            person_id_key = person_id_key or preset_person
            birth_datetime_key = birth_datetime_key or preset_birth

        remap_settings = RemapSettings(
            base=self._remap_base,
            block_size=self._block_size,
            per_attribute_blocks=self._per_attribute_blocks,
        )
        date_settings = DateShiftSettings(
            person_id_key=person_id_key,
            birth_datetime_key=birth_datetime_key,
            window_days=self._window_days,
            before_date_threshold=self._before,
            after_date_threshold=self._after,
            threshold_action=self._threshold_action,
            datetime_to_age=self._age_unit,
        )
        return RecordScrubber(
            policy=policy,
            remap_settings=remap_settings,
            date_settings=date_settings,
            rng=self._rng,
        )

    def reset(self) -> "RecordScrubberBuilder":
        """Reset builder to default values.

        Returns:
            Self for method chaining
        """
        self._policy: Optional[ScrubPolicy] = None
        self._preset: Optional[str] = None
        self._person_id_key: Optional[str] = None
        self._birth_datetime_key: Optional[str] = None
        self._window_days: float = DEFAULT_WINDOW_DAYS
        self._before: Any = None
        self._after: Any = None
        self._threshold_action: Union[str, ThresholdAction] = ThresholdAction.NONE
        self._age_unit: Optional[Union[str, AgeUnit]] = None
        self._block_size: Union[int, dict[str, int]] = DEFAULT_BLOCK_SIZE
        self._remap_base: Optional[Union[int, dict[str, int]]] = None
        self._per_attribute_blocks = False
        self._rng: Optional[random.Random] = None
        return self
