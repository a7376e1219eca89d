"""RecordScrubber - high-level API for de-identifying tabular records."""

import logging
import random
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Optional, Union, cast

if TYPE_CHECKING:
    from lessidentify.engine_builder import RecordScrubberBuilder

from lessidentify.core.config import DateShiftSettings, RemapSettings
from lessidentify.core.crosswalk import CrosswalkState
from lessidentify.core.dates import DateShiftEngine
from lessidentify.core.identifiers import IdentifierRemapper
from lessidentify.core.policies import AttributeClassifier, ScrubPolicy
from lessidentify.core.strategies import ActionKind, MethodKind

logger = logging.getLogger(__name__)


@dataclass
class ScrubStats:
    """Running counts of what happened to scrubbed attributes."""

    records: int = 0
    redacted: int = 0
    preserved: int = 0
    remapped: int = 0
    passed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "records": self.records,
            "redacted": self.redacted,
            "preserved": self.preserved,
            "remapped": self.remapped,
            "passed": self.passed,
        }


class RecordScrubber:
    """Remap identifiers, shift dates and redact values in flat records.

    A scrubber owns one crosswalk. Everything it issues (substitute IDs,
    person offsets, birth anchors) accumulates there, so the same original
    always scrubs to the same value for the life of the scrubber, and across
    runs when the crosswalk is saved and reloaded.

    Examples:
        # Preset rules, PEDSnet-style records
        scrubber = RecordScrubber.builder().with_preset("pedsnet").build()
        clean = scrubber.scrub({"person_id": 17, "visit_start_date": "2014-03-02"})

        # Explicit policy and settings
        scrubber = RecordScrubber(
            policy=ScrubPolicy(force_mappings={"remap_id": ["mrn"]}),
            date_settings=DateShiftSettings(person_id_key="mrn"),
        )
    """

    def __init__(
        self,
        policy: Optional[ScrubPolicy] = None,
        remap_settings: Optional[RemapSettings] = None,
        date_settings: Optional[DateShiftSettings] = None,
        rng: Optional[random.Random] = None,
        state: Optional[CrosswalkState] = None,
    ):
        """Initialize the scrubber.

        Args:
            policy: Rules deciding what happens to each attribute
            remap_settings: Identifier issuance settings, ignored if *state* is given
            date_settings: Date shifting settings, ignored if *state* is given
            rng: Random source for IDs and offsets; defaults to ``random.SystemRandom()``
            state: Existing crosswalk state to continue from
        """
        self._policy = policy or ScrubPolicy()
        self._classifier = AttributeClassifier(self._policy)
        self._state = state or CrosswalkState(
            remap=remap_settings or RemapSettings(),
            date_shift=date_settings or DateShiftSettings(),
        )
        rng = rng or random.SystemRandom()
        self._ids = IdentifierRemapper(self._state, rng)
        self._dates = DateShiftEngine(self._state, rng)
        self._stats = ScrubStats()
        self._methods: dict[MethodKind, Callable[[dict[str, Any], str], Any]] = {
            MethodKind.REMAP_ID: self.remap_id,
            MethodKind.REMAP_LABEL: self.remap_label,
            MethodKind.REMAP_DATE: self.remap_date,
            MethodKind.REMAP_DATETIME: self.remap_datetime,
            MethodKind.REMAP_DATETIME_ALWAYS: self.remap_datetime_always,
            MethodKind.REDACT_VALUE: self.redact_value,
        }

    @classmethod
    def builder(cls) -> "RecordScrubberBuilder":
        """Create a builder for advanced configuration."""
        from lessidentify.engine_builder import RecordScrubberBuilder

        return RecordScrubberBuilder()

    @property
    def policy(self) -> ScrubPolicy:
        return self._policy

    @property
    def classifier(self) -> AttributeClassifier:
        return self._classifier

    @property
    def crosswalk(self) -> CrosswalkState:
        return self._state

    @property
    def stats(self) -> ScrubStats:
        return self._stats

    def scrub(self, record: dict[str, Any]) -> dict[str, Any]:
        """Return a scrubbed copy of *record*.

        Attributes come out in input order. Person IDs and birth dates are
        read from the original record, so it does not matter whether those
        attributes are themselves remapped.
        """
        result: dict[str, Any] = {}
        for key, value in record.items():
            action = self._classifier.classify(key)
            if action.kind is ActionKind.REDACT:
                result[key] = self.redact_value(record, key)
                self._stats.redacted += 1
            elif action.kind is ActionKind.PRESERVE:
                result[key] = value
                self._stats.preserved += 1
            elif action.kind is ActionKind.APPLY:
                result[key] = self._methods[cast(MethodKind, action.method)](record, key)
                if action.method is MethodKind.REDACT_VALUE:
                    self._stats.redacted += 1
                else:
                    self._stats.remapped += 1
            else:
                result[key] = value
                self._stats.passed += 1
        self._stats.records += 1
        return result

    def scrub_records(self, records: Iterable[dict[str, Any]]) -> Iterator[dict[str, Any]]:
        """Scrub each record in turn, lazily."""
        for record in records:
            yield self.scrub(record)

    def remap_id(self, record: dict[str, Any], key: str, with_original: bool = False) -> Any:
        """Replace ``record[key]`` with a stable integer substitute."""
        original = record.get(key)
        new = self._ids.remap_id(self._classifier.alias_target(key), original)
        return (original, new) if with_original else new

    def remap_label(self, record: dict[str, Any], key: str, with_original: bool = False) -> Any:
        """Replace ``record[key]`` with ``"<key>_<substitute>"``."""
        original = record.get(key)
        new = self._ids.remap_label(self._classifier.alias_target(key), original)
        return (original, new) if with_original else new

    def remap_date(self, record: dict[str, Any], key: str, **kwargs: Any) -> Any:
        """Shift ``record[key]`` by its person's offset; see :class:`DateShiftEngine`."""
        return self._dates.remap_date(record, key, **kwargs)

    def remap_datetime(self, record: dict[str, Any], key: str, **kwargs: Any) -> Any:
        return self._dates.remap_datetime(record, key, **kwargs)

    def remap_datetime_always(self, record: dict[str, Any], key: str, **kwargs: Any) -> Any:
        return self._dates.remap_datetime_always(record, key, **kwargs)

    def remap_datetime_to_age(self, record: dict[str, Any], key: str, **kwargs: Any) -> Any:
        return self._dates.remap_datetime_to_age(record, key, **kwargs)

    def redact_value(self, record: dict[str, Any], key: str, with_original: bool = False) -> Any:
        """Return the policy's redaction marker (``None`` unless configured)."""
        new = self._policy.redaction_marker
        return (record.get(key), new) if with_original else new

    def save_crosswalk(self, file_path: Union[str, Path]) -> Path:
        """Write the crosswalk to *file_path* as JSON."""
        return self._state.save_to_file(file_path)

    def load_crosswalk(self, file_path: Union[str, Path]) -> CrosswalkState:
        """Replace the crosswalk with the one saved at *file_path*.

        Raises:
            CrosswalkError: If the file cannot be read or parsed; the current
                crosswalk is left as it was
        """
        state = self._state.load(file_path)
        self._ids.state = state
        self._dates.state = state
        return state
