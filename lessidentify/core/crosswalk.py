"""Crosswalk state: every map, counter and offset accumulated during a run."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional, Union

from .config import DateShiftSettings, RemapSettings

MINUTES_PER_DAY = 60 * 24


@dataclass(frozen=True)
class PersonOffset:
    """
    A person's date shift, split the way it is persisted.

    All three components share the sign of the offset, and the total
    magnitude is at least one day.

    Examples:
        >>> PersonOffset.from_fractional_days(-12.5)
        PersonOffset(days=-12, minutes=-720, seconds=0)
    """

    days: int
    minutes: int = 0
    seconds: int = 0

    @classmethod
    def from_fractional_days(cls, offset: float) -> "PersonOffset":
        days = int(offset)
        min_frac = (offset - days) * MINUTES_PER_DAY
        whole_min = int(min_frac)
        return cls(days=days, minutes=whole_min, seconds=int((min_frac - whole_min) * 60))

    def as_timedelta(self) -> timedelta:
        return timedelta(days=self.days, minutes=self.minutes, seconds=self.seconds)

    def to_dict(self) -> dict[str, int]:
        return {"days": self.days, "minutes": self.minutes, "seconds": self.seconds}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PersonOffset":
        return cls(
            days=int(data["days"]),
            minutes=int(data.get("minutes", 0)),
            seconds=int(data.get("seconds", 0)),
        )


DatetimeMapEntry = Union[PersonOffset, datetime]


@dataclass
class CrosswalkState:
    """
    Mutable store for the state of a scrubbing run.

    Holds the identifier tables, the counters that feed new ID blocks, the
    per-person offsets (or birth anchors in age mode) and the settings needed
    to reproduce remapping behavior. Unconsumed ID blocks live here too but
    are never persisted: counters always point past every reserved block, so
    a reloaded state keeps issuing unused IDs.

    Attributes:
        remap: Identifier issuance settings
        date_shift: Date shifting settings
        id_map: Per key, original value (as text) to substitute ID
        id_counters: Per block key, next integer not yet reserved
        id_blocks: Per block key, reserved IDs not yet drawn
        datetime_map: Per person ID (as text), offset or birth anchor
    """

    remap: RemapSettings = field(default_factory=RemapSettings)
    date_shift: DateShiftSettings = field(default_factory=DateShiftSettings)
    id_map: dict[str, dict[str, int]] = field(default_factory=dict)
    id_counters: dict[str, int] = field(default_factory=dict)
    id_blocks: dict[str, list[int]] = field(default_factory=dict)
    datetime_map: dict[str, DatetimeMapEntry] = field(default_factory=dict)

    @property
    def person_id_key(self) -> Optional[str]:
        return self.date_shift.person_id_key

    @property
    def birth_datetime_key(self) -> Optional[str]:
        return self.date_shift.birth_datetime_key

    def lookup_id(self, key: str, original: str) -> Optional[int]:
        return self.id_map.get(key, {}).get(original)

    def record_id(self, key: str, original: str, substitute: int) -> None:
        table = self.id_map.setdefault(key, {})
        if original in table:
            raise ValueError(f"{key} value {original!r} is already mapped to {table[original]}")
        table[original] = substitute

    def issued_ids(self, key: str) -> set[int]:
        return set(self.id_map.get(key, {}).values())

    def adopt(self, other: "CrosswalkState") -> None:
        """Replace all of this state's contents with *other*'s."""
        self.remap = other.remap
        self.date_shift = other.date_shift
        self.id_map = other.id_map
        self.id_counters = other.id_counters
        self.id_blocks = other.id_blocks
        self.datetime_map = other.datetime_map

    def get_stats(self) -> dict[str, Any]:
        """Summary counts for logging and reporting."""
        return {
            "id_keys": len(self.id_map),
            "ids_issued": sum(len(t) for t in self.id_map.values()),
            "ids_by_key": {k: len(t) for k, t in self.id_map.items()},
            "persons": len(self.datetime_map),
            "age_mode": self.date_shift.datetime_to_age is not None,
        }

    def to_dict(self) -> dict[str, Any]:
        from .crosswalk_serializer import CrosswalkSerializer

        return CrosswalkSerializer.to_dict(self)

    def to_json(self, indent: Optional[int] = None) -> str:
        from .crosswalk_serializer import CrosswalkSerializer

        return CrosswalkSerializer.to_json(self, indent=indent)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CrosswalkState":
        from .crosswalk_serializer import CrosswalkSerializer

        return CrosswalkSerializer.from_dict(data)

    @classmethod
    def from_json(cls, json_str: str) -> "CrosswalkState":
        from .crosswalk_serializer import CrosswalkSerializer

        return CrosswalkSerializer.from_json(json_str)

    def save_to_file(self, file_path: Union[str, Path], indent: int = 2) -> Path:
        """Write the crosswalk as JSON; returns the path written."""
        from .crosswalk_serializer import CrosswalkSerializer

        return CrosswalkSerializer.save_to_file(self, file_path, indent=indent)

    @classmethod
    def load_from_file(cls, file_path: Union[str, Path]) -> "CrosswalkState":
        """Read a crosswalk written by :meth:`save_to_file`."""
        from .crosswalk_serializer import CrosswalkSerializer

        return CrosswalkSerializer.load_from_file(file_path)

    def load(self, file_path: Union[str, Path]) -> "CrosswalkState":
        """Replace this state with the contents of *file_path*.

        The file is fully parsed before anything is replaced, so a failed
        load leaves the current state untouched.
        """
        self.adopt(self.load_from_file(file_path))
        return self
