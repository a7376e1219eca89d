"""Person-consistent date shifting and age conversion.

Every person gets one random offset, drawn the first time a date is seen for
them and reused for every later date, so intervals between a person's events
survive while absolute dates do not. In age-conversion mode the person's
birth date(time) becomes an anchor instead, and dates are replaced by the time
elapsed since it.
"""

import logging
import random
import re
from datetime import date, datetime, time, timedelta
from typing import Any, Optional, Union

from dateutil import parser as date_parser

from .config import AgeUnit, DateShiftSettings, ThresholdAction
from .crosswalk import CrosswalkState, PersonOffset
from .exceptions import ConfigurationError, create_date_parse_error

logger = logging.getLogger(__name__)

MAX_THRESHOLD_ATTEMPTS = 100

# Separator between the date and time parts of the input, e.g. "T" or " ".
_SEPARATOR_RE = re.compile(r"\d+(.)\d+:")
_MIDNIGHT_RE = re.compile(r"(.)00:00:00$")

# Ages computed against this anchor are obviously wrong, which is the point.
FALLBACK_ANCHOR_EPOCH = datetime(100, 1, 1)
FALLBACK_ANCHOR_SPAN_DAYS = 36525


def parse_temporal(value: Any, field_name: str = "", person_id: Any = None) -> datetime:
    """
    Convert a date, datetime or date(time) string to a datetime.

    Raises:
        DateParseError: If a string does not look like a date or time
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    try:
        return date_parser.parse(str(value))
    except (ValueError, OverflowError) as e:
        raise create_date_parse_error(field_name, value, person_id, e) from e


def _naive(value: datetime) -> datetime:
    return value.replace(tzinfo=None) if value.tzinfo is not None else value


def _truncate_to_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


class DateShiftEngine:
    """
    Shift dates and datetimes by stable person-specific offsets.

    The record methods all take ``(record, key)`` and read the person ID from
    the record's ``person_id_key`` attribute unless *person_id* is given. With
    ``with_original=True`` they return ``(original, new)`` instead of the new
    value alone.

    Args:
        state: Crosswalk state holding offsets and settings
        rng: Random source; defaults to ``random.SystemRandom()``
    """

    def __init__(self, state: CrosswalkState, rng: Optional[random.Random] = None):
        self.state = state
        self.rng = rng or random.SystemRandom()

    @property
    def settings(self) -> DateShiftSettings:
        return self.state.date_shift

    def new_offset(self, person_id: Any) -> PersonOffset:
        """Generate and store a new offset for *person_id*, replacing any old one."""
        window = self.settings.window_days
        offset = self.rng.uniform(0, window) - window / 2
        if abs(offset) < 1:
            offset += -1 if offset < 0 else 1
        person_offset = PersonOffset.from_fractional_days(offset)
        self.state.datetime_map[str(person_id)] = person_offset
        logger.debug(f"Generated new offset for {person_id}: {person_offset.to_dict()}")
        return person_offset

    def remap_date(
        self,
        record: dict[str, Any],
        key: str,
        person_id: Any = None,
        birth_datetime: Any = None,
        with_original: bool = False,
    ) -> Any:
        """Shift ``record[key]`` and return a date with no time component."""
        new = self._do_remap(record, key, person_id, birth_datetime, date_only=True)
        return (record.get(key), new) if with_original else new

    def remap_datetime_always(
        self,
        record: dict[str, Any],
        key: str,
        person_id: Any = None,
        birth_datetime: Any = None,
        with_original: bool = False,
    ) -> Any:
        """Shift ``record[key]`` and return a value with date and time."""
        new = self._do_remap(record, key, person_id, birth_datetime, date_only=False)
        return (record.get(key), new) if with_original else new

    def remap_datetime(
        self,
        record: dict[str, Any],
        key: str,
        person_id: Any = None,
        birth_datetime: Any = None,
        with_original: bool = False,
    ) -> Any:
        """
        Shift ``record[key]``, treating midnight values as dates.

        Data often carries dates dressed up as datetimes with a ``00:00:00``
        time. Those are shifted as dates (keeping the ``00:00:00`` suffix on
        strings), so the time part of the offset cannot be read off them.
        True midnight events therefore move by a slightly different amount
        than other times; use :meth:`remap_datetime_always` if that matters.

        Strings with no ``:`` (``"2014-01-02"``) carry no time of day and are
        shifted as dates too, so they come back as ``YYYY-MM-DD``.
        """
        original = record.get(key)
        new: Any
        if isinstance(original, str) and (match := _MIDNIGHT_RE.search(original)):
            new = self.remap_date(record, key, person_id, birth_datetime)
            if isinstance(new, str) and self.settings.datetime_to_age is None:
                new = f"{new}{match.group(1)}00:00:00"
        elif isinstance(original, str) and ":" not in original:
            new = self.remap_date(record, key, person_id, birth_datetime)
        elif isinstance(original, datetime) and original.time() == time():
            new = self.remap_date(record, key, person_id, birth_datetime)
        elif isinstance(original, date) and not isinstance(original, datetime):
            new = self.remap_date(record, key, person_id, birth_datetime)
        else:
            new = self.remap_datetime_always(record, key, person_id, birth_datetime)
        return (original, new) if with_original else new

    def remap_datetime_to_age(
        self,
        record: dict[str, Any],
        key: str,
        person_id: Any = None,
        birth_datetime: Any = None,
        with_original: bool = False,
    ) -> Any:
        """Return the time elapsed between the person's birth and ``record[key]``.

        Uses the configured age unit, or days when age conversion is off.
        """
        original = record.get(key)
        new = original
        if original is not None and original != "":
            pid = self._resolve_person(record, key, person_id)
            if pid is None:
                new = None
            else:
                value = parse_temporal(original, key, pid)
                unit = self.settings.datetime_to_age or AgeUnit.DAYS
                new = self._to_age(record, key, pid, original, value, False, birth_datetime, unit)
        return (original, new) if with_original else new

    def _resolve_person(self, record: dict[str, Any], key: str, person_id: Any) -> Optional[str]:
        if person_id is None and self.settings.person_id_key:
            person_id = record.get(self.settings.person_id_key)
        if person_id is None or person_id == "":
            logger.warning(
                f"No person ID available to shift {key}; value dropped "
                f"(person_id_key={self.settings.person_id_key!r})"
            )
            return None
        return str(person_id)

    def _do_remap(
        self,
        record: dict[str, Any],
        key: str,
        person_id: Any,
        birth_datetime: Any,
        date_only: bool,
    ) -> Any:
        original = record.get(key)
        if original is None or original == "":
            return original

        pid = self._resolve_person(record, key, person_id)
        if pid is None:
            return None
        value = parse_temporal(original, key, pid)

        if self.settings.datetime_to_age is not None:
            return self._to_age(
                record, key, pid, original, value, date_only, birth_datetime,
                self.settings.datetime_to_age,
            )

        created = pid not in self.state.datetime_map
        offset = self.new_offset(pid) if created else self._offset_for(pid)
        shifted = self._shift(value, offset, date_only)
        logger.debug(f"Date(time) {original} mapped to {shifted} for person {pid}")

        if self.settings.has_thresholds and self.settings.out_of_bounds(shifted):
            if created and self.settings.threshold_action is ThresholdAction.RETRY:
                shifted = self._retry_offset(key, pid, original, value, date_only)
            else:
                self._warn_out_of_bounds(key, pid, original, shifted)

        return self._render(original, shifted, date_only)

    def _offset_for(self, pid: str) -> PersonOffset:
        entry = self.state.datetime_map[pid]
        if not isinstance(entry, PersonOffset):
            raise ConfigurationError(
                f"Person {pid} has a birth anchor but age conversion is off",
                field_name="datetime_to_age",
            )
        return entry

    @staticmethod
    def _shift(value: datetime, offset: PersonOffset, date_only: bool) -> datetime:
        shifted = value + offset.as_timedelta()
        return _truncate_to_day(shifted) if date_only else shifted

    def _retry_offset(
        self, key: str, pid: str, original: Any, value: datetime, date_only: bool
    ) -> datetime:
        """Regenerate a new person's offset until *value* lands within bounds."""
        shifted = value
        for attempt in range(1, MAX_THRESHOLD_ATTEMPTS + 1):
            shifted = self._shift(value, self.new_offset(pid), date_only)
            if not self.settings.out_of_bounds(shifted):
                logger.debug(f"Threshold satisfied for person {pid} after {attempt} retries")
                return shifted
        logger.warning(
            f"Could not satisfy date threshold for {key} of person {pid} after "
            f"{MAX_THRESHOLD_ATTEMPTS} attempts: {original} mapped to {shifted} "
            f"(bounds {self.settings.before_date_threshold} - {self.settings.after_date_threshold})"
        )
        return shifted

    def _warn_out_of_bounds(self, key: str, pid: str, original: Any, shifted: datetime) -> None:
        logger.warning(
            f"Shifted {key} for person {pid} is outside date thresholds: {original} "
            f"mapped to {shifted} (bounds {self.settings.before_date_threshold} - "
            f"{self.settings.after_date_threshold})"
        )

    @staticmethod
    def _render(original: Any, shifted: datetime, date_only: bool) -> Any:
        """Return *shifted* in the same shape as *original*."""
        if isinstance(original, datetime):
            return shifted
        if isinstance(original, date):
            return shifted.date() if date_only else shifted
        if date_only:
            return shifted.date().isoformat()
        text = shifted.isoformat(timespec="seconds")
        match = _SEPARATOR_RE.search(str(original))
        if match:
            text = text.replace("T", match.group(1), 1)
        return text

    def _anchor_for(self, record: dict[str, Any], pid: str, birth_datetime: Any) -> datetime:
        entry = self.state.datetime_map.get(pid)
        if isinstance(entry, datetime):
            return entry
        if entry is not None:
            raise ConfigurationError(
                f"Person {pid} has a date offset but age conversion is on",
                field_name="datetime_to_age",
            )

        birth_key = self.settings.birth_datetime_key
        if birth_datetime is not None and birth_datetime != "":
            anchor = parse_temporal(birth_datetime, "birth_datetime", pid)
        elif birth_key and record.get(birth_key) not in (None, ""):
            anchor = parse_temporal(record[birth_key], birth_key, pid)
        else:
            anchor = FALLBACK_ANCHOR_EPOCH + timedelta(
                days=self.rng.uniform(0, FALLBACK_ANCHOR_SPAN_DAYS)
            )
            logger.warning(
                f"No birth date available for person {pid}; using implausible anchor {anchor}"
            )

        anchor = _naive(anchor)
        self.state.datetime_map[pid] = anchor
        logger.debug(f"Anchored person {pid} at {anchor}")
        return anchor

    def _to_age(
        self,
        record: dict[str, Any],
        key: str,
        pid: str,
        original: Any,
        value: datetime,
        date_only: bool,
        birth_datetime: Any,
        unit: AgeUnit,
    ) -> Any:
        anchor = self._anchor_for(record, pid, birth_datetime)
        if date_only:
            days: float = (value.date() - anchor.date()).days
        else:
            days = (_naive(value) - anchor).total_seconds() / 86400

        if unit is AgeUnit.DAYS and date_only:
            age: Union[int, float] = int(days)
        else:
            age = round(days / unit.days_per_unit, 4)
        logger.debug(f"{key} {original} converted to age {age} {unit.value} for person {pid}")
        return str(age) if isinstance(original, str) else age
