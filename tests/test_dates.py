"""Tests for person-consistent date shifting."""

import logging
import random
from datetime import date, datetime, timedelta

import pytest
from dateutil import parser as date_parser

from lessidentify.core import (
    AgeUnit,
    ConfigurationError,
    CrosswalkState,
    DateParseError,
    DateShiftEngine,
    DateShiftSettings,
    PersonOffset,
    ThresholdAction,
)
from lessidentify.core.dates import MAX_THRESHOLD_ATTEMPTS


class ScriptedRandom(random.Random):
    """Random source whose ``uniform`` replays a fixed script, then repeats the last value."""

    def __init__(self, values: list[float]):
        super().__init__(0)
        self.values = list(values)

    def uniform(self, a: float, b: float) -> float:
        if len(self.values) > 1:
            return self.values.pop(0)
        return self.values[0]


def make_engine(rng: random.Random, **settings) -> DateShiftEngine:
    settings.setdefault("person_id_key", "person_id")
    state = CrosswalkState(date_shift=DateShiftSettings(**settings))
    return DateShiftEngine(state, rng)


class TestNewOffset:
    """Test offset generation."""

    def test_offset_is_stored_for_person(self, date_engine: DateShiftEngine) -> None:
        offset = date_engine.new_offset(1)
        assert date_engine.state.datetime_map == {"1": offset}

    def test_offset_components_from_fractional_days(self) -> None:
        """Whole days, whole minutes of the fraction, whole seconds of the rest."""
        engine = make_engine(ScriptedRandom([183 + 10.75]))
        assert engine.new_offset(1) == PersonOffset(days=10, minutes=1080, seconds=0)

    def test_negative_offset_components_share_sign(self) -> None:
        engine = make_engine(ScriptedRandom([183 - 12.5]))
        assert engine.new_offset(1) == PersonOffset(days=-12, minutes=-720, seconds=0)

    @pytest.mark.parametrize("draw,days", [(183.0, 1), (183.5, 1), (182.5, -1)])
    def test_small_offsets_pushed_to_at_least_one_day(self, draw: float, days: int) -> None:
        """An offset under a day in magnitude is pushed away from zero."""
        engine = make_engine(ScriptedRandom([draw]))
        assert engine.new_offset(1).days == days

    def test_offsets_stay_within_window(self, rng: random.Random) -> None:
        engine = make_engine(rng, window_days=30)
        for pid in range(200):
            delta = engine.new_offset(pid).as_timedelta()
            assert timedelta(days=1) <= abs(delta) <= timedelta(days=16)


class TestShiftConsistency:
    """Test that a person's dates move together."""

    def test_ninety_three_day_gap_preserved(self, date_engine: DateShiftEngine) -> None:
        """Two dates for one person keep their interval but not their values."""
        records = [
            {"person_id": 1, "test_date": "2014-01-02 04:05:06"},
            {"person_id": 1, "test_date": "2014-04-05 04:05:06"},
        ]
        shifted = [date_engine.remap_datetime_always(r, "test_date") for r in records]

        assert shifted[0] != records[0]["test_date"]
        assert shifted[1] != records[1]["test_date"]
        gap = date_parser.parse(shifted[1]) - date_parser.parse(shifted[0])
        assert gap == timedelta(days=93)

    def test_interval_preserved_across_fields(self, date_engine: DateShiftEngine) -> None:
        record = {
            "person_id": 5,
            "admit_time": "2013-06-01T08:00:00",
            "discharge_time": "2013-06-04T17:30:15",
        }
        admit = date_parser.parse(date_engine.remap_datetime_always(record, "admit_time"))
        discharge = date_parser.parse(date_engine.remap_datetime_always(record, "discharge_time"))
        assert discharge - admit == timedelta(days=3, hours=9, minutes=30, seconds=15)

    def test_different_people_get_independent_offsets(self, date_engine: DateShiftEngine) -> None:
        date_engine.remap_date({"person_id": 1, "d": "2014-01-01"}, "d")
        date_engine.remap_date({"person_id": 2, "d": "2014-01-01"}, "d")
        assert set(date_engine.state.datetime_map) == {"1", "2"}

    def test_explicit_person_id_overrides_record(self, date_engine: DateShiftEngine) -> None:
        date_engine.remap_date({"d": "2014-01-01"}, "d", person_id="abc")
        assert "abc" in date_engine.state.datetime_map


class TestOutputShapes:
    """Test that shifted values keep the shape of their input."""

    def test_remap_date_has_no_time(self, date_engine: DateShiftEngine) -> None:
        record = {"person_id": 1, "d": "2014-01-02T13:45:10"}
        result = date_engine.remap_date(record, "d")
        assert len(result) == 10
        assert date.fromisoformat(result)

    def test_remap_date_on_date_object(self, date_engine: DateShiftEngine) -> None:
        result = date_engine.remap_date({"person_id": 1, "d": date(2014, 1, 2)}, "d")
        assert type(result) is date

    def test_remap_datetime_always_on_date_object(self) -> None:
        """A date object gains a time component carrying the sub-day offset."""
        engine = make_engine(ScriptedRandom([183 + 10.5]))
        result = engine.remap_datetime_always({"person_id": 1, "d": date(2014, 1, 2)}, "d")
        assert isinstance(result, datetime)
        assert result == datetime(2014, 1, 12, 12, 0, 0)

    def test_remap_datetime_on_date_only_string(self) -> None:
        """Date-only text is shifted as a date and does not reveal the time offset."""
        engine = make_engine(ScriptedRandom([183 + 10.5]))
        result = engine.remap_datetime({"person_id": 1, "d": "2014-01-02"}, "d")
        assert result == "2014-01-12"

    def test_remap_date_on_datetime_object(self, date_engine: DateShiftEngine) -> None:
        result = date_engine.remap_date({"person_id": 1, "d": datetime(2014, 1, 2, 13, 45)}, "d")
        assert isinstance(result, datetime)
        assert (result.hour, result.minute, result.second) == (0, 0, 0)

    def test_remap_datetime_always_keeps_separator(self, date_engine: DateShiftEngine) -> None:
        spaced = date_engine.remap_datetime_always({"person_id": 1, "d": "2014-01-02 04:05:06"}, "d")
        tee = date_engine.remap_datetime_always({"person_id": 1, "d": "2014-01-02T04:05:06"}, "d")
        assert spaced[10] == " "
        assert tee[10] == "T"
        assert spaced.replace(" ", "T") == tee

    def test_remap_datetime_always_adds_time_to_dates(self, date_engine: DateShiftEngine) -> None:
        result = date_engine.remap_datetime_always({"person_id": 1, "d": "2014-01-02"}, "d")
        assert len(result) == 19
        assert result[10] == "T"

    def test_remap_datetime_midnight_stays_midnight(self, date_engine: DateShiftEngine) -> None:
        """Midnight inputs are shifted as dates and keep their 00:00:00 suffix."""
        record = {"person_id": 1, "d": "2014-01-02 00:00:00"}
        midnight = date_engine.remap_datetime(record, "d")
        assert midnight.endswith(" 00:00:00")
        assert midnight[:10] == date_engine.remap_date(record, "d")

    def test_remap_datetime_midnight_datetime_object(self, date_engine: DateShiftEngine) -> None:
        result = date_engine.remap_datetime({"person_id": 1, "d": datetime(2014, 1, 2)}, "d")
        assert result.time() == datetime.min.time()

    def test_with_original_returns_pair(self, date_engine: DateShiftEngine) -> None:
        record = {"person_id": 1, "d": "2014-01-02"}
        original, new = date_engine.remap_date(record, "d", with_original=True)
        assert original == "2014-01-02"
        assert new == date_engine.remap_date(record, "d")


class TestEmptyAndInvalid:
    """Test missing values, missing people and unparseable input."""

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_values_pass_through(self, date_engine: DateShiftEngine, value) -> None:
        assert date_engine.remap_date({"person_id": 1, "d": value}, "d") == value
        assert date_engine.state.datetime_map == {}

    def test_missing_person_id_drops_value(self, date_engine: DateShiftEngine, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="lessidentify"):
            assert date_engine.remap_date({"d": "2014-01-02"}, "d") is None
        assert "No person ID" in caplog.text

    def test_unparseable_date_raises(self, date_engine: DateShiftEngine) -> None:
        with pytest.raises(DateParseError, match="Date parsing failure for 1") as exc_info:
            date_engine.remap_date({"person_id": 1, "d": "not a date"}, "d")
        assert exc_info.value.context["field_name"] == "d"

    def test_anchor_in_offset_mode_is_rejected(self, date_engine: DateShiftEngine) -> None:
        date_engine.state.datetime_map["1"] = datetime(2010, 1, 1)
        with pytest.raises(ConfigurationError, match="age conversion is off"):
            date_engine.remap_date({"person_id": 1, "d": "2014-01-02"}, "d")


class TestThresholds:
    """Test before/after date thresholds."""

    BOUNDS = {"before_date_threshold": "2015-12-01", "after_date_threshold": "2016-05-02"}

    def test_retry_moves_first_offset_into_bounds(self) -> None:
        """A new person's offset is regenerated until the value fits."""
        # -183 days lands before the early bound; +100 days fits.
        engine = make_engine(
            ScriptedRandom([0.0, 283.0]), threshold_action="retry", **self.BOUNDS
        )
        result = engine.remap_date({"person_id": 1, "d": "2015-11-15"}, "d")
        assert result == "2016-02-23"
        assert engine.state.datetime_map["1"].days == 100

    def test_retry_with_random_offsets_lands_in_bounds(self, rng: random.Random) -> None:
        engine = make_engine(rng, threshold_action="retry", **self.BOUNDS)
        for pid in range(20):
            result = date.fromisoformat(engine.remap_date({"person_id": pid, "d": "2015-11-15"}, "d"))
            assert date(2015, 12, 1) <= result <= date(2016, 5, 2)

    def test_retry_gives_up_with_single_warning(self, rng: random.Random, caplog) -> None:
        """Unsatisfiable bounds produce one warning after the attempt cap."""
        engine = make_engine(rng, threshold_action="retry", **self.BOUNDS)
        with caplog.at_level(logging.WARNING, logger="lessidentify"):
            result = engine.remap_date({"person_id": 1, "d": "2014-01-02"}, "d")
        messages = [r.getMessage() for r in caplog.records]
        assert len(messages) == 1
        assert f"after {MAX_THRESHOLD_ATTEMPTS} attempts" in messages[0]
        assert result is not None

    def test_retry_degrades_to_warn_for_known_person(self, caplog) -> None:
        """Once a person has an offset it is never changed by retry."""
        engine = make_engine(
            ScriptedRandom([283.0, 0.0]), threshold_action="retry", **self.BOUNDS
        )
        engine.remap_date({"person_id": 1, "d": "2015-11-15"}, "d")
        offset = engine.state.datetime_map["1"]
        with caplog.at_level(logging.WARNING, logger="lessidentify"):
            engine.remap_date({"person_id": 1, "d": "2016-06-01"}, "d")
        assert engine.state.datetime_map["1"] == offset
        assert "outside date thresholds" in caplog.text

    def test_warn_keeps_value_and_warns(self, caplog) -> None:
        engine = make_engine(ScriptedRandom([0.0]), threshold_action="warn", **self.BOUNDS)
        with caplog.at_level(logging.WARNING, logger="lessidentify"):
            result = engine.remap_date({"person_id": 1, "d": "2015-11-15"}, "d")
        assert result == "2015-05-16"
        assert "outside date thresholds" in caplog.text

    def test_no_action_means_no_check(self, caplog) -> None:
        engine = make_engine(ScriptedRandom([0.0]), **self.BOUNDS)
        assert engine.settings.threshold_action is ThresholdAction.NONE
        with caplog.at_level(logging.WARNING, logger="lessidentify"):
            engine.remap_date({"person_id": 1, "d": "2015-11-15"}, "d")
        assert caplog.records == []


class TestAgeConversion:
    """Test replacing dates with elapsed time since birth."""

    def test_days_from_birth_field(self, rng: random.Random) -> None:
        engine = make_engine(rng, birth_datetime_key="birth_date", datetime_to_age="days")
        record = {"person_id": 1, "birth_date": "2010-01-01", "visit_date": "2010-01-31"}
        assert engine.remap_date(record, "visit_date") == "30"
        assert engine.state.datetime_map["1"] == datetime(2010, 1, 1)

    def test_months_and_years(self, rng: random.Random) -> None:
        record = {"person_id": 1, "birth_date": "2010-01-01", "visit_date": "2011-01-01"}
        months = make_engine(rng, birth_datetime_key="birth_date", datetime_to_age=AgeUnit.MONTHS)
        years = make_engine(rng, birth_datetime_key="birth_date", datetime_to_age=AgeUnit.YEARS)
        assert months.remap_date(record, "visit_date") == "11.9908"
        assert years.remap_date(record, "visit_date") == "0.9993"

    def test_datetime_gives_fractional_days(self, rng: random.Random) -> None:
        engine = make_engine(rng, birth_datetime_key="birth_date", datetime_to_age="days")
        record = {"person_id": 1, "birth_date": "2010-01-01", "t": "2010-01-02T12:00:00"}
        assert engine.remap_datetime_always(record, "t") == "1.5"

    def test_structured_input_gives_number(self, rng: random.Random) -> None:
        engine = make_engine(rng, datetime_to_age="days")
        result = engine.remap_date(
            {"person_id": 1, "d": date(2010, 3, 1)}, "d", birth_datetime=date(2010, 1, 1)
        )
        assert result == 59

    def test_anchor_is_fixed_once_set(self, rng: random.Random) -> None:
        engine = make_engine(rng, birth_datetime_key="birth_date", datetime_to_age="days")
        engine.remap_date({"person_id": 1, "birth_date": "2010-01-01", "d": "2010-01-11"}, "d")
        later = {"person_id": 1, "birth_date": "2012-01-01", "d": "2010-01-21"}
        assert engine.remap_date(later, "d") == "20"

    def test_missing_birth_uses_implausible_anchor(self, rng: random.Random, caplog) -> None:
        engine = make_engine(rng, birth_datetime_key="birth_date", datetime_to_age="years")
        with caplog.at_level(logging.WARNING, logger="lessidentify"):
            age = float(engine.remap_date({"person_id": 1, "d": "2014-01-02"}, "d"))
        assert "No birth date" in caplog.text
        assert 1800 < age < 2000

    def test_remap_datetime_to_age_without_age_mode(self, date_engine: DateShiftEngine) -> None:
        record = {"person_id": 1, "t": "2010-01-03T00:00:00"}
        assert date_engine.remap_datetime_to_age(record, "t", birth_datetime="2010-01-01") == "2.0"
