"""Property-based tests for lessidentify using Hypothesis.

These tests generate random inputs to check properties that should hold for
any values and any person offsets.
"""

import random
import re
from datetime import date, datetime, timedelta
from pathlib import Path
from tempfile import TemporaryDirectory

from hypothesis import given, settings
from hypothesis import strategies as st

from lessidentify import RecordScrubber, RecordScrubberBuilder
from lessidentify.core import (
    CrosswalkState,
    DateShiftEngine,
    DateShiftSettings,
    IdentifierRemapper,
    RemapSettings,
)

identifier_values = st.one_of(st.integers(min_value=0, max_value=10**9), st.text(min_size=1, max_size=12))
attribute_keys = st.sampled_from(["person_id", "visit_id", "provider_id"])
naive_datetimes = st.datetimes(min_value=datetime(1950, 1, 1), max_value=datetime(2050, 1, 1)).map(
    lambda d: d.replace(microsecond=0)
)


class TestRemapProperties:
    """Properties of identifier remapping."""

    @given(
        pairs=st.lists(st.tuples(attribute_keys, identifier_values), min_size=1, max_size=60),
        block_size=st.integers(min_value=1, max_value=8),
        per_attribute=st.booleans(),
        seed=st.integers(min_value=0, max_value=2**32),
    )
    @settings(max_examples=75)
    def test_substitutes_stable_and_distinct(
        self, pairs: list, block_size: int, per_attribute: bool, seed: int
    ) -> None:
        """Repeated values reuse their substitute; distinct values never share one."""
        state = CrosswalkState(
            remap=RemapSettings(block_size=block_size, per_attribute_blocks=per_attribute)
        )
        remapper = IdentifierRemapper(state, random.Random(seed))
        issued: dict[tuple[str, str], int] = {}
        for key, value in pairs:
            substitute = remapper.remap_id(key, value)
            assert str(substitute) != str(value)
            issued.setdefault((key, str(value)), substitute)
            assert issued[(key, str(value))] == substitute

        for key in {k for k, _ in issued}:
            values = [s for (k, _), s in issued.items() if k == key]
            assert len(values) == len(set(values))
        if not per_attribute:
            assert len(set(issued.values())) == len(issued)

    @given(value=st.text(min_size=1, max_size=20), key=st.from_regex(r"[a-z][a-z_]{0,10}", fullmatch=True))
    def test_label_shape(self, value: str, key: str) -> None:
        remapper = IdentifierRemapper(CrosswalkState(), random.Random(0))
        assert re.fullmatch(rf"{re.escape(key)}_[0-9]+", remapper.remap_label(key, value))


class TestDateShiftProperties:
    """Properties of person-consistent date shifting."""

    @given(
        first=naive_datetimes,
        second=naive_datetimes,
        seed=st.integers(min_value=0, max_value=2**32),
        window=st.floats(min_value=0, max_value=1000, allow_nan=False),
    )
    @settings(max_examples=100)
    def test_intervals_preserved(
        self, first: datetime, second: datetime, seed: int, window: float
    ) -> None:
        engine = DateShiftEngine(
            CrosswalkState(date_shift=DateShiftSettings(person_id_key="pid", window_days=window)),
            random.Random(seed),
        )
        shifted_first = engine.remap_datetime_always({"pid": 1, "d": first}, "d")
        shifted_second = engine.remap_datetime_always({"pid": 1, "d": second}, "d")
        assert shifted_second - shifted_first == second - first
        assert abs(shifted_first - first) >= timedelta(days=1)

    @given(day=naive_datetimes, seed=st.integers(min_value=0, max_value=2**32))
    def test_remap_date_has_no_time(self, day: datetime, seed: int) -> None:
        engine = DateShiftEngine(
            CrosswalkState(date_shift=DateShiftSettings(person_id_key="pid")), random.Random(seed)
        )
        result = engine.remap_date({"pid": 1, "d": day.isoformat(sep=" ")}, "d")
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}", result)


class TestCrosswalkProperties:
    """Properties of crosswalk persistence."""

    @given(
        records=st.lists(
            st.fixed_dictionaries(
                {
                    "person_id": st.integers(min_value=1, max_value=20),
                    "visit_occurrence_id": st.integers(min_value=1, max_value=10**6),
                    "visit_start_date": st.dates(min_value=date(2000, 1, 1), max_value=date(2030, 1, 1)).map(str),
                    "site": st.sampled_from(["CHOP", "CCHMC", "Nationwide"]),
                }
            ),
            min_size=1,
            max_size=10,
        ),
        seed=st.integers(min_value=0, max_value=2**32),
    )
    @settings(max_examples=30, deadline=None)
    def test_reload_reproduces_output(self, records: list, seed: int) -> None:
        scrubber = RecordScrubberBuilder().with_preset("pedsnet").with_random(random.Random(seed)).build()
        before = [scrubber.scrub(r) for r in records]
        with TemporaryDirectory() as tmp:
            path = Path(tmp) / "crosswalk.json"
            scrubber.save_crosswalk(path)
            reloaded: RecordScrubber = RecordScrubberBuilder().with_preset("pedsnet").build()
            reloaded.load_crosswalk(path)
        assert [reloaded.scrub(r) for r in records] == before
