"""Shared fixtures for lessidentify tests."""

import random
from pathlib import Path

import pytest

from lessidentify import RecordScrubber, RecordScrubberBuilder
from lessidentify.core import (
    CrosswalkState,
    DateShiftEngine,
    DateShiftSettings,
    IdentifierRemapper,
    RemapSettings,
)


@pytest.fixture
def rng() -> random.Random:
    """Seeded random source so draws are reproducible."""
    return random.Random(20140301)


@pytest.fixture
def state() -> CrosswalkState:
    """Empty crosswalk keyed on person_id."""
    return CrosswalkState(
        remap=RemapSettings(),
        date_shift=DateShiftSettings(person_id_key="person_id"),
    )


@pytest.fixture
def remapper(state: CrosswalkState, rng: random.Random) -> IdentifierRemapper:
    return IdentifierRemapper(state, rng)


@pytest.fixture
def date_engine(state: CrosswalkState, rng: random.Random) -> DateShiftEngine:
    return DateShiftEngine(state, rng)


@pytest.fixture
def pedsnet_scrubber(rng: random.Random) -> RecordScrubber:
    """Scrubber with the PEDSnet preset."""
    return RecordScrubberBuilder().with_preset("pedsnet").with_random(rng).build()


@pytest.fixture
def pcornet_scrubber(rng: random.Random) -> RecordScrubber:
    """Scrubber with the PCORnet preset."""
    return RecordScrubberBuilder().with_preset("pcornet").with_random(rng).build()


@pytest.fixture
def crosswalk_path(tmp_path: Path) -> Path:
    return tmp_path / "crosswalk.json"


@pytest.fixture
def visit_record() -> dict:
    """A PEDSnet-shaped visit row."""
    return {
        "visit_occurrence_id": 9001,
        "person_id": 42,
        "visit_start_date": "2014-01-02",
        "visit_start_time": "2014-01-02T13:45:10",
        "visit_concept_id": 9202,
        "visit_source_value": "clinic 4B",
        "site": "CHOP",
        "provider_id": 77,
        "notes": "kept as-is",
    }
