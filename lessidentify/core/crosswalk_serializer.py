"""Serialization logic for CrosswalkState."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Union

from .config import DateShiftSettings, RemapSettings
from .exceptions import ConfigurationError, CrosswalkError, create_crosswalk_error

if TYPE_CHECKING:
    from .crosswalk import CrosswalkState

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("id_map", "id_counters", "datetime_map")


class CrosswalkSerializer:
    """Serializer for CrosswalkState.

    The persisted form is a flat JSON object. ID blocks are deliberately
    left out; only assigned mappings and counters travel.
    """

    @staticmethod
    def to_dict(state: "CrosswalkState") -> dict[str, Any]:
        """Convert state to a JSON-compatible dictionary."""
        from .crosswalk import PersonOffset

        datetime_map: dict[str, Any] = {}
        for person_id, entry in state.datetime_map.items():
            if isinstance(entry, PersonOffset):
                datetime_map[person_id] = entry.to_dict()
            else:
                datetime_map[person_id] = entry.isoformat()

        result = {
            "person_id_key": state.date_shift.person_id_key,
            "id_map": {key: dict(table) for key, table in state.id_map.items()},
            "id_counters": dict(state.id_counters),
            **state.remap.to_dict(),
            "datetime_map": datetime_map,
        }
        date_settings = state.date_shift.to_dict()
        date_settings.pop("person_id_key")
        result.update(date_settings)
        return result

    @staticmethod
    def to_json(state: "CrosswalkState", indent: Union[int, None] = None) -> str:
        return json.dumps(CrosswalkSerializer.to_dict(state), indent=indent, ensure_ascii=False)

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "CrosswalkState":
        """Create state from its dictionary form.

        Raises:
            CrosswalkError: If the dictionary is missing required sections
                or holds malformed entries
        """
        from .crosswalk import CrosswalkState, PersonOffset

        if not isinstance(data, dict):
            raise CrosswalkError("Crosswalk must be a JSON object", stage="validate")
        missing = [k for k in REQUIRED_KEYS if k not in data]
        if missing:
            raise CrosswalkError(
                f"Crosswalk is missing required keys: {missing}", stage="validate"
            )

        per_attribute_blocks = data.get("remap_per_attribute_blocks", False)
        if not isinstance(per_attribute_blocks, bool):
            raise CrosswalkError(
                f"remap_per_attribute_blocks must be true or false, got {per_attribute_blocks!r}",
                stage="validate",
            )
        block_size = data.get("remap_block_size")
        if block_size is None:
            block_size = RemapSettings().block_size

        try:
            remap = RemapSettings(
                base=data.get("remap_base"),
                block_size=block_size,
                per_attribute_blocks=per_attribute_blocks,
            )
            date_shift = DateShiftSettings(
                person_id_key=data.get("person_id_key"),
                birth_datetime_key=data.get("birth_datetime_key"),
                window_days=data.get("datetime_window_days", DateShiftSettings().window_days),
                before_date_threshold=data.get("before_date_threshold"),
                after_date_threshold=data.get("after_date_threshold"),
                threshold_action=data.get("date_threshold_action") or "none",
                datetime_to_age=data.get("datetime_to_age"),
            )

            id_map = {
                str(key): {str(orig): int(sub) for orig, sub in table.items()}
                for key, table in data["id_map"].items()
            }
            id_counters = {str(k): int(v) for k, v in data["id_counters"].items()}

            datetime_map: dict[str, Any] = {}
            for person_id, entry in data["datetime_map"].items():
                if isinstance(entry, dict):
                    datetime_map[str(person_id)] = PersonOffset.from_dict(entry)
                elif isinstance(entry, str):
                    datetime_map[str(person_id)] = datetime.fromisoformat(entry)
                else:
                    raise CrosswalkError(
                        f"Unrecognized datetime_map entry for person {person_id}: {entry!r}",
                        stage="validate",
                    )
        except ConfigurationError as e:
            raise CrosswalkError(f"Crosswalk settings are invalid: {e}", stage="validate") from e
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise CrosswalkError(f"Crosswalk content is malformed: {e}", stage="validate") from e

        CrosswalkSerializer._check_tables(id_map)
        return CrosswalkState(
            remap=remap,
            date_shift=date_shift,
            id_map=id_map,
            id_counters=id_counters,
            datetime_map=datetime_map,
        )

    @staticmethod
    def _check_tables(id_map: dict[str, dict[str, int]]) -> None:
        """Reject tables in which two originals share a substitute."""
        for key, table in id_map.items():
            if len(set(table.values())) != len(table):
                raise CrosswalkError(
                    f"Crosswalk table for {key} reuses substitute values", stage="validate"
                )

    @staticmethod
    def from_json(json_str: str) -> "CrosswalkState":
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise CrosswalkError(f"Invalid JSON format: {e}", stage="parse") from e
        return CrosswalkSerializer.from_dict(data)

    @staticmethod
    def save_to_file(state: "CrosswalkState", file_path: Union[str, Path], indent: int = 2) -> Path:
        """Save state to a JSON file."""
        path = Path(file_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("w", encoding="utf-8") as f:
                f.write(CrosswalkSerializer.to_json(state, indent=indent))
        except OSError as e:
            raise create_crosswalk_error(
                f"Failed to save crosswalk to {file_path}: {e}", str(file_path), "write", e
            ) from e

        logger.info(f"Saved crosswalk to {path}: {state.get_stats()}")
        return path

    @staticmethod
    def load_from_file(file_path: Union[str, Path]) -> "CrosswalkState":
        """Load state from a JSON file."""
        path = Path(file_path)
        try:
            with path.open(encoding="utf-8") as f:
                content = f.read()
        except OSError as e:
            raise create_crosswalk_error(
                f"Failed to read crosswalk from {file_path}: {e}", str(file_path), "read", e
            ) from e

        try:
            state = CrosswalkSerializer.from_json(content)
        except CrosswalkError as e:
            e.add_context("path", str(file_path))
            raise

        logger.info(f"Loaded crosswalk from {path}: {state.get_stats()}")
        return state
