"""
Reference Index

In-memory lookup tables for the game's track, vehicle and vehicle-class
catalogs. Race rows only carry the game's hashed identifiers; this module turns
them into display names.

Catalog files live in one directory and share the game API's envelope:

    {"result": "ok", "response": {"list": [{"id": ..., "name": ...}, ...]}}

Vehicle classes are keyed by ``value`` and named by ``translated_name``.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

TRACKS_FILE = "tracks.json"
VEHICLES_FILE = "vehicles.json"
VEHICLE_CLASSES_FILE = "vehicle_classes.json"


def to_signed32(value: Any) -> int | None:
    """Normalise an identifier to a signed 32-bit integer.

    The catalogs store hashes as signed ints, but the same hash can arrive
    rendered as an unsigned value or a numeric string.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    number &= 0xFFFFFFFF
    return number - 0x100000000 if number >= 0x80000000 else number


@dataclass(frozen=True)
class _Tables:
    tracks: dict[int, dict] = field(default_factory=dict)
    vehicles: dict[int, dict] = field(default_factory=dict)
    vehicle_classes: dict[int, dict] = field(default_factory=dict)


class ReferenceIndex:
    """Track / vehicle / vehicle-class lookups keyed by signed 32-bit ids.

    Lookups never raise: a miss yields ``"Unknown <Kind> (<id>)"``.
    """

    def __init__(self, data_dir: str | Path, autoload: bool = True):
        self.data_dir = Path(data_dir)
        self._tables = _Tables()
        if autoload:
            self.reload()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def reload(self) -> None:
        """Rebuild all three tables and swap them in together.

        A catalog that fails to load keeps its previous table.
        """
        logger.info(f"Loading reference data from {self.data_dir}")
        current = self._tables
        tracks = self._load(TRACKS_FILE, key="id", name="name")
        vehicles = self._load(VEHICLES_FILE, key="id", name="name")
        classes = self._load(
            VEHICLE_CLASSES_FILE, key="value", name="translated_name"
        )

        self._tables = _Tables(
            tracks=current.tracks if tracks is None else tracks,
            vehicles=current.vehicles if vehicles is None else vehicles,
            vehicle_classes=current.vehicle_classes if classes is None else classes,
        )
        counts = self.counts()
        logger.info(
            f"Loaded reference data: {counts['tracks']} tracks, "
            f"{counts['vehicles']} vehicles, {counts['vehicle_classes']} vehicle classes"
        )

    def _load(self, filename: str, key: str, name: str) -> dict[int, dict] | None:
        path = self.data_dir / filename
        try:
            with path.open(encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading {filename}: {e}")
            return None

        if (
            not isinstance(data, dict)
            or data.get("result") != "ok"
            or not isinstance(data.get("response"), dict)
            or not isinstance(data["response"].get("list") or [], list)
        ):
            logger.error(f"Unexpected envelope in {filename}")
            return None

        table: dict[int, dict] = {}
        skipped = 0
        for record in data["response"].get("list") or []:
            if not isinstance(record, dict):
                skipped += 1
                continue
            record_id = to_signed32(record.get(key, record.get("id")))
            display = record.get(name) or record.get("name")
            if record_id is None or not isinstance(display, str) or not display.strip():
                skipped += 1
                continue
            table[record_id] = {**record, "display_name": display}

        if skipped:
            logger.warning(f"Skipped {skipped} unusable record(s) in {filename}")
        return table

    def counts(self) -> dict[str, int]:
        tables = self._tables
        return {
            "tracks": len(tables.tracks),
            "vehicles": len(tables.vehicles),
            "vehicle_classes": len(tables.vehicle_classes),
        }

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def track(self, track_id: Any) -> dict | None:
        return self._tables.tracks.get(to_signed32(track_id))

    def vehicle(self, vehicle_id: Any) -> dict | None:
        return self._tables.vehicles.get(to_signed32(vehicle_id))

    def vehicle_class(self, class_id: Any) -> dict | None:
        return self._tables.vehicle_classes.get(to_signed32(class_id))

    def track_name(self, track_id: Any) -> str:
        return _name_or_placeholder(self.track(track_id), "Track", track_id)

    def vehicle_name(self, vehicle_id: Any) -> str:
        return _name_or_placeholder(self.vehicle(vehicle_id), "Vehicle", vehicle_id)

    def vehicle_class_name(self, class_id: Any) -> str:
        return _name_or_placeholder(self.vehicle_class(class_id), "Class", class_id)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search_tracks(self, query: str) -> list[dict]:
        """Case-insensitive substring search over track names."""
        return _search(self._tables.tracks, query)

    def search_vehicles(self, query: str) -> list[dict]:
        """Case-insensitive substring search over vehicle names."""
        return _search(self._tables.vehicles, query)


def _search(table: dict[int, dict], query: str) -> list[dict]:
    needle = (query or "").lower()
    return [
        record
        for record in table.values()
        if needle in (record.get("display_name") or "").lower()
    ]


def _name_or_placeholder(record: dict | None, kind: str, raw_id: Any) -> str:
    if record and record.get("display_name"):
        return record["display_name"]
    return f"Unknown {kind} ({raw_id})"
