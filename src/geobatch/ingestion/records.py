"""
Record loading and export.

Input files are JSON (a list of objects, or an object with a `records` list) or CSV with a
header row. Each record becomes a `GeoPoint`: the coordinate fields are parsed to floats and
every other field is kept verbatim in `attributes`. Coordinates that are missing or not
numeric become NaN, so the chunk processor counts them as invalid instead of the loader
failing the whole batch.
"""

from __future__ import annotations

import csv
import json
import math
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from geobatch.config.settings import IngestionSettings
from geobatch.core.env import resolve_project_path
from geobatch.domain.models import GeoPoint


def _to_float(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return math.nan
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return math.nan
    try:
        out = float(value)
    except (TypeError, ValueError):
        return math.nan
    return out if math.isfinite(out) else math.nan


def _pick_key(record: Mapping[str, Any], candidates: Sequence[str]) -> str | None:
    for key in candidates:
        if key in record:
            return key
    return None


def point_from_record(
    record: Mapping[str, Any],
    *,
    latitude_field: str = "latitude",
    longitude_field: str = "longitude",
    latitude_aliases: Sequence[str] = (),
    longitude_aliases: Sequence[str] = (),
) -> GeoPoint:
    """Convert one decoded record into an unvalidated `GeoPoint`."""
    lat_key = _pick_key(record, [latitude_field, *latitude_aliases])
    lon_key = _pick_key(record, [longitude_field, *longitude_aliases])

    latitude = _to_float(record[lat_key]) if lat_key is not None else math.nan
    longitude = _to_float(record[lon_key]) if lon_key is not None else math.nan
    attributes = {k: v for k, v in record.items() if k not in (lat_key, lon_key)}
    return GeoPoint(latitude=latitude, longitude=longitude, attributes=attributes)


def points_from_records(
    records: Iterable[Mapping[str, Any]],
    ingestion: IngestionSettings | None = None,
) -> list[GeoPoint]:
    """Convert decoded records using the configured coordinate field names."""
    cfg = ingestion or IngestionSettings()
    return [
        point_from_record(
            r,
            latitude_field=cfg.latitude_field,
            longitude_field=cfg.longitude_field,
            latitude_aliases=cfg.latitude_aliases,
            longitude_aliases=cfg.longitude_aliases,
        )
        for r in records
    ]


def load_records(path: str | Path) -> list[dict[str, Any]]:
    """Read raw records from a `.json` or `.csv` file."""
    resolved = resolve_project_path(path)
    suffix = resolved.suffix.lower()

    if suffix == ".json":
        payload = json.loads(resolved.read_text(encoding="utf-8"))
        if isinstance(payload, dict):
            payload = payload.get("records")
        if not isinstance(payload, list):
            raise ValueError(f"{resolved}: expected a list of records or an object with a 'records' list")
        records = [r for r in payload if isinstance(r, dict)]
        if len(records) != len(payload):
            raise ValueError(f"{resolved}: every record must be a JSON object")
        return records

    if suffix == ".csv":
        with resolved.open(newline="", encoding="utf-8") as fh:
            return [dict(row) for row in csv.DictReader(fh)]

    raise ValueError(f"Unsupported record file type '{resolved.suffix}' (expected .json or .csv)")


def point_to_record(point: GeoPoint) -> dict[str, Any]:
    """Flatten a point back into a record: coordinates, attributes, then computed fields."""
    out: dict[str, Any] = {"latitude": point.latitude, "longitude": point.longitude}
    out.update(point.attributes)
    out["valid"] = point.valid
    out["processed_at"] = point.processed_at.isoformat() if point.processed_at else None
    return out


def write_points(path: str | Path, points: Sequence[GeoPoint]) -> Path:
    """Write points to `.json` or `.csv`; returns the resolved output path."""
    resolved = resolve_project_path(path)
    suffix = resolved.suffix.lower()
    rows = [point_to_record(p) for p in points]
    resolved.parent.mkdir(parents=True, exist_ok=True)

    if suffix == ".json":
        resolved.write_text(json.dumps(rows, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
        return resolved

    if suffix == ".csv":
        fieldnames: list[str] = []
        for row in rows:
            for key in row:
                if key not in fieldnames:
                    fieldnames.append(key)
        with resolved.open("w", newline="", encoding="utf-8") as fh:
            writer = csv.DictWriter(fh, fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(rows)
        return resolved

    raise ValueError(f"Unsupported output file type '{resolved.suffix}' (expected .json or .csv)")
