import csv
import json
import math
from datetime import datetime, timezone

import pytest

from geobatch.config.settings import IngestionSettings
from geobatch.domain.models import GeoPoint
from geobatch.ingestion.records import (
    load_records,
    point_from_record,
    point_to_record,
    points_from_records,
    write_points,
)


def test_point_from_record_keeps_other_fields_in_order():
    record = {"id": 7, "latitude": "42.36", "name": "Boston", "longitude": -71.06, "opened": "2020-01-01"}

    point = point_from_record(record)

    assert point.latitude == 42.36
    assert point.longitude == -71.06
    assert point.valid is False
    assert list(point.attributes.items()) == [("id", 7), ("name", "Boston"), ("opened", "2020-01-01")]


def test_point_from_record_uses_aliases_from_settings():
    ingestion = IngestionSettings()

    [point] = points_from_records([{"lat": 1.0, "lng": 2.0, "label": "x"}], ingestion)

    assert (point.latitude, point.longitude) == (1.0, 2.0)
    assert point.attributes == {"label": "x"}


@pytest.mark.parametrize("value", ["", "north", None, True, "inf", [1.0]])
def test_non_numeric_coordinates_become_nan(value):
    point = point_from_record({"latitude": value, "longitude": 0.0})

    assert math.isnan(point.latitude)


def test_missing_coordinate_field_becomes_nan():
    point = point_from_record({"longitude": 3.0})

    assert math.isnan(point.latitude)
    assert point.longitude == 3.0


def test_load_json_list_and_wrapped_records(tmp_path):
    listed = tmp_path / "points.json"
    listed.write_text(json.dumps([{"latitude": 1, "longitude": 2}]), encoding="utf-8")
    wrapped = tmp_path / "wrapped.json"
    wrapped.write_text(json.dumps({"records": [{"latitude": 3, "longitude": 4}]}), encoding="utf-8")

    assert load_records(listed) == [{"latitude": 1, "longitude": 2}]
    assert load_records(wrapped) == [{"latitude": 3, "longitude": 4}]


def test_load_json_rejects_non_object_records(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps([1, 2, 3]), encoding="utf-8")

    with pytest.raises(ValueError, match="JSON object"):
        load_records(path)


def test_load_csv_records(tmp_path):
    path = tmp_path / "points.csv"
    path.write_text("name,latitude,longitude\nA,10.5,20.25\nB,oops,1\n", encoding="utf-8")

    records = load_records(path)
    points = points_from_records(records)

    assert records[0] == {"name": "A", "latitude": "10.5", "longitude": "20.25"}
    assert (points[0].latitude, points[0].longitude) == (10.5, 20.25)
    assert math.isnan(points[1].latitude)


def test_unsupported_extension(tmp_path):
    path = tmp_path / "points.xml"
    path.write_text("<points/>", encoding="utf-8")

    with pytest.raises(ValueError, match="Unsupported"):
        load_records(path)


def test_point_to_record_puts_computed_fields_last():
    stamp = datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)
    point = GeoPoint(latitude=1.0, longitude=2.0, valid=True, attributes={"id": "a"}, processed_at=stamp)

    record = point_to_record(point)

    assert list(record) == ["latitude", "longitude", "id", "valid", "processed_at"]
    assert record["processed_at"] == "2026-01-05T10:00:00+00:00"


def test_write_points_json_and_csv(tmp_path):
    points = [
        GeoPoint(latitude=1.0, longitude=2.0, valid=True, attributes={"id": "a"}),
        GeoPoint(latitude=3.0, longitude=4.0, valid=True, attributes={"id": "b", "extra": 1}),
    ]

    json_path = write_points(tmp_path / "out" / "points.json", points)
    rows = json.loads(json_path.read_text(encoding="utf-8"))
    assert [r["id"] for r in rows] == ["a", "b"]

    csv_path = write_points(tmp_path / "points.csv", points)
    with csv_path.open(newline="", encoding="utf-8") as fh:
        reader = csv.DictReader(fh)
        assert reader.fieldnames == ["latitude", "longitude", "id", "valid", "processed_at", "extra"]
        assert [row["id"] for row in reader] == ["a", "b"]
