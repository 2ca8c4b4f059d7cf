import math
from datetime import datetime, timezone

import pytest

from geobatch.domain.models import GeoPoint
from geobatch.processing.chunks import process_chunk, process_sequential, split_chunks

FIXED_TIME = datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)


def _clock() -> datetime:
    return FIXED_TIME


def test_one_valid_one_invalid():
    items = [
        GeoPoint(latitude=10.0, longitude=20.0, attributes={"id": "ok"}),
        GeoPoint(latitude=120.0, longitude=20.0, attributes={"id": "bad"}),
    ]

    result = process_chunk(items, 0, clock=_clock)

    assert len(result.processed_items) == 1
    assert result.error_count == 1
    assert result.chunk_index == 0


def test_valid_items_are_annotated_copies_with_attributes_preserved():
    original = GeoPoint(latitude=1.5, longitude=2.5, attributes={"name": "Depot", "rank": 3, "tags": ["a"]})

    result = process_chunk([original], 4, clock=_clock)

    out = result.processed_items[0]
    assert out.valid is True
    assert out.processed_at == FIXED_TIME
    assert out.attributes == {"name": "Depot", "rank": 3, "tags": ["a"]}
    assert list(out.attributes) == ["name", "rank", "tags"]
    # The input record is left untouched.
    assert original.valid is False
    assert original.processed_at is None


def test_nan_and_malformed_items_are_counted_not_raised():
    items = [
        GeoPoint(latitude=math.nan, longitude=0.0),
        None,
        "not a point",
        GeoPoint(latitude=0.0, longitude=0.0),
    ]

    result = process_chunk(items, 2, clock=_clock)

    assert result.error_count == 3
    assert len(result.processed_items) == 1


def test_failing_clock_counts_items_as_errors():
    def broken_clock() -> datetime:
        raise RuntimeError("clock unavailable")

    items = [GeoPoint(latitude=0.0, longitude=0.0), GeoPoint(latitude=1.0, longitude=1.0)]
    result = process_chunk(items, 0, clock=broken_clock)

    assert result.error_count == 2
    assert result.processed_items == []


def test_split_chunks_contiguous_with_short_tail():
    data = [GeoPoint(latitude=float(i), longitude=0.0) for i in range(7)]

    chunks = split_chunks(data, 3)

    assert [len(c) for c in chunks] == [3, 3, 1]
    assert [p.latitude for c in chunks for p in c] == [float(i) for i in range(7)]
    assert split_chunks([], 3) == []
    with pytest.raises(ValueError):
        split_chunks(data, 0)


def test_sequential_processing_keeps_input_order():
    data = [GeoPoint(latitude=float(i % 100), longitude=0.0, attributes={"i": i}) for i in range(25)]
    data[7] = GeoPoint(latitude=-100.0, longitude=0.0, attributes={"i": 7})

    result = process_sequential(data, chunk_size=4, clock=_clock)

    assert [p.attributes["i"] for p in result.items] == [i for i in range(25) if i != 7]
    assert result.error_count == 1
    assert [c.chunk_index for c in result.chunks] == list(range(7))
    assert result.total == 25
