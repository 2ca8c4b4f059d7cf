"""
Domain models (Pydantic).

These types are the contract between the core engine and its adapters:
- ingested records (`GeoPoint`)
- distance output (`DistanceResult`)
- nearest-neighbor output (`NeighborResult`)
- chunked processing output (`ChunkResult`, `ProcessingResult`)

`GeoPoint` deliberately accepts out-of-range and NaN coordinates: validity is decided by
the chunk processor, and the `valid` flag records the outcome.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class GeoPoint(BaseModel):
    """A point record: coordinates in decimal degrees plus passthrough attributes."""

    latitude: float
    longitude: float
    valid: bool = False
    attributes: dict[str, Any] = Field(default_factory=dict)
    processed_at: datetime | None = None


class DistanceResult(BaseModel):
    """Great-circle distance between two points of a batch at position `index`.

    `distance_km` is rounded for display; rank on `exact_distance_km`. Pairs that include
    an invalid (NaN) coordinate yield NaN rather than failing the whole batch.
    """

    origin: GeoPoint
    target: GeoPoint
    distance_km: float
    exact_distance_km: float
    index: int = Field(..., ge=0)


class Neighbor(BaseModel):
    reference: GeoPoint
    distance_km: float = Field(..., ge=0)


class NeighborResult(BaseModel):
    """Neighbors of one query point, nearest first."""

    query: GeoPoint
    neighbors: list[Neighbor] = Field(default_factory=list)
    count: int = Field(0, ge=0)


class ChunkResult(BaseModel):
    """Outcome of processing one chunk of a batch."""

    processed_items: list[GeoPoint] = Field(default_factory=list)
    error_count: int = Field(0, ge=0)
    chunk_index: int = Field(..., ge=0)


class ProcessingResult(BaseModel):
    """Merged outcome of a processing run.

    `items` follows input order for sequential runs and chunk completion order for
    parallel runs. `chunks` is always sorted by chunk index.
    """

    items: list[GeoPoint] = Field(default_factory=list)
    error_count: int = Field(0, ge=0)
    chunks: list[ChunkResult] = Field(default_factory=list)

    @property
    def processed_count(self) -> int:
        return len(self.items)

    @property
    def total(self) -> int:
        return self.processed_count + self.error_count
