"""
Uniform spatial grid over a lat/lon bounding box.

The grid partitions the box into `grid_size x grid_size` equal cells and buckets every
inserted point into exactly one of them. Points outside the box are clamped into the nearest
edge cell, so nothing inserted is ever dropped. The grid is rebuilt per run; it never resizes.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Iterator

from geobatch.core.errors import InvalidBoundingBoxError, InvalidGridSizeError
from geobatch.core.geo import EARTH_RADIUS_KM, haversine_km, is_valid_coordinate
from geobatch.domain.models import GeoPoint

CellKey = tuple[int, int]

# Extent given to an axis when every point shares the same coordinate.
_DEGENERATE_SPAN_DEG = 1e-3


@dataclass(frozen=True)
class BoundingBox:
    """A non-wrapping lat/lon rectangle in decimal degrees."""

    north: float
    south: float
    east: float
    west: float

    def __post_init__(self) -> None:
        edges = (self.north, self.south, self.east, self.west)
        if not all(math.isfinite(float(e)) for e in edges):
            raise InvalidBoundingBoxError(f"bounding box edges must be finite, got {edges}")
        if self.north <= self.south:
            raise InvalidBoundingBoxError(
                f"north ({self.north}) must be greater than south ({self.south})"
            )
        if self.east <= self.west:
            raise InvalidBoundingBoxError(
                f"east ({self.east}) must be greater than west ({self.west}); dateline wraparound is not supported"
            )


def _axis_index(value: float, origin: float, step: float, n: int) -> int:
    offset = (float(value) - origin) / step
    if math.isnan(offset):
        return 0
    if math.isinf(offset):
        return 0 if offset < 0 else n - 1
    return min(n - 1, max(0, int(math.floor(offset))))


class SpatialGrid:
    def __init__(self, bounding_box: BoundingBox, grid_size: int = 10):
        if isinstance(grid_size, float) and not grid_size.is_integer():
            raise InvalidGridSizeError(f"grid_size must be a whole number, got {grid_size}")
        if int(grid_size) < 1:
            raise InvalidGridSizeError(f"grid_size must be >= 1, got {grid_size}")
        self.bounding_box = bounding_box
        self.grid_size = int(grid_size)
        self.cell_width = (bounding_box.east - bounding_box.west) / self.grid_size
        self.cell_height = (bounding_box.north - bounding_box.south) / self.grid_size

        n = self.grid_size
        self._cells: dict[CellKey, list[GeoPoint]] = {(x, y): [] for x in range(n) for y in range(n)}
        # Insertion ordinals, parallel to `_cells`; used to break distance ties by insertion order.
        self._ordinals: dict[CellKey, list[int]] = {key: [] for key in self._cells}
        self._count = 0

    @classmethod
    def from_points(
        cls,
        points: Iterable[GeoPoint],
        grid_size: int = 10,
        *,
        padding_deg: float = 0.0,
    ) -> "SpatialGrid":
        """Build a grid sized to the extent of `points` and insert them in order."""
        pts = list(points)
        lats = [p.latitude for p in pts if math.isfinite(p.latitude)]
        lons = [p.longitude for p in pts if math.isfinite(p.longitude)]
        if not lats or not lons:
            raise InvalidBoundingBoxError("cannot derive a bounding box without finite coordinates")

        pad = max(0.0, float(padding_deg))
        south, north = min(lats) - pad, max(lats) + pad
        west, east = min(lons) - pad, max(lons) + pad
        if north <= south:
            south, north = south - _DEGENERATE_SPAN_DEG, north + _DEGENERATE_SPAN_DEG
        if east <= west:
            west, east = west - _DEGENERATE_SPAN_DEG, east + _DEGENERATE_SPAN_DEG

        grid = cls(BoundingBox(north=north, south=south, east=east, west=west), grid_size)
        grid.insert_many(pts)
        return grid

    @property
    def cells(self) -> dict[CellKey, list[GeoPoint]]:
        """Raw `(cell_x, cell_y) -> points` mapping, for callers that enumerate cells."""
        return self._cells

    def __len__(self) -> int:
        return self._count

    def cell_for(self, latitude: float, longitude: float) -> CellKey:
        box = self.bounding_box
        return (
            _axis_index(longitude, box.west, self.cell_width, self.grid_size),
            _axis_index(latitude, box.south, self.cell_height, self.grid_size),
        )

    def insert(self, point: GeoPoint) -> CellKey:
        """Append `point` to its cell and return the cell key. Coordinates are not re-validated."""
        key = self.cell_for(point.latitude, point.longitude)
        self._cells[key].append(point)
        self._ordinals[key].append(self._count)
        self._count += 1
        return key

    def insert_many(self, points: Iterable[GeoPoint]) -> None:
        for p in points:
            self.insert(p)

    def cell(self, cell_x: int, cell_y: int) -> list[GeoPoint]:
        """Points in one cell; empty for keys outside the grid."""
        return self._cells.get((cell_x, cell_y), [])

    def neighborhood(self, cell_x: int, cell_y: int) -> list[CellKey]:
        """The cell and its (up to 8) in-range neighbors, row by row."""
        out: list[CellKey] = []
        for dy in (-1, 0, 1):
            for dx in (-1, 0, 1):
                key = (cell_x + dx, cell_y + dy)
                if key in self._cells:
                    out.append(key)
        return out

    def iter_points(self) -> Iterator[GeoPoint]:
        for bucket in self._cells.values():
            yield from bucket

    def _cell_range(self, latitude: float, longitude: float, radius_km: float) -> tuple[int, int, int, int]:
        n = self.grid_size
        if not is_valid_coordinate(latitude, longitude):
            return 0, n - 1, 0, n - 1

        angular = radius_km / EARTH_RADIUS_KM
        dlat = math.degrees(angular)
        lat_min, lat_max = latitude - dlat, latitude + dlat

        # Longitude span of a spherical cap; falls back to the full width near the poles
        # and when the cap crosses the antimeridian.
        full_width = angular >= math.pi / 2 or lat_max >= 90 or lat_min <= -90
        lon_min = lon_max = longitude
        if not full_width:
            dlon = math.degrees(math.asin(min(1.0, math.sin(angular) / math.cos(math.radians(latitude)))))
            lon_min, lon_max = longitude - dlon, longitude + dlon
            full_width = lon_min < -180 or lon_max > 180

        y0 = self.cell_for(lat_min, longitude)[1]
        y1 = self.cell_for(lat_max, longitude)[1]
        if full_width:
            x0, x1 = 0, n - 1
        else:
            x0 = self.cell_for(latitude, lon_min)[0]
            x1 = self.cell_for(latitude, lon_max)[0]
        # One extra ring absorbs rounding at cell borders.
        return max(0, x0 - 1), min(n - 1, x1 + 1), max(0, y0 - 1), min(n - 1, y1 + 1)

    def query_within(self, latitude: float, longitude: float, radius_km: float) -> list[tuple[int, GeoPoint, float]]:
        """Inserted points within `radius_km` of a location.

        Returns `(insertion_ordinal, point, distance_km)` tuples in no particular order.
        Only cells that can hold a point within the radius are scanned.
        """
        r = float(radius_km)
        if math.isnan(r) or r < 0:
            return []
        if not (math.isfinite(latitude) and math.isfinite(longitude)):
            return []

        x0, x1, y0, y1 = self._cell_range(latitude, longitude, r)
        out: list[tuple[int, GeoPoint, float]] = []
        for cx in range(x0, x1 + 1):
            for cy in range(y0, y1 + 1):
                bucket = self._cells[(cx, cy)]
                if not bucket:
                    continue
                for ordinal, p in zip(self._ordinals[(cx, cy)], bucket):
                    d = haversine_km(latitude, longitude, p.latitude, p.longitude)
                    if d <= r:
                        out.append((ordinal, p, d))
        return out
