"""
Nearest-neighbor search over a reference set.

`find_neighbors` is the baseline: a brute-force cross product of queries and references.
`find_neighbors_indexed` answers the same question through a `SpatialGrid` and returns the
same neighbors in the same order, provided the grid holds the references in reference order.
"""

from __future__ import annotations

import logging
from typing import Sequence

from geobatch.core.geo import distance_between
from geobatch.core.spatial_index import SpatialGrid
from geobatch.domain.models import GeoPoint, Neighbor, NeighborResult

logger = logging.getLogger(__name__)


def _check_max_neighbors(max_neighbors: int) -> None:
    if int(max_neighbors) < 0:
        raise ValueError(f"max_neighbors must be >= 0, got {max_neighbors}")


def _to_result(query: GeoPoint, ranked: list[tuple[float, int, GeoPoint]], max_neighbors: int) -> NeighborResult:
    # Sort key (distance, reference ordinal) keeps equal distances in reference order.
    ranked.sort(key=lambda t: (t[0], t[1]))
    neighbors = [Neighbor(reference=ref, distance_km=d) for d, _, ref in ranked[: int(max_neighbors)]]
    return NeighborResult(query=query, neighbors=neighbors, count=len(neighbors))


def find_neighbors(
    references: Sequence[GeoPoint],
    queries: Sequence[GeoPoint],
    max_distance_km: float = 1000.0,
    max_neighbors: int = 10,
) -> list[NeighborResult]:
    """Rank references by distance for each query; keep those within `max_distance_km`.

    Returns one `NeighborResult` per query, in query order, including queries with no
    neighbors. Cost is O(len(references) * len(queries)).
    """
    _check_max_neighbors(max_neighbors)
    limit = float(max_distance_km)

    results: list[NeighborResult] = []
    for query in queries:
        ranked: list[tuple[float, int, GeoPoint]] = []
        for ordinal, ref in enumerate(references):
            d = distance_between(query, ref)
            if d <= limit:
                ranked.append((d, ordinal, ref))
        results.append(_to_result(query, ranked, max_neighbors))

    logger.debug(
        "Brute-force neighbor search: %d queries x %d references", len(queries), len(references)
    )
    return results


def find_neighbors_indexed(
    grid: SpatialGrid,
    queries: Sequence[GeoPoint],
    max_distance_km: float = 1000.0,
    max_neighbors: int = 10,
) -> list[NeighborResult]:
    """Grid-accelerated `find_neighbors` over the points inserted into `grid`.

    Ties break by insertion order, which matches the brute-force baseline when the
    references were inserted in reference order.
    """
    _check_max_neighbors(max_neighbors)
    results: list[NeighborResult] = []
    for query in queries:
        hits = grid.query_within(query.latitude, query.longitude, float(max_distance_km))
        ranked = [(d, ordinal, ref) for ordinal, ref, d in hits]
        results.append(_to_result(query, ranked, max_neighbors))

    logger.debug("Grid neighbor search: %d queries over %d indexed points", len(queries), len(grid))
    return results
