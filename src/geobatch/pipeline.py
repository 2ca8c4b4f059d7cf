from __future__ import annotations

# Orchestration for a GeoBatch run. It wires together:
# - ingestion (raw records -> GeoPoints)
# - processing (validation + annotation, sequential or parallel)
# - indexing (SpatialGrid) and nearest-neighbor search
#
# The core modules stay free of configuration; this file maps Settings onto their
# plain numeric parameters.

import logging
from functools import partial
from typing import Any, Iterable, Mapping, Sequence

from geobatch.config.settings import Settings, get_settings
from geobatch.core.geo import is_valid_coordinate
from geobatch.core.spatial_index import SpatialGrid
from geobatch.core.time import clock_for
from geobatch.domain.models import GeoPoint, NeighborResult, ProcessingResult
from geobatch.ingestion.records import points_from_records
from geobatch.processing.chunks import process_chunk, process_sequential
from geobatch.processing.parallel import process_parallel
from geobatch.search.neighbors import find_neighbors, find_neighbors_indexed

logger = logging.getLogger(__name__)


def process_points(
    points: Sequence[GeoPoint],
    settings: Settings | None = None,
    *,
    parallel: bool | None = None,
) -> ProcessingResult:
    """Validate and annotate points.

    `parallel=None` picks parallel mode once the batch reaches
    `processing.parallel_threshold`. Parallel mode does not keep input order.
    """
    settings = settings or get_settings()
    cfg = settings.processing
    clock = clock_for(settings.app.timezone)

    use_parallel = parallel if parallel is not None else len(points) >= cfg.parallel_threshold
    if use_parallel:
        return process_parallel(
            points,
            cfg.chunk_size,
            cfg.worker_count,
            processor=partial(process_chunk, clock=clock),
        )
    return process_sequential(points, cfg.chunk_size, clock=clock)


def process_records(
    records: Iterable[Mapping[str, Any]],
    settings: Settings | None = None,
    *,
    parallel: bool | None = None,
) -> ProcessingResult:
    """Convert raw records to points and process them."""
    settings = settings or get_settings()
    points = points_from_records(records, settings.ingestion)
    return process_points(points, settings, parallel=parallel)


def build_grid(points: Sequence[GeoPoint], settings: Settings | None = None) -> SpatialGrid:
    """Index the valid points, in order, into a grid fitted to their extent."""
    settings = settings or get_settings()
    accepted = [p for p in points if is_valid_coordinate(p.latitude, p.longitude)]
    skipped = len(points) - len(accepted)
    if skipped:
        logger.warning("Skipping %d points with invalid coordinates while building the grid", skipped)
    return SpatialGrid.from_points(
        accepted,
        settings.grid.grid_size,
        padding_deg=settings.grid.padding_deg,
    )


def nearest_neighbors(
    references: Sequence[GeoPoint],
    queries: Sequence[GeoPoint],
    settings: Settings | None = None,
) -> list[NeighborResult]:
    """Neighbor search with limits from settings; uses the grid when `search.use_grid`.

    The grid path only indexes references with valid coordinates. For processed
    (validated) references both paths return identical results.
    """
    settings = settings or get_settings()
    cfg = settings.search
    if not cfg.use_grid:
        return find_neighbors(references, queries, cfg.max_distance_km, cfg.max_neighbors)

    indexable = [p for p in references if is_valid_coordinate(p.latitude, p.longitude)]
    if not indexable:
        return find_neighbors([], queries, cfg.max_distance_km, cfg.max_neighbors)
    grid = build_grid(indexable, settings)
    return find_neighbors_indexed(grid, queries, cfg.max_distance_km, cfg.max_neighbors)


def run_summary(result: ProcessingResult) -> dict[str, int]:
    """Aggregate counters for logging/metrics adapters."""
    return {
        "processed_count": result.processed_count,
        "error_count": result.error_count,
        "chunk_count": len(result.chunks),
    }
