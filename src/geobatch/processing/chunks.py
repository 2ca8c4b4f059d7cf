"""
Chunked record processing.

A chunk is a contiguous slice of a batch. Each chunk is validated and annotated on its own
and reports its own error count, so chunks can run in any order (or in parallel) and still
add up to exact totals.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Sequence

from geobatch.core.geo import is_valid_coordinate
from geobatch.core.time import now
from geobatch.domain.models import ChunkResult, GeoPoint, ProcessingResult

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def split_chunks(data: Sequence[GeoPoint], chunk_size: int) -> list[list[GeoPoint]]:
    """Split `data` into contiguous, non-overlapping chunks; the last may be shorter."""
    size = int(chunk_size)
    if size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    return [list(data[i : i + size]) for i in range(0, len(data), size)]


def annotate_point(point: GeoPoint, processed_at: datetime) -> GeoPoint:
    return point.model_copy(update={"valid": True, "processed_at": processed_at})


def process_chunk(items: Sequence[GeoPoint], chunk_index: int, *, clock: Clock | None = None) -> ChunkResult:
    """Validate and annotate one chunk.

    Invalid coordinates and items that fail annotation are dropped and counted; neither
    aborts the chunk.
    """
    clock = clock or now
    processed: list[GeoPoint] = []
    errors = 0

    for position, item in enumerate(items):
        try:
            if not is_valid_coordinate(item.latitude, item.longitude):
                errors += 1
                continue
            processed.append(annotate_point(item, clock()))
        except Exception as exc:
            errors += 1
            logger.debug("Chunk %d item %d failed annotation: %s", chunk_index, position, exc)

    return ChunkResult(processed_items=processed, error_count=errors, chunk_index=chunk_index)


def merge_chunk_results(results: Sequence[ChunkResult]) -> ProcessingResult:
    """Concatenate items in the given order and sum error counts."""
    items: list[GeoPoint] = []
    errors = 0
    for r in results:
        items.extend(r.processed_items)
        errors += r.error_count
    return ProcessingResult(
        items=items,
        error_count=errors,
        chunks=sorted(results, key=lambda r: r.chunk_index),
    )


def process_sequential(data: Sequence[GeoPoint], chunk_size: int = 1000, *, clock: Clock | None = None) -> ProcessingResult:
    """Process chunks one after another; output keeps input order."""
    results = [process_chunk(chunk, i, clock=clock) for i, chunk in enumerate(split_chunks(data, chunk_size))]
    merged = merge_chunk_results(results)
    logger.info(
        "Processed %d records sequentially: %d valid, %d errors",
        len(data),
        merged.processed_count,
        merged.error_count,
    )
    return merged
