"""
Parallel chunk execution on a bounded worker pool.

Chunks share no mutable state, so workers need no locks; the only synchronization point is
the join in `process_parallel`. There is no per-chunk timeout: a hung chunk blocks the batch.

Ordering: error counts are exact sums, but `ProcessingResult.items` follows chunk completion
order, not input order. Use `process_sequential` when order matters.

Throughput: workers are threads, and validation is pure Python, so the GIL keeps this
roughly as fast as the sequential path. The pool gives per-chunk failure isolation and a
chunked run structure, not a CPU speed-up. A `processor` that releases the GIL (I/O, C
extensions) is what actually overlaps.
"""

from __future__ import annotations

import logging
import math
import os
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Callable, Sequence

from geobatch.core.errors import WorkerFailure
from geobatch.domain.models import ChunkResult, GeoPoint, ProcessingResult
from geobatch.processing.chunks import process_chunk, split_chunks

logger = logging.getLogger(__name__)

ChunkProcessor = Callable[[Sequence[GeoPoint], int], ChunkResult]


def default_worker_count() -> int:
    return os.cpu_count() or 1


def effective_chunk_size(total: int, chunk_size: int, worker_count: int) -> int:
    """Shrink `chunk_size` so every worker gets about two chunks."""
    balanced = max(1, math.ceil(total / (worker_count * 2)))
    return min(int(chunk_size), balanced)


def process_parallel(
    data: Sequence[GeoPoint],
    chunk_size: int = 1000,
    worker_count: int | None = None,
    *,
    processor: ChunkProcessor = process_chunk,
) -> ProcessingResult:
    """Process `data` in chunks on `worker_count` threads and merge the results.

    A chunk that raises is logged and its whole length counted as errors; the other chunks
    still contribute their results.
    """
    workers = default_worker_count() if worker_count is None else int(worker_count)
    if workers < 1:
        raise ValueError(f"worker_count must be >= 1, got {worker_count}")
    if int(chunk_size) < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")

    size = effective_chunk_size(len(data), chunk_size, workers)
    chunks = split_chunks(data, size)

    items: list[GeoPoint] = []
    errors = 0
    completed: list[ChunkResult] = []
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="geobatch") as pool:
        futures: dict[Future[ChunkResult], int] = {
            pool.submit(processor, chunk, index): index for index, chunk in enumerate(chunks)
        }
        for future in as_completed(futures):
            index = futures[future]
            try:
                result = future.result()
            except Exception as exc:
                failure = WorkerFailure(index, len(chunks[index]), exc)
                logger.error("%s", failure)
                errors += failure.size
                completed.append(ChunkResult(error_count=failure.size, chunk_index=index))
                continue
            items.extend(result.processed_items)
            errors += result.error_count
            completed.append(result)

    logger.info(
        "Processed %d records in %d chunks (size=%d, workers=%d): %d valid, %d errors",
        len(data),
        len(chunks),
        size,
        workers,
        len(items),
        errors,
    )
    return ProcessingResult(
        items=items,
        error_count=errors,
        chunks=sorted(completed, key=lambda r: r.chunk_index),
    )
