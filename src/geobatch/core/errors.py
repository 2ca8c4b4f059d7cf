"""
Error types raised by the geospatial core.

Only malformed invocation parameters are raised to the caller. Per-item and per-chunk
problems are counted in processing results instead (see `geobatch.processing`).
"""

from __future__ import annotations


class GeoBatchError(Exception):
    """Base class for all GeoBatch errors."""


class InvalidCoordinateError(GeoBatchError, ValueError):
    """A latitude/longitude pair is out of range or not a number."""


class LengthMismatchError(GeoBatchError, ValueError):
    """Batch distance inputs have different lengths."""


class InvalidBoundingBoxError(GeoBatchError, ValueError):
    """Bounding box edges are inverted, empty, or not finite."""


class InvalidGridSizeError(GeoBatchError, ValueError):
    """Grid resolution is smaller than one cell per side."""


class WorkerFailure(GeoBatchError):
    """A chunk raised an unexpected exception inside a worker.

    Never propagated out of `process_parallel`; it is logged and counted.
    """

    def __init__(self, chunk_index: int, size: int, cause: BaseException):
        super().__init__(f"chunk {chunk_index} ({size} items) failed: {cause!r}")
        self.chunk_index = chunk_index
        self.size = size
        self.cause = cause
