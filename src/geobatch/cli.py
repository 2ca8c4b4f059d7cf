"""
GeoBatch CLI entrypoint.

Thin adapter for local runs: it reads record files, maps flags onto settings overrides and
delegates all work to `geobatch.pipeline`.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

from geobatch.config.overrides import apply_settings_overrides, parse_override_pairs
from geobatch.config.settings import Settings, get_settings
from geobatch.core.errors import GeoBatchError
from geobatch.core.geo import DISTANCE_DECIMALS, haversine_km, require_valid_coordinate
from geobatch.core.logging import configure_logging
from geobatch.ingestion.records import load_records, point_to_record, write_points
from geobatch.pipeline import build_grid, nearest_neighbors, process_records, run_summary

logger = logging.getLogger(__name__)


def _settings_from_args(args: argparse.Namespace, flag_overrides: dict[str, dict[str, Any]]) -> Settings:
    """Apply `--set` pairs first, then explicit flags (flags win)."""
    overrides = parse_override_pairs(args.set or [])
    for section, values in flag_overrides.items():
        present = {k: v for k, v in values.items() if v is not None}
        if present:
            overrides.setdefault(section, {}).update(present)
    return apply_settings_overrides(get_settings(), overrides)


def _parallel_flag(args: argparse.Namespace) -> bool | None:
    if args.sequential:
        return False
    if args.parallel:
        return True
    return None


def _cmd_process(args: argparse.Namespace) -> int:
    settings = _settings_from_args(
        args,
        {"processing": {"chunk_size": args.chunk_size, "worker_count": args.workers}},
    )
    records = load_records(args.input)
    result = process_records(records, settings, parallel=_parallel_flag(args))

    if args.output:
        out_path = write_points(args.output, result.items)
        logger.info("Wrote %d records to %s", result.processed_count, out_path)

    summary = run_summary(result)
    if args.json:
        print(json.dumps(summary, indent=2))
    else:
        print(
            f"processed={summary['processed_count']} errors={summary['error_count']} chunks={summary['chunk_count']}"
        )
    return 0


def _cmd_neighbors(args: argparse.Namespace) -> int:
    settings = _settings_from_args(
        args,
        {
            "search": {
                "max_distance_km": args.max_distance_km,
                "max_neighbors": args.max_neighbors,
                "use_grid": True if args.use_grid else None,
            }
        },
    )
    # Loaded sequentially: results follow query order and ties follow reference order.
    references = process_records(load_records(args.references), settings, parallel=False).items
    queries = process_records(load_records(args.queries), settings, parallel=False).items
    results = nearest_neighbors(references, queries, settings)

    if args.json:
        payload = [
            {
                "query": point_to_record(r.query),
                "count": r.count,
                "neighbors": [
                    {
                        "reference": point_to_record(n.reference),
                        "distance_km": round(n.distance_km, DISTANCE_DECIMALS),
                    }
                    for n in r.neighbors
                ],
            }
            for r in results
        ]
        print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))
        return 0

    for i, r in enumerate(results, start=1):
        q = r.query
        print(f"{i:>3}. ({q.latitude:.5f}, {q.longitude:.5f}) neighbors={r.count}")
        for n in r.neighbors:
            ref = n.reference
            label = ref.attributes.get("name") or ref.attributes.get("id") or ""
            print(f"     - {n.distance_km:.{DISTANCE_DECIMALS}f} km  ({ref.latitude:.5f}, {ref.longitude:.5f}) {label}")
    return 0


def _cmd_distance(args: argparse.Namespace) -> int:
    lat1, lon1 = require_valid_coordinate(*args.origin)
    lat2, lon2 = require_valid_coordinate(*args.target)
    print(f"{haversine_km(lat1, lon1, lat2, lon2):.{DISTANCE_DECIMALS}f}")
    return 0


def _cmd_grid(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args, {"grid": {"grid_size": args.grid_size}})
    points = process_records(load_records(args.input), settings).items
    grid = build_grid(points, settings)

    occupied = {f"{x},{y}": len(pts) for (x, y), pts in sorted(grid.cells.items()) if pts}
    box = grid.bounding_box
    report = {
        "grid_size": grid.grid_size,
        "bounding_box": {"north": box.north, "south": box.south, "east": box.east, "west": box.west},
        "cell_width": grid.cell_width,
        "cell_height": grid.cell_height,
        "point_count": len(grid),
        "occupied_cells": occupied,
    }
    print(json.dumps(report, indent=2))
    return 0


def _add_set_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--set",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a setting for this run, e.g. processing.chunk_size=500 (repeatable).",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the GeoBatch CLI."""
    parser = argparse.ArgumentParser(prog="geobatch")
    sub = parser.add_subparsers(dest="command", required=True)

    proc = sub.add_parser("process", help="Validate and annotate a record file.")
    proc.add_argument("input", help="Records file (.json or .csv)")
    proc.add_argument("--output", default=None, help="Write valid records to .json or .csv")
    mode = proc.add_mutually_exclusive_group()
    mode.add_argument("--sequential", action="store_true", help="Force sequential processing (keeps order)")
    mode.add_argument("--parallel", action="store_true", help="Force parallel processing")
    proc.add_argument("--chunk-size", type=int, default=None)
    proc.add_argument("--workers", type=int, default=None)
    proc.add_argument("--json", action="store_true", help="Output the run summary as JSON")
    _add_set_argument(proc)
    proc.set_defaults(func=_cmd_process)

    nn = sub.add_parser("neighbors", help="Nearest references for each query point.")
    nn.add_argument("references", help="Reference records file (.json or .csv)")
    nn.add_argument("queries", help="Query records file (.json or .csv)")
    nn.add_argument("--max-distance-km", type=float, default=None)
    nn.add_argument("--max-neighbors", type=int, default=None)
    nn.add_argument("--use-grid", action="store_true", help="Use the spatial grid instead of brute force")
    nn.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    _add_set_argument(nn)
    nn.set_defaults(func=_cmd_neighbors)

    dist = sub.add_parser("distance", help="Great-circle distance between two coordinates (km).")
    dist.add_argument("--from", dest="origin", nargs=2, type=float, required=True, metavar=("LAT", "LON"))
    dist.add_argument("--to", dest="target", nargs=2, type=float, required=True, metavar=("LAT", "LON"))
    dist.set_defaults(func=_cmd_distance)

    grid = sub.add_parser("grid", help="Index a record file into a spatial grid and report cell occupancy.")
    grid.add_argument("input", help="Records file (.json or .csv)")
    grid.add_argument("--grid-size", type=int, default=None)
    _add_set_argument(grid)
    grid.set_defaults(func=_cmd_grid)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m geobatch.cli`."""
    parser = build_parser()
    args = parser.parse_args(argv)
    func: Any = getattr(args, "func")
    try:
        # Settings load here, so a bad GEOBATCH_* value is reported like any other input error.
        configure_logging()
        return int(func(args))
    except (GeoBatchError, ValueError, OSError) as exc:
        print(f"geobatch: error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
