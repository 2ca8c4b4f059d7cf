import json

from geobatch.cli import main


def _write_json(path, records):
    path.write_text(json.dumps(records), encoding="utf-8")
    return str(path)


def test_distance_command_prints_kilometers(capsys):
    code = main(["distance", "--from", "40.7128", "-74.0060", "--to", "51.5074", "-0.1278"])

    assert code == 0
    assert abs(float(capsys.readouterr().out.strip()) - 5570.0) < 5.0


def test_distance_command_rejects_invalid_coordinates(capsys):
    code = main(["distance", "--from", "91", "0", "--to", "0", "0"])

    assert code == 2
    assert "invalid coordinate" in capsys.readouterr().err


def test_process_command_writes_valid_records(tmp_path, capsys):
    src = _write_json(
        tmp_path / "in.json",
        [
            {"name": "a", "latitude": 1.0, "longitude": 1.0},
            {"name": "b", "latitude": 100.0, "longitude": 1.0},
            {"name": "c", "latitude": -5.0, "longitude": 170.0},
        ],
    )
    out = tmp_path / "out.csv"

    code = main(["process", src, "--output", str(out), "--sequential", "--json"])

    assert code == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary == {"processed_count": 2, "error_count": 1, "chunk_count": 1}
    lines = out.read_text(encoding="utf-8").splitlines()
    assert lines[0].startswith("latitude,longitude,name,valid,processed_at")
    assert len(lines) == 3


def test_process_command_parallel_with_overrides(tmp_path, capsys):
    src = _write_json(tmp_path / "in.json", [{"lat": i % 80, "lon": i % 170} for i in range(50)])

    code = main(["process", src, "--parallel", "--workers", "2", "--set", "processing.chunk_size=5"])

    assert code == 0
    assert capsys.readouterr().out.strip() == "processed=50 errors=0 chunks=10"


def test_neighbors_command_json(tmp_path, capsys):
    refs = _write_json(
        tmp_path / "refs.json",
        [
            {"name": "near", "latitude": 0.0, "longitude": 0.01},
            {"name": "far", "latitude": 0.0, "longitude": 5.0},
            {"name": "broken", "latitude": "x", "longitude": 0.0},
        ],
    )
    queries = _write_json(tmp_path / "queries.json", [{"name": "q", "latitude": 0.0, "longitude": 0.0}])

    code = main(["neighbors", refs, queries, "--max-distance-km", "100", "--use-grid", "--json"])

    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload[0]["count"] == 1
    assert payload[0]["neighbors"][0]["reference"]["name"] == "near"
    assert payload[0]["neighbors"][0]["distance_km"] == 1.112


def test_grid_command_reports_occupancy(tmp_path, capsys):
    src = _write_json(
        tmp_path / "in.json",
        [{"latitude": 0.0, "longitude": 0.0}, {"latitude": 10.0, "longitude": 10.0}],
    )

    code = main(["grid", src, "--grid-size", "2"])

    assert code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["point_count"] == 2
    assert report["occupied_cells"] == {"0,0": 1, "1,1": 1}


def test_missing_input_file_exits_with_error(tmp_path, capsys):
    code = main(["process", str(tmp_path / "missing.json")])

    assert code == 2
    assert "geobatch: error" in capsys.readouterr().err


def test_neighbors_command_keeps_query_and_tie_order_for_large_inputs(tmp_path, capsys, monkeypatch):
    import time

    import geobatch.pipeline as pipeline
    from geobatch.processing.chunks import process_chunk

    # A slow first chunk would finish last if the inputs went through the worker pool.
    def slow_first_chunk(items, chunk_index, **kwargs):
        if chunk_index == 0:
            time.sleep(0.05)
        return process_chunk(items, chunk_index, **kwargs)

    monkeypatch.setattr(pipeline, "process_chunk", slow_first_chunk)

    refs = _write_json(
        tmp_path / "refs.json",
        [
            {"name": "first", "latitude": 0.0, "longitude": 0.0},
            {"name": "second", "latitude": 0.0, "longitude": 0.0},
            {"name": "far", "latitude": 0.0, "longitude": 0.5},
        ],
    )
    # Above the default parallel_threshold of 10 000 records.
    queries = _write_json(
        tmp_path / "queries.json",
        [{"id": i, "latitude": (i % 100) * 0.001, "longitude": 0.0} for i in range(10_000)],
    )

    code = main(
        ["neighbors", refs, queries, "--json", "--max-neighbors", "2", "--set", "processing.worker_count=4"]
    )

    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert [r["query"]["id"] for r in payload] == list(range(10_000))
    # Equal distances keep reference file order.
    assert all([n["reference"]["name"] for n in r["neighbors"]] == ["first", "second"] for r in payload)


def test_bad_numeric_env_override_exits_with_error(monkeypatch, capsys):
    from geobatch.config.settings import get_settings

    monkeypatch.setenv("GEOBATCH_WORKER_COUNT", "abc")
    get_settings.cache_clear()
    try:
        code = main(["distance", "--from", "0", "0", "--to", "0", "1"])
    finally:
        get_settings.cache_clear()

    assert code == 2
    assert "geobatch: error" in capsys.readouterr().err
