import pandas as pd
import pytest

from simulator.report import load_results_csv, save_report_csv, summarise


@pytest.fixture
def results_csv(tmp_path):
    rows = [
        {"status": 200, "served_from": "network", "route_class": "api", "latency_ms": 10},
        {"status": 200, "served_from": "cache", "route_class": "api", "latency_ms": 2},
        {"status": 503, "served_from": "fallback", "route_class": "api", "latency_ms": 1},
        {"status": 200, "served_from": "cache", "route_class": "image", "latency_ms": 3},
        {"status": 504, "served_from": "", "route_class": "static", "latency_ms": 30},
        {"status": 200, "served_from": "passthrough", "route_class": "", "latency_ms": 8},
    ]
    path = tmp_path / "results.csv"
    pd.DataFrame(rows).to_csv(path, index=False)
    return path


def test_missing_columns_rejected(tmp_path):
    path = tmp_path / "bad.csv"
    pd.DataFrame([{"status": 200}]).to_csv(path, index=False)
    with pytest.raises(ValueError):
        load_results_csv(str(path))


def test_summary_per_route_class(results_csv):
    rows = {r["route_class"]: r for r in summarise(load_results_csv(str(results_csv)))}

    assert set(rows) == {"api", "image", "static", "none", "all"}
    api = rows["api"]
    assert api["total"] == 3
    assert api["from_cache"] == 1
    assert api["from_fallback"] == 1
    # the offline 503 is a fallback, not an error
    assert api["errors"] == 0
    assert rows["static"]["errors"] == 1
    assert rows["none"]["from_passthrough"] == 1
    assert rows["all"]["total"] == 6
    assert rows["all"]["cache_pct"] == pytest.approx(33.33)


def test_report_csv_written(results_csv, tmp_path):
    out = tmp_path / "out" / "report.csv"
    save_report_csv(str(out), summarise(load_results_csv(str(results_csv))))

    df = pd.read_csv(out)
    assert list(df["route_class"]) == ["api", "image", "none", "static", "all"]
