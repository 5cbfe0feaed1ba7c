# simulator/report.py
"""
Report: summarise a replay results CSV per route class.

Outputs one row per route class (plus "all"):
- total, from_network, from_cache, from_fallback, passthrough, errors
- cache_pct, fallback_pct, avg_latency_ms, p95_latency_ms

CLI:
  python -m simulator.report --results results.csv --out report.csv --plot --plot-save report.png
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

REQUIRED = ["status", "served_from", "route_class", "latency_ms"]
SOURCES = ["network", "cache", "fallback", "passthrough"]


def load_results_csv(path: str) -> pd.DataFrame:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Results not found: {path}")
    df = pd.read_csv(p, keep_default_na=False)
    missing = [c for c in REQUIRED if c not in df.columns]
    if missing:
        raise ValueError(f"Results missing required column(s): {missing}")

    df["status"] = pd.to_numeric(df["status"], errors="coerce").fillna(0).astype(int)
    df["latency_ms"] = pd.to_numeric(df["latency_ms"], errors="coerce").fillna(0.0).astype(float)
    df["served_from"] = df["served_from"].astype(str).str.lower()
    # pass-through requests carry no route class
    df["route_class"] = df["route_class"].astype(str).replace("", "none")
    return df


def _summarise(group: pd.DataFrame, label: str) -> Dict[str, Any]:
    total = int(len(group))
    counts = group["served_from"].value_counts()
    row: Dict[str, Any] = {"route_class": label, "total": total}
    for source in SOURCES:
        row[f"from_{source}"] = int(counts.get(source, 0))
    # the offline API body is a 503 by contract; it is not an error here
    row["errors"] = int(((group["status"] >= 500) & (group["served_from"] != "fallback")).sum())
    row["cache_pct"] = round(100.0 * row["from_cache"] / total, 2) if total else 0.0
    row["fallback_pct"] = round(100.0 * row["from_fallback"] / total, 2) if total else 0.0
    row["avg_latency_ms"] = round(float(group["latency_ms"].mean()), 2) if total else 0.0
    row["p95_latency_ms"] = round(float(group["latency_ms"].quantile(0.95)), 2) if total else 0.0
    return row


def summarise(df: pd.DataFrame) -> List[Dict[str, Any]]:
    rows = [_summarise(g, str(rc)) for rc, g in df.groupby("route_class", sort=True)]
    rows.append(_summarise(df, "all"))
    return rows


def save_report_csv(path: str, rows: List[Dict[str, Any]]):
    out_p = Path(path)
    out_p.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(rows).to_csv(out_p, index=False)


def plot_report(rows: List[Dict[str, Any]], save_path: Optional[str] = None):
    try:
        import matplotlib
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
    except ImportError:
        return
    rows = [r for r in rows if r["route_class"] != "all"]
    if not rows:
        return

    labels = [r["route_class"].upper() for r in rows]
    cache = [r["cache_pct"] for r in rows]
    fallback = [r["fallback_pct"] for r in rows]
    avg = [r["avg_latency_ms"] for r in rows]
    p95 = [r["p95_latency_ms"] for r in rows]

    fig, axes = plt.subplots(2, 2, figsize=(10, 7))
    (ax1, ax2), (ax3, ax4) = axes

    ax1.bar(labels, cache); ax1.set_title("Served From Cache (%)")
    ax2.bar(labels, fallback); ax2.set_title("Offline Fallback (%)")
    ax3.bar(labels, avg); ax3.set_title("Avg Latency (ms)")
    ax4.bar(labels, p95); ax4.set_title("p95 Latency (ms)")

    for ax, vals in [(ax1, cache), (ax2, fallback), (ax3, avg), (ax4, p95)]:
        mx = max(vals) if any(vals) else 1.0
        for i, v in enumerate(vals):
            ax.text(i, v + (0.02 * mx), f"{v:.2f}", ha="center", va="bottom", fontsize=8)

    fig.suptitle("Offline Gateway Replay")
    fig.tight_layout()
    if save_path:
        base = Path(save_path)
        base.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(str(base))
        print(f"Saved report plot to {base}")
    else:
        plt.show()


# -------------------------
# CLI
# -------------------------
def main():
    p = argparse.ArgumentParser()
    p.add_argument("--results", required=True, help="CSV written by simulator/replay.py --out")
    p.add_argument("--out", required=True, help="CSV output")
    p.add_argument("--plot", action="store_true")
    p.add_argument("--plot-save", default=None, help="If set, save report plot here")
    args = p.parse_args()

    rows = summarise(load_results_csv(args.results))
    save_report_csv(args.out, rows)
    for r in rows:
        print(f"{r['route_class']:>8}  total={r['total']:<6} cache={r['cache_pct']:>6.2f}%  "
              f"fallback={r['fallback_pct']:>6.2f}%  avg={r['avg_latency_ms']:.2f}ms")
    if args.plot:
        plot_report(rows, args.plot_save)

if __name__ == "__main__":
    main()
