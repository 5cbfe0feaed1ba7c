#!/usr/bin/env python3
"""
e2e_runner.py

One-file end-to-end runner:
  - generates a request trace with simulator/make_csv.py
  - starts the gateway (uvicorn) in background (cwd=backend)
  - installs + activates the worker via POST /sw/install
  - replays the trace through the gateway (simulator/replay.py)
  - summarises the replay with simulator/report.py (CSV + saved plot)
  - fires a push, a notification click and both sync tags, then prints /sw/stats

Usage (from repo root):
  python scripts/e2e_runner.py --workload zipf --minutes 1 --origin http://127.0.0.1:3000

Notes:
  - The origin must be running and serve the precache manifest, or install fails (409).
  - Use an activated venv (recommended).
"""

import os
import sys
import subprocess
import time
import json
from pathlib import Path
from urllib.request import urlopen, Request
from urllib.error import URLError, HTTPError
import argparse

REPO_ROOT = Path.cwd()
BACKEND_DIR = REPO_ROOT / "backend"
SIM_DIR = REPO_ROOT / "simulator"
LOGS_DIR = REPO_ROOT / "logs"

# Ensure directories exist
LOGS_DIR.mkdir(parents=True, exist_ok=True)

PY = sys.executable  # ensures the same Python interpreter is used

def timestamp():
    return int(time.time())

def run_subprocess(cmd, logfile_path=None, env=None, cwd=None):
    """Run a subprocess and stream output to logfile_path (if provided)."""
    env = env or os.environ.copy()
    print("Running:", " ".join(cmd))
    if logfile_path:
        with open(logfile_path, "ab") as lf:
            proc = subprocess.run(cmd, stdout=lf, stderr=subprocess.STDOUT, env=env, cwd=cwd, check=False)
            return proc.returncode
    else:
        proc = subprocess.run(cmd, env=env, cwd=cwd, check=False)
        return proc.returncode

def make_trace(workload, minutes, rps, out_csv, seed=None):
    cmd = [PY, str(SIM_DIR / "make_csv.py"),
           "--workload", workload,
           "--minutes", str(minutes),
           "--rps", str(rps),
           "--outfile", str(out_csv)]
    if seed is not None:
        cmd += ["--seed", str(seed)]
    print("=== TRACE ===")
    return run_subprocess(cmd, cwd=REPO_ROOT)

def start_backend(log_path=None, port=8000, origin=None):
    """Start uvicorn main:app in background; returns Popen object."""
    print("=== STARTING GATEWAY ===")
    env = os.environ.copy()
    env.setdefault("DATABASE_URL", f"sqlite:///{(LOGS_DIR / 'e2e_gateway.db').resolve()}")
    env["PYTHONPATH"] = str(REPO_ROOT)
    if origin:
        env["ORIGIN_BASE_URL"] = origin
    cmd = [PY, "-m", "uvicorn", "main:app", "--port", str(port)]
    # Run server as background process
    stdout = open(log_path, "ab") if log_path else subprocess.DEVNULL
    proc = subprocess.Popen(cmd, cwd=str(BACKEND_DIR), env=env, stdout=stdout, stderr=subprocess.STDOUT)
    print(f"Started uvicorn (pid={proc.pid}), logs -> {log_path}")
    return proc

def wait_for_health(url="http://127.0.0.1:8000/health", timeout=60):
    """Wait up to `timeout` seconds for backend /health to respond."""
    print("Waiting for gateway health endpoint...", end="", flush=True)
    start = time.time()
    while True:
        try:
            with urlopen(url, timeout=2) as r:
                body = r.read().decode("utf-8")
                print("\nGateway healthy:", body)
                return True
        except (URLError, OSError):
            print(".", end="", flush=True)
            time.sleep(1)
        if time.time() - start > timeout:
            print("\nTimed out waiting for gateway health.")
            return False

def call(base, path, payload=None, method="POST"):
    """JSON call against the gateway; returns parsed body or None."""
    data = json.dumps(payload).encode("utf-8") if payload is not None else None
    req = Request(base + path, data=data, method=method, headers={"Content-Type": "application/json"})
    try:
        with urlopen(req, timeout=60) as resp:
            j = json.loads(resp.read().decode("utf-8"))
            print(f"{method} {path} ->", j)
            return j
    except HTTPError as e:
        print(f"{method} {path} HTTP Error:", e.code, e.read().decode("utf-8", errors="replace")[:300])
    except URLError as e:
        print(f"{method} {path} URL Error:", e.reason)
    return None

def main():
    p = argparse.ArgumentParser(description="End-to-end runner: trace -> gateway -> install -> replay -> report")
    p.add_argument("--workload", choices=["zipf", "flash", "writeheavy"], default="zipf")
    p.add_argument("--minutes", type=int, default=1)
    p.add_argument("--rps", type=int, default=5)
    p.add_argument("--rate", type=float, default=0, help="replay rate; 0 = as fast as possible")
    p.add_argument("--seed", type=int, default=None)
    p.add_argument("--origin", default=None, help="Origin base URL (ORIGIN_BASE_URL)")
    p.add_argument("--port", type=int, default=8000, help="Gateway port (default 8000)")
    p.add_argument("--no-backend", action="store_true", help="Use an already running gateway")
    args = p.parse_args()

    ts = timestamp()
    trace_csv = LOGS_DIR / f"trace_{ts}.csv"
    results_csv = LOGS_DIR / f"results_{ts}.csv"
    report_csv = LOGS_DIR / f"report_{ts}.csv"
    plot_png = LOGS_DIR / f"report_{ts}.png"
    backend_log = LOGS_DIR / f"gateway_uvicorn_{ts}.log"
    base = f"http://127.0.0.1:{args.port}"

    # 1) Trace
    if make_trace(args.workload, args.minutes, args.rps, trace_csv, args.seed) != 0:
        print("[ERROR] Trace generation failed.")
        sys.exit(2)

    # 2) Gateway
    backend_proc = None
    if not args.no_backend:
        backend_proc = start_backend(log_path=str(backend_log), port=args.port, origin=args.origin)
    if not wait_for_health(url=f"{base}/health", timeout=60):
        print("Gateway did not become healthy. Check log:", backend_log)
        sys.exit(3)

    try:
        # 3) Lifecycle
        installed = call(base, "/sw/install")
        if installed is None:
            print("[WARN] Install failed; replay will pass through to the origin uncached.")

        # 4) Replay + report
        run_subprocess([PY, str(SIM_DIR / "replay.py"), "--file", str(trace_csv), "--base", base,
                        "--rate", str(args.rate), "--out", str(results_csv)], cwd=REPO_ROOT)
        if results_csv.exists():
            run_subprocess([PY, "-m", "simulator.report", "--results", str(results_csv), "--out", str(report_csv),
                            "--plot", "--plot-save", str(plot_png)], cwd=REPO_ROOT)

        # 5) Hooks
        call(base, "/sw/push", {"data": json.dumps({"title": "e2e", "body": "replay finished"})})
        call(base, "/sw/notificationclick", {"action": "view"})
        call(base, "/sw/search-history", {"query": "harajuku", "filters": {"category": "events"}})
        call(base, "/sw/sync", {"tag": "sync-search-history"})
        call(base, "/sw/sync", {"tag": "background-sync"})
        call(base, "/sw/stats", method="GET")
    finally:
        if backend_proc:
            backend_proc.terminate()

    print("\n=== SUMMARY ===")
    print("Trace CSV:", trace_csv)
    print("Results CSV:", results_csv)
    print("Report CSV:", report_csv)
    print("Plot PNG:", plot_png)
    if backend_proc:
        print("Gateway log:", backend_log)

    print("Done.")

if __name__ == "__main__":
    main()
