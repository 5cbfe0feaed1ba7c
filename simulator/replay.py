# simulator/replay.py
import argparse, csv, time, requests

RESULT_COLUMNS = ["timestamp", "method", "path", "destination", "status", "served_from", "route_class", "latency_ms"]

def replay(csv_file: str, base_url: str, rate: float | None, dry_run: bool, out: str | None = None):
    base = base_url.rstrip("/")
    sent = ok = fail = 0
    results = []

    def send_row(row):
        nonlocal ok, fail
        headers = {}
        if row.get("destination"):
            headers["Sec-Fetch-Dest"] = row["destination"]
        method = (row.get("method") or "GET").upper()
        if dry_run:
            return True
        started = time.perf_counter()
        try:
            body = {"client_id": row.get("client_id")} if method != "GET" else None
            r = requests.request(method, base + row["path"], headers=headers, json=body, timeout=10)
        except Exception as e:
            fail += 1
            print("Request error:", e)
            return False
        latency_ms = int((time.perf_counter() - started) * 1000)
        results.append([
            row["timestamp"], method, row["path"], row.get("destination", ""),
            r.status_code, r.headers.get("X-Served-From", ""), r.headers.get("X-Route-Class", ""), latency_ms,
        ])
        if r.status_code < 500:
            ok += 1
            return True
        fail += 1
        print("Request failed:", r.status_code, row["path"], r.text[:200])
        return False

    with open(csv_file, newline="") as f:
        reader = csv.DictReader(f)
        for row in reader:
            sent += 1
            send_row(row)
            if rate and rate > 0:
                time.sleep(1.0 / rate)

    if out and results:
        with open(out, "w", newline="") as f:
            w = csv.writer(f)
            w.writerow(RESULT_COLUMNS)
            w.writerows(results)
        print(f"Wrote {len(results)} results to {out}")

    print(f"Done. Sent={sent} OK={ok} Fail={fail}")
    return results

if __name__ == "__main__":
    ap = argparse.ArgumentParser(description="Replay CSV through the offline gateway")
    ap.add_argument("--file", required=True, help="path to CSV")
    ap.add_argument("--base", default="http://127.0.0.1:8000", help="gateway base URL")
    ap.add_argument("--rate", type=float, default=10.0, help="requests per second; 0 to go as fast as possible")
    ap.add_argument("--out", default=None, help="write per-request results here (input for report.py)")
    ap.add_argument("--dry-run", action="store_true")
    args = ap.parse_args()
    if args.rate == 0:
        args.rate = None
    replay(args.file, args.base, args.rate, args.dry_run, args.out)
