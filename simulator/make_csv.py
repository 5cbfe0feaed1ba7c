# simulator/make_csv.py
import argparse, csv, random
from datetime import datetime, timedelta, timezone

# (path, destination) pairs a browser would send through the gateway
DOCUMENTS = ["/", "/index.html", "/login.html", "/register.html", "/events.html", "/jobs.html"]
ASSETS = [("/js/advanced-search.js", "script"), ("/css/style.css", "style"), ("/manifest.json", "manifest")]
API = ["/api/events", "/api/posts", "/api/jobs", "/api/design-companies", "/api/apparel-brands", "/api/search?q=harajuku"]
IMAGES = [f"/images/post-{n}.jpg" for n in range(1, 21)] + ["/icons/icon-192x192.png", "/images/logo.svg"]

def rand_client(num_clients: int) -> str:
    return f"u{random.randint(1, num_clients)}"

def iso_utc(dt) -> str:
    # "YYYY-MM-DDTHH:MM:SSZ"
    return dt.replace(microsecond=0, tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")

def zipf_pick(items, s: float = 1.07):
    # weights ~ 1/(rank^s)
    weights = [1.0 / (r ** s) for r in range(1, len(items) + 1)]
    return random.choices(items, weights=weights, k=1)[0]

def pick_request():
    """Page-load shaped mix: API calls and images dominate, documents are rarer."""
    roll = random.random()
    if roll < 0.40:
        return "GET", zipf_pick(API), ""
    if roll < 0.75:
        return "GET", zipf_pick(IMAGES), "image"
    if roll < 0.90:
        path, dest = random.choice(ASSETS)
        return "GET", path, dest
    return "GET", zipf_pick(DOCUMENTS), "document"

def write_csv(rows, outfile: str):
    with open(outfile, "w", newline="") as f:
        w = csv.writer(f)
        w.writerow(["timestamp", "client_id", "method", "path", "destination"])
        w.writerows(rows)

def gen_zipf(minutes: int, rps: int, num_clients: int):
    """Skewed popularity: few pages/endpoints dominate."""
    start = datetime.now(timezone.utc)
    total = minutes * 60 * rps
    rows = []
    for i in range(total):
        ts = iso_utc(start + timedelta(seconds=i / rps))
        method, path, dest = pick_request()
        rows.append([ts, rand_client(num_clients), method, path, dest])
    return rows

def gen_flash(minutes: int, rps: int, num_clients: int, spike_pct: float = 0.5):
    """
    Flash crowd: middle window hammers one API endpoint.
    spike_pct = fraction of the run that is 'hot' (0.5 => middle 50%).
    """
    start = datetime.now(timezone.utc)
    total = minutes * 60 * rps
    mid_start = int(total * (0.5 - spike_pct / 2))
    mid_end = int(total * (0.5 + spike_pct / 2))
    hot = random.choice(API)

    rows = []
    for i in range(total):
        ts = iso_utc(start + timedelta(seconds=i / rps))
        if mid_start <= i < mid_end and random.random() < 0.8:
            method, path, dest = "GET", hot, ""
        else:
            method, path, dest = pick_request()
        rows.append([ts, rand_client(num_clients), method, path, dest])
    return rows

def gen_write_heavy(minutes: int, rps: int, num_clients: int, write_every: int = 5):
    """
    Write-heavy: every Nth request is a POST (never cached, always network).
    """
    start = datetime.now(timezone.utc)
    total = minutes * 60 * rps
    rows = []
    for i in range(total):
        ts = iso_utc(start + timedelta(seconds=i / rps))
        if i % write_every == 0:
            method, path, dest = "POST", random.choice(["/api/posts", "/api/reviews"]), ""
        else:
            method, path, dest = pick_request()
        rows.append([ts, rand_client(num_clients), method, path, dest])
    return rows

def main():
    p = argparse.ArgumentParser(description="Generate synthetic gateway request CSVs.")
    p.add_argument("--workload", choices=["zipf", "flash", "writeheavy"], required=True)
    p.add_argument("--minutes", type=int, default=2, help="duration in minutes")
    p.add_argument("--rps", type=int, default=5, help="requests per second")
    p.add_argument("--clients", type=int, default=50, help="number of clients (u1..uN)")
    p.add_argument("--seed", type=int, default=None)
    p.add_argument("--outfile", required=True)
    args = p.parse_args()

    if args.seed is not None:
        random.seed(args.seed)

    if args.workload == "zipf":
        rows = gen_zipf(args.minutes, args.rps, args.clients)
    elif args.workload == "flash":
        rows = gen_flash(args.minutes, args.rps, args.clients)
    else:
        rows = gen_write_heavy(args.minutes, args.rps, args.clients)

    write_csv(rows, args.outfile)
    print(f"Wrote {len(rows)} rows to {args.outfile}")

if __name__ == "__main__":
    main()
