# backend/settings.py
import os
from pathlib import Path
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
REPO_ROOT = BASE_DIR.parent

# Load .env next to backend/main.py
load_dotenv(BASE_DIR / ".env")

def env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}

def env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"Env var {name} must be a number, got {raw!r}")

# --- Gateway settings (read once) ---
ORIGIN_BASE_URL = os.getenv("ORIGIN_BASE_URL", "http://127.0.0.1:3000")
FETCH_TIMEOUT_S = env_float("FETCH_TIMEOUT_S", 10.0)
FRONTEND_ORIGIN = os.getenv("FRONTEND_ORIGIN", "http://localhost:5173")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
AUTO_INSTALL = env_bool("AUTO_INSTALL", False)
