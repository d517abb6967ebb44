from __future__ import annotations

import os
from pathlib import Path

# ---------------------------------------------------------------------------
# Project paths
# ---------------------------------------------------------------------------

# Root of the project (repo root)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Local exports of the eligibility table live here
DATA_DIR = PROJECT_ROOT / "data"

# ---------------------------------------------------------------------------
# App identity
# ---------------------------------------------------------------------------

APP_NAME = "Aides Eligibility Engine"
APP_VERSION = "0.1.0"

LOG_LEVEL = os.getenv("AIDES_LOG_LEVEL", "INFO").strip().upper() or "INFO"

# ---------------------------------------------------------------------------
# Supabase / PostgREST configuration for the eligibility rule table
#
# Rows are read through the REST endpoint:
#   {SUPABASE_URL}/rest/v1/{ELIGIBILITY_TABLE}?select=*&order=Etape.asc
#
# Leave SUPABASE_URL empty to fall back to a local export
# (ELIGIBILITY_EXPORT_PATH, CSV or Excel).
# ---------------------------------------------------------------------------

SUPABASE_URL = os.getenv("SUPABASE_URL", "").strip().rstrip("/")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "").strip()

ELIGIBILITY_TABLE = os.getenv("ELIGIBILITY_TABLE", "eligibility").strip()
ELIGIBILITY_ORDER_COLUMN = "Etape"

ELIGIBILITY_EXPORT_PATH = Path(
    os.getenv("ELIGIBILITY_EXPORT_PATH", str(DATA_DIR / "eligibility.csv")).strip()
)

# PostgREST caps responses (1000 rows by default on Supabase), so we page.
PAGE_SIZE = int(os.getenv("ELIGIBILITY_PAGE_SIZE", "1000"))
REQUEST_TIMEOUT_SECONDS = int(os.getenv("ELIGIBILITY_TIMEOUT_SECONDS", "30"))

# urllib3 retries for the REST fetch (connect, read and 429/5xx alike)
FETCH_RETRIES = int(os.getenv("ELIGIBILITY_FETCH_RETRIES", "5"))
FETCH_BACKOFF_SECONDS = float(os.getenv("ELIGIBILITY_FETCH_BACKOFF", "0.6"))
