"""FastAPI service for the Reading Stats Dashboard.

Serves a Chart.js dashboard built from the reading-tracker sheet.  The
fetched records are cached (15-minute TTL by default) so that switching
year or calendar month does not re-download the sheet.

Deployment: uvicorn app:app --host 127.0.0.1 --port 8204
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse

from analytics import DEFAULT_MAX_MONTHS, build_dashboard_payload
from sheet_fetcher import SheetConfigError, SheetFetchError, load_records
from sheet_parser import MissingColumnError, ReadingRecord

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------
TEMPLATE_PATH = Path(__file__).parent / "dashboard_template.html"
CACHE_TTL_SECONDS = int(os.environ.get("BOOKSTATS_CACHE_TTL", "900"))
MAX_MONTHS = int(os.environ.get("BOOKSTATS_MONTHS", str(DEFAULT_MAX_MONTHS)))

# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Reading Stats Dashboard",
    root_path=os.environ.get("BOOKSTATS_ROOT_PATH", ""),
)

# ---------------------------------------------------------------------------
# Thread-safe cache of the last fetched records
# ---------------------------------------------------------------------------
_cache_lock = threading.Lock()
_cache: dict[str, Any] = {
    "records": None,
    "fetched_at": 0.0,
}


def _get_cached_records(force_refresh: bool = False) -> list[ReadingRecord]:
    """Return cached records, re-fetching the sheet if stale or forced.

    Raises:
        HTTPException: 502 when the sheet cannot be fetched, 500 when the
            sheet is not configured or lacks the language column.
    """
    now = time.monotonic()
    with _cache_lock:
        if (
            not force_refresh
            and _cache["records"] is not None
            and (now - _cache["fetched_at"]) < CACHE_TTL_SECONDS
        ):
            return _cache["records"]

    try:
        records = load_records()
    except SheetFetchError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
    except (SheetConfigError, MissingColumnError) as e:
        logger.error("Sheet configuration error: %s", e)
        raise HTTPException(status_code=500, detail=str(e)) from e

    with _cache_lock:
        _cache["records"] = records
        _cache["fetched_at"] = time.monotonic()

    return records


def _build_payload(year: str | None, month: str | None) -> dict[str, Any]:
    """Build the dashboard payload, mapping bad query parameters to 400."""
    records = _get_cached_records()
    try:
        return build_dashboard_payload(records, year=year, month=month, max_months=MAX_MONTHS)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid year or month: {e}") from e


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health")
@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/", response_class=HTMLResponse)
def dashboard_html(year: str | None = None, month: str | None = None):
    """Serve the dashboard HTML with injected data."""
    if not TEMPLATE_PATH.exists():
        raise HTTPException(status_code=500, detail="Template not found")

    data = _build_payload(year, month)
    template = TEMPLATE_PATH.read_text(encoding="utf-8")
    data_json = json.dumps(data, ensure_ascii=False)
    data_json = data_json.replace("</", r"<\/")
    html = template.replace(
        "const DASHBOARD_DATA = {};",
        f"const DASHBOARD_DATA = {data_json};",
    )
    return HTMLResponse(content=html)


@app.get("/api/data")
def api_data(year: str | None = None, month: str | None = None):
    """Return the full dashboard JSON payload."""
    return _build_payload(year, month)


@app.get("/api/calendar")
def api_calendar(year: str | None = None, month: str | None = None):
    """Return only the calendar widget, for switching months in place."""
    return _build_payload(year, month)["calendar"]


@app.get("/api/refresh")
def api_refresh():
    """Re-fetch the sheet and report how many records it holds."""
    records = _get_cached_records(force_refresh=True)
    return {
        "status": "refreshed",
        "records": len(records),
    }
