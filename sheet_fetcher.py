"""Fetch the reading sheet as CSV over HTTP.

Setup:
1. Share the Google Sheet as "Anyone with the link can view"
2. Set BOOKSTATS_SHEET_ID=<sheet id>, or BOOKSTATS_SHEET_CSV_URL=<csv url>
   for any other CSV export (the explicit URL wins when both are set)
"""

from __future__ import annotations

import logging
import os

import httpx

from sheet_parser import ReadingRecord, parse_records

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------
SHEET_CSV_URL = os.environ.get("BOOKSTATS_SHEET_CSV_URL", "")
SHEET_ID = os.environ.get("BOOKSTATS_SHEET_ID", "")
FETCH_TIMEOUT_SECONDS = float(os.environ.get("BOOKSTATS_FETCH_TIMEOUT", "15"))
GOOGLE_EXPORT_URL = "https://docs.google.com/spreadsheets/d/{sheet_id}/export?format=csv"

FETCH_FAILED_MESSAGE = (
    "Could not fetch the sheet. Make sure:\n"
    "1. The sheet is publicly accessible\n"
    '2. You\'ve shared the sheet with "Anyone with the link can view" permissions\n'
    "3. The sheet id or CSV URL is correct"
)


class SheetConfigError(RuntimeError):
    """Raised when no sheet URL or sheet id is configured."""


class SheetFetchError(RuntimeError):
    """Raised when the sheet could not be downloaded."""


def resolve_csv_url(csv_url: str | None = None, sheet_id: str | None = None) -> str:
    """Work out which URL to download the sheet from.

    Arguments take precedence over the environment configuration.  An
    explicit CSV URL wins over a sheet id.

    Raises:
        SheetConfigError: If neither a URL nor a sheet id is available.
    """
    csv_url = csv_url or SHEET_CSV_URL
    if csv_url:
        return csv_url
    sheet_id = sheet_id or SHEET_ID
    if sheet_id:
        return GOOGLE_EXPORT_URL.format(sheet_id=sheet_id)
    raise SheetConfigError(
        "Please set BOOKSTATS_SHEET_ID or BOOKSTATS_SHEET_CSV_URL"
    )


def fetch_sheet_csv(url: str, client: httpx.Client | None = None) -> str:
    """Download the CSV export at *url* and return its text.

    Args:
        url: CSV export URL (see ``resolve_csv_url``).
        client: Optional preconfigured client, mainly for tests.  A
            short-lived client is created when omitted.

    Raises:
        SheetFetchError: On any transport error or non-2xx response.  The
            message is the generic user-facing one; the cause is chained
            and logged.
    """
    try:
        if client is None:
            with httpx.Client(timeout=FETCH_TIMEOUT_SECONDS, follow_redirects=True) as c:
                response = c.get(url)
        else:
            response = client.get(url)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        logger.error("Sheet fetch returned HTTP %d for %s", e.response.status_code, url)
        raise SheetFetchError(FETCH_FAILED_MESSAGE) from e
    except httpx.HTTPError as e:
        logger.error("Sheet fetch failed for %s: %s", url, e)
        raise SheetFetchError(FETCH_FAILED_MESSAGE) from e

    logger.info("Fetched %d bytes of CSV from %s", len(response.content), url)
    return response.text


def load_records(
    csv_url: str | None = None,
    sheet_id: str | None = None,
    client: httpx.Client | None = None,
) -> list[ReadingRecord]:
    """One-call entry point: resolve the URL, fetch and parse the sheet.

    Raises:
        SheetConfigError: If no sheet is configured.
        SheetFetchError: If the download fails.
        sheet_parser.MissingColumnError: If the sheet has no language column.
    """
    url = resolve_csv_url(csv_url, sheet_id)
    text = fetch_sheet_csv(url, client=client)
    records = parse_records(text)
    logger.info("Parsed %d reading records", len(records))
    return records
