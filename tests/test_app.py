"""Tests for the FastAPI app (app.py) routes and caching behaviour."""

from __future__ import annotations

from unittest.mock import patch

from sheet_fetcher import FETCH_FAILED_MESSAGE, SheetConfigError, SheetFetchError
from sheet_parser import MissingColumnError


# ── HTML page ─────────────────────────────────


class TestDashboardPage:
    def test_returns_200(self, client):
        response = client.get("/")
        assert response.status_code == 200

    def test_content_type_is_html(self, client):
        response = client.get("/")
        assert "text/html" in response.headers["content-type"]

    def test_contains_page_title(self, client):
        response = client.get("/")
        assert "Reading Stats" in response.text

    def test_injects_dashboard_data(self, client):
        response = client.get("/")
        assert "const DASHBOARD_DATA = {};" not in response.text
        assert '"selected_year": "2024"' in response.text

    def test_year_query(self, client):
        response = client.get("/", params={"year": "all"})
        assert '"selected_year": "all"' in response.text

    def test_escapes_quotes_for_attributes(self, client):
        response = client.get("/")
        assert '\'"\': "&quot;"' in response.text
        assert "\"'\": \"&#39;\"" in response.text
        assert "/[&<>\"']/g" in response.text

    def test_non_ascii_titles_kept(self, client):
        response = client.get("/", params={"year": "all"})
        assert "채식주의자" in response.text


# ── JSON API routes ───────────────────────────


class TestApiData:
    def test_returns_200(self, client):
        response = client.get("/api/data")
        assert response.status_code == 200

    def test_content_type_is_json(self, client):
        response = client.get("/api/data")
        assert "application/json" in response.headers["content-type"]

    def test_payload_has_widget_sections(self, client):
        data = client.get("/api/data").json()
        for key in ("languages", "monthly", "durations", "timeline", "authors", "calendar"):
            assert key in data, f"Missing key: {key}"

    def test_defaults_to_latest_year(self, client):
        data = client.get("/api/data").json()
        assert data["selected_year"] == "2024"
        assert data["years"] == [2024, 2023, 2022]

    def test_year_filter(self, client):
        data = client.get("/api/data", params={"year": "2023"}).json()
        assert data["summary"]["total_books"] == 1

    def test_invalid_year_is_400(self, client):
        response = client.get("/api/data", params={"year": "someday"})
        assert response.status_code == 400

    def test_invalid_month_is_400(self, client):
        response = client.get("/api/data", params={"month": "2024-13"})
        assert response.status_code == 400


class TestApiCalendar:
    def test_selected_month(self, client):
        data = client.get("/api/calendar", params={"year": "all", "month": "2024-01"}).json()
        assert data["selected"] == "2024-01"
        assert len(data["grid"]["days"]) == 31

    def test_invalid_month_is_400(self, client):
        response = client.get("/api/calendar", params={"month": "January"})
        assert response.status_code == 400


class TestApiRefresh:
    def test_response(self, client):
        data = client.get("/api/refresh").json()
        assert data == {"status": "refreshed", "records": 7}


# ── Health check ──────────────────────────────


class TestHealthCheck:
    def test_healthz_returns_200(self, client):
        assert client.get("/healthz").status_code == 200

    def test_health_returns_ok(self, client):
        assert client.get("/health").json() == {"status": "ok"}


# ── Error handling ────────────────────────────


class TestSheetErrors:
    def test_fetch_failure_is_502_with_generic_message(self, client):
        with patch("app.load_records", side_effect=SheetFetchError(FETCH_FAILED_MESSAGE)):
            response = client.get("/api/data")
        assert response.status_code == 502
        assert "Could not fetch the sheet" in response.json()["detail"]

    def test_missing_language_column_is_500(self, client):
        err = MissingColumnError('Could not find "language" column in the sheet')
        with patch("app.load_records", side_effect=err):
            response = client.get("/")
        assert response.status_code == 500
        assert "language" in response.json()["detail"]

    def test_unconfigured_sheet_is_500(self, client):
        with patch("app.load_records", side_effect=SheetConfigError("Please set BOOKSTATS_SHEET_ID")):
            response = client.get("/api/data")
        assert response.status_code == 500

    def test_missing_template_is_500(self, client, tmp_path):
        with patch("app.TEMPLATE_PATH", tmp_path / "missing.html"):
            response = client.get("/")
        assert response.status_code == 500


# ── Caching behaviour ────────────────────────


class TestCaching:
    def test_second_request_uses_cache(self, client, sample_records):
        with patch("app.load_records", return_value=sample_records) as mock_load:
            client.get("/api/data")
            client.get("/api/data", params={"year": "all"})
            assert mock_load.call_count == 1

    def test_refresh_forces_refetch(self, client, sample_records):
        with patch("app.load_records", return_value=sample_records) as mock_load:
            client.get("/api/data")
            assert mock_load.call_count == 1
            client.get("/api/refresh")
            assert mock_load.call_count == 2

    def test_stale_cache_refetches(self, client, sample_records):
        with patch("app.load_records", return_value=sample_records) as mock_load:
            with patch("app.CACHE_TTL_SECONDS", 0):
                client.get("/api/data")
                client.get("/api/data")
            assert mock_load.call_count == 2

    def test_failed_fetch_not_cached(self, client, sample_records):
        with patch("app.load_records", side_effect=SheetFetchError("down")):
            assert client.get("/api/data").status_code == 502
        with patch("app.load_records", return_value=sample_records):
            assert client.get("/api/data").status_code == 200


# ── 404 for unknown routes ───────────────────


class TestNotFound:
    def test_unknown_route_returns_404(self, client):
        assert client.get("/nonexistent").status_code == 404

    def test_unknown_api_route_returns_404(self, client):
        assert client.get("/api/nonexistent").status_code == 404
