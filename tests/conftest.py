"""Shared fixtures for bookstats tests."""

from __future__ import annotations

from datetime import date
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from helpers import sample_csv
from sheet_parser import parse_records


@pytest.fixture()
def today():
    """A fixed "today" inside the sample data's reading spans."""
    return date(2024, 3, 15)


@pytest.fixture()
def sample_records():
    """Records parsed from the sample sheet in ``helpers.SAMPLE_ROWS``."""
    return parse_records(sample_csv())


@pytest.fixture()
def client(sample_records):
    """TestClient for app.py with the sheet fetch mocked out.

    Patches load_records so no network access is needed and resets the
    module-level cache between tests.
    """
    import app as app_module

    with patch.object(
        app_module, "_cache", {"records": None, "fetched_at": 0.0}
    ):
        with patch("app.load_records", return_value=sample_records):
            with TestClient(app_module.app) as tc:
                yield tc
