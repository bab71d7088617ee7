"""Tests for bookstats_viz.py PNG rendering."""

from __future__ import annotations

from bookstats_viz import plot_monthly, render_charts
from helpers import make_record


class TestRenderCharts:
    def test_writes_all_charts(self, sample_records, tmp_path):
        paths = render_charts(sample_records, tmp_path / "charts")
        assert [p.name for p in paths] == [
            "languages.png", "monthly.png", "durations.png", "authors.png",
        ]
        for p in paths:
            assert p.exists()
            assert p.read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"

    def test_skips_charts_without_data(self, tmp_path):
        records = [make_record(start=None, finish=None, author="")]
        paths = render_charts(records, tmp_path)
        assert [p.name for p in paths] == ["languages.png"]

    def test_empty_records(self, tmp_path):
        assert render_charts([], tmp_path) == []


class TestPlotMonthly:
    def test_no_finished_books(self, tmp_path):
        assert plot_monthly([make_record(finish=None)], tmp_path / "m.png") is None
