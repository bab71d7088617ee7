"""Print a reading summary from the tracker sheet and save analytics files.

Usage:
    python bookstats_summary.py --sheet-id <id> [--year 2024] [--charts]
    python bookstats_summary.py --url https://example.com/books.csv

Without --url/--sheet-id the BOOKSTATS_SHEET_CSV_URL and
BOOKSTATS_SHEET_ID environment variables are used.
"""

from __future__ import annotations

import argparse
import logging
import sys

from analytics import (
    compute_author_counts,
    compute_language_counts,
    compute_monthly_data,
    compute_summary_stats,
    extract_years,
    filter_records_by_year,
    print_summary_report,
    resolve_year,
    save_analytics_files,
)
from sheet_fetcher import SheetConfigError, SheetFetchError, load_records
from sheet_parser import MissingColumnError

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Summarize reading stats from a spreadsheet CSV export")
    parser.add_argument("--url", help="CSV export URL of the sheet")
    parser.add_argument("--sheet-id", help="Google Sheet id (used when --url is not given)")
    parser.add_argument("--year", default="all", help='Year to summarize, or "all" (default)')
    parser.add_argument("--output-dir", default="reading_analytics", help="Directory for JSON/CSV output")
    parser.add_argument("--charts", action="store_true", help="Also render PNG charts into the output directory")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        records = load_records(csv_url=args.url, sheet_id=args.sheet_id)
    except (SheetConfigError, SheetFetchError, MissingColumnError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if not records:
        print("No data found in the sheet.", file=sys.stderr)
        sys.exit(1)

    try:
        selected_year = resolve_year(args.year, extract_years(records))
    except ValueError:
        print(f"Error: invalid year {args.year!r}", file=sys.stderr)
        sys.exit(1)

    selected = filter_records_by_year(records, selected_year)
    stats = compute_summary_stats(selected)
    languages = compute_language_counts(selected)
    authors = compute_author_counts(selected)
    monthly = compute_monthly_data(selected)

    print_summary_report(stats, languages, authors, selected_year)
    save_analytics_files(selected, monthly, authors, args.output_dir)
    print(f"\nAnalytics data has been saved to the '{args.output_dir}' directory:")
    print("1. records.json/csv - One row per book")
    print("2. monthly.json/csv - Books and pages per finishing month")
    print("3. authors.json/csv - Books per author")

    if args.charts:
        from bookstats_viz import render_charts

        paths = render_charts(selected, args.output_dir)
        print(f"\nCharts saved: {', '.join(p.name for p in paths)}")


if __name__ == "__main__":
    main()
