"""Core data processing for reading-tracker analytics.

Derives every dashboard widget's data from parsed ``ReadingRecord``s.
Used by both the CLI (bookstats_summary.py) and the web dashboard (app.py).
"""

from __future__ import annotations

import calendar
import csv
import json
import logging
import math
import os
import re
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Iterator

from sheet_parser import (
    CHINESE,
    JAPANESE,
    KOREAN,
    OTHER,
    ReadingRecord,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Languages and colours
# ---------------------------------------------------------------------------
TIMELINE_LANGUAGES = (KOREAN, JAPANESE, CHINESE)

LANGUAGE_COLORS = {
    KOREAN: {"bg": "#89CFF0", "border": "#6FB7D9"},
    JAPANESE: {"bg": "#FFBF00", "border": "#D9A200"},
    "Traditional Chinese": {"bg": "#9F2B68", "border": "#872454"},
    "Simplified Chinese": {"bg": "#F8C8DC", "border": "#D9AEC1"},
    CHINESE: {"bg": "#F8C8DC", "border": "#D9AEC1"},
    OTHER: {"bg": "#999999", "border": "#7F7F7F"},
}

# Pie slices in display order: (label, substrings that select the slice).
# The first matching slice wins.
_PIE_SLICES = [
    (KOREAN, ("korean",)),
    (JAPANESE, ("japanese",)),
    ("Traditional Chinese", ("traditional",)),
    ("Simplified Chinese", ("simplified",)),
    (CHINESE, ("chinese",)),
    (OTHER, ()),
]

DEFAULT_MAX_MONTHS = 24
TIMELINE_MARKER_TARGET = 8
TIMELINE_MIN_WIDTH_PCT = 1.5
DAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]

_AUTHOR_SEPARATORS = re.compile(r"[,;]+")


def _pie_slice(language: str) -> str:
    lang = language.lower()
    for label, needles in _PIE_SLICES:
        if not needles or any(n in lang for n in needles):
            return label
    return OTHER


def compute_language_counts(records: list[ReadingRecord]) -> dict[str, Any]:
    """Count books per language for the pie chart.

    Chinese is split into its Traditional and Simplified variants where
    the cell says so; a bare "Chinese" gets its own slice.

    Args:
        records: Reading records to count.

    Returns:
        Dict with keys:
            - labels: slice labels in display order.
            - counts: parallel list of ints.
            - colors / borders: parallel lists of hex colours.
            - total: int, number of records counted.
    """
    counter = Counter(_pie_slice(r.language) for r in records)
    labels = [label for label, _ in _PIE_SLICES]
    return {
        "labels": labels,
        "counts": [counter.get(label, 0) for label in labels],
        "colors": [LANGUAGE_COLORS[label]["bg"] for label in labels],
        "borders": [LANGUAGE_COLORS[label]["border"] for label in labels],
        "total": len(records),
    }


# ---------------------------------------------------------------------------
# Year filter
# ---------------------------------------------------------------------------

def extract_years(records: list[ReadingRecord]) -> list[int]:
    """Return the distinct years records are filed under, newest first."""
    return sorted({r.year for r in records if r.year is not None}, reverse=True)


def resolve_year(year: int | str | None, years: list[int]) -> str:
    """Turn a requested year into the selection key used by the dashboard.

    ``None`` selects the most recent year (or "all" when no record has a
    date).  "all" is passed through.

    Raises:
        ValueError: If *year* is neither "all" nor an integer year.
    """
    if year is None or year == "":
        return str(years[0]) if years else "all"
    if str(year).lower() == "all":
        return "all"
    return str(int(year))


def filter_records_by_year(
    records: list[ReadingRecord], year: int | str | None
) -> list[ReadingRecord]:
    """Keep the records filed under *year*; "all" or None keeps everything."""
    if year is None or str(year).lower() == "all":
        return list(records)
    wanted = int(year)
    return [r for r in records if r.year == wanted]


# ---------------------------------------------------------------------------
# Rolling average helpers (pure Python, no pandas)
# ---------------------------------------------------------------------------

def _rolling_avg(values: list[float], window: int) -> list[float]:
    """Compute rolling average, using available values when the window is not yet full.

    Args:
        values: Numeric series to smooth.
        window: Maximum number of trailing values to average.

    Returns:
        List of floats the same length as *values*.
    """
    result = []
    for i in range(len(values)):
        start = max(0, i - window + 1)
        w = values[start : i + 1]
        result.append(sum(w) / len(w))
    return result


def _format_rolling(values: list[float], window: int) -> list[float]:
    return [round(v, 2) for v in _rolling_avg(values, window)]


# ---------------------------------------------------------------------------
# Monthly totals
# ---------------------------------------------------------------------------

def _build_monthly_buckets(records: list[ReadingRecord]) -> dict[str, dict]:
    """Group finished records into "YYYY-MM" buckets of book and page totals."""
    monthly: dict[str, dict] = {}
    for r in records:
        if r.finish_date is None:
            continue
        key = f"{r.finish_date.year}-{r.finish_date.month:02d}"
        if key not in monthly:
            monthly[key] = {"books": 0, "pages": 0}
        monthly[key]["books"] += 1
        monthly[key]["pages"] += r.pages
    return monthly


def _month_label(month_key: str) -> str:
    year, month = month_key.split("-")
    return date(int(year), int(month), 1).strftime("%b %y")


def compute_monthly_data(
    records: list[ReadingRecord],
    max_months: int = DEFAULT_MAX_MONTHS,
) -> dict[str, Any]:
    """Aggregate books and pages per finishing month for the bar chart.

    Only months that have at least one finished book appear.  The most
    recent *max_months* months are kept, in chronological order.

    Args:
        records: Reading records; those without a finish date are ignored.
        max_months: Number of most recent months to keep.

    Returns:
        Dict with keys: months ("YYYY-MM"), labels ("Jan 24"), books,
        pages, and books_avg_3m (3-month rolling average of books).
    """
    monthly = _build_monthly_buckets(records)
    months = sorted(monthly.keys())
    if max_months > 0:
        months = months[-max_months:]
    books = [monthly[m]["books"] for m in months]
    return {
        "months": months,
        "labels": [_month_label(m) for m in months],
        "books": books,
        "pages": [monthly[m]["pages"] for m in months],
        "books_avg_3m": _format_rolling(books, 3),
    }


# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------

def compute_duration(start: date, finish: date) -> int:
    """Whole days between *start* and *finish*, never less than one."""
    return max(1, (finish - start).days)


def _days_label(days: int) -> str:
    return "1 day" if days == 1 else f"{days} days"


def compute_duration_data(records: list[ReadingRecord]) -> list[dict]:
    """Reading time per finished book for the duration chart.

    Args:
        records: Reading records; only those with both dates are used.

    Returns:
        List of dicts (title, language, days, label, width_pct), longest
        first.  ``width_pct`` is the bar length relative to the longest
        book.  Ties keep sheet order.
    """
    rows = [
        {
            "title": r.title,
            "language": r.normalized_language,
            "days": compute_duration(r.start_date, r.finish_date),
        }
        for r in records
        if r.start_date is not None and r.finish_date is not None
    ]
    rows.sort(key=lambda row: row["days"], reverse=True)
    if not rows:
        return []
    max_days = rows[0]["days"]
    for row in rows:
        row["label"] = _days_label(row["days"])
        row["width_pct"] = round(row["days"] / max_days * 100, 2)
    return rows


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------

def _occupancy_end(record: ReadingRecord, today: date) -> date | None:
    """Last day a record occupies: its finish date, or today while in progress."""
    if record.finish_date is not None:
        return record.finish_date
    if record.is_in_progress:
        return today
    return None


def record_occupies_day(record: ReadingRecord, day: date, today: date | None = None) -> bool:
    """Whether *record* was being read on *day*.

    A record occupies every day from its start date through its finish
    date, both inclusive.  A book still in progress runs through *today*.
    Records without a start date, and abandoned records without a finish
    date, occupy no days.
    """
    if record.start_date is None:
        return False
    end = _occupancy_end(record, today or date.today())
    if end is None:
        return False
    return record.start_date <= day <= end


def _iter_months(start: date, end: date) -> Iterator[tuple[int, int]]:
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        yield year, month
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)


def available_calendar_months(
    records: list[ReadingRecord], today: date | None = None
) -> list[str]:
    """Every "YYYY-MM" touched by some record's reading span, sorted."""
    today = today or date.today()
    months: set[str] = set()
    for r in records:
        if r.start_date is None:
            continue
        end = _occupancy_end(r, today)
        if end is None or end < r.start_date:
            continue
        for year, month in _iter_months(r.start_date, end):
            months.add(f"{year}-{month:02d}")
    return sorted(months)


def default_calendar_month(available: list[str], today: date | None = None) -> str:
    """The current month when it has data, else the most recent month that does."""
    today = today or date.today()
    current = f"{today.year}-{today.month:02d}"
    if current in available or not available:
        return current
    return available[-1]


def parse_month_key(month_key: str) -> tuple[int, int]:
    """Parse "YYYY-MM" into (year, month).

    Raises:
        ValueError: If the key is malformed or the month is out of range.
    """
    dt = datetime.strptime(month_key, "%Y-%m")
    return dt.year, dt.month


def _calendar_marker(record: ReadingRecord, day: date) -> str:
    is_start = record.start_date == day
    is_end = record.finish_date == day
    if is_start and is_end:
        return "single"
    if is_start:
        return "start"
    if is_end:
        return "end"
    return "middle"


def compute_calendar_month(
    records: list[ReadingRecord],
    year: int,
    month: int,
    today: date | None = None,
) -> dict[str, Any]:
    """Lay out one month as a Sunday-first calendar with the books read each day.

    Args:
        records: Reading records to place on the calendar.
        year: Calendar year.
        month: Calendar month (1-12).
        today: Date treated as "today" (defaults to the real date); in
            progress books run through it and its cell is flagged.

    Returns:
        Dict with keys:
            - month: "YYYY-MM"; label: e.g. "January 2024".
            - day_names: Sunday-first weekday abbreviations.
            - leading_blanks: empty cells before the 1st.
            - days: one dict per day (day, date, is_today, books), where
              each book has title, language, start_date, finish_date,
              cover_url and marker (single/start/end/middle).
    """
    today = today or date.today()
    first_weekday, days_in_month = calendar.monthrange(year, month)

    days = []
    for day_num in range(1, days_in_month + 1):
        day = date(year, month, day_num)
        books = [
            {
                "title": r.title,
                "language": r.normalized_language.lower(),
                "start_date": r.start_date.isoformat(),
                "finish_date": r.finish_date.isoformat() if r.finish_date else None,
                "cover_url": r.cover_url,
                "marker": _calendar_marker(r, day),
            }
            for r in records
            if record_occupies_day(r, day, today)
        ]
        days.append({
            "day": day_num,
            "date": day.isoformat(),
            "is_today": day == today,
            "books": books,
        })

    return {
        "month": f"{year}-{month:02d}",
        "label": date(year, month, 1).strftime("%B %Y"),
        "day_names": DAY_NAMES,
        # calendar.monthrange counts weekdays from Monday
        "leading_blanks": (first_weekday + 1) % 7,
        "days": days,
    }


def compute_calendar_data(
    records: list[ReadingRecord],
    month_key: str | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """Calendar widget data: month choices plus the selected month's grid.

    Raises:
        ValueError: If *month_key* is given but not a valid "YYYY-MM".
    """
    today = today or date.today()
    available = available_calendar_months(records, today)
    year, month = parse_month_key(month_key or default_calendar_month(available, today))
    selected = f"{year}-{month:02d}"
    return {
        "available_months": [
            {"key": m, "label": date(*parse_month_key(m), 1).strftime("%B %Y")}
            for m in available
        ],
        "selected": selected,
        "grid": compute_calendar_month(records, year, month, today),
    }


# ---------------------------------------------------------------------------
# Authors
# ---------------------------------------------------------------------------

def split_authors(author_field: str) -> list[str]:
    """Split an author cell on commas/semicolons into trimmed, non-empty names."""
    return [a.strip() for a in _AUTHOR_SEPARATORS.split(author_field) if a.strip()]


def compute_author_counts(records: list[ReadingRecord]) -> list[dict]:
    """Count books per author for the authors table.

    Returns:
        List of dicts (author, count), most books first; equal counts are
        ordered alphabetically, ignoring case.
    """
    counter: Counter[str] = Counter()
    for r in records:
        counter.update(split_authors(r.author))
    ranked = sorted(counter.items(), key=lambda kv: (-kv[1], kv[0].casefold(), kv[0]))
    return [{"author": author, "count": count} for author, count in ranked]


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------

def _short_date(d: date) -> str:
    return f"{d:%b} {d.day}"


def _timeline_markers(min_date: date, total_days: int) -> list[dict]:
    interval = max(1, math.ceil(total_days / TIMELINE_MARKER_TARGET))
    return [
        {
            "date": (min_date + timedelta(days=offset)).isoformat(),
            "label": _short_date(min_date + timedelta(days=offset)),
            "left_pct": round(offset / total_days * 100, 2),
        }
        for offset in range(0, total_days + 1, interval)
    ]


def compute_timeline_data(records: list[ReadingRecord]) -> dict[str, Any]:
    """Place finished books on a per-language timeline.

    Books with both dates are grouped into Korean, Japanese and Chinese
    rows (other languages are left off), each row sorted by start date.
    Positions are percentages of the span from the earliest start to the
    latest finish.

    Returns:
        Dict with keys min_date, max_date (ISO strings or None),
        total_days, markers (axis labels), and rows: list of dicts
        (language, books) where each book has title, start_date,
        finish_date, cover_url, left_pct and width_pct.  Empty rows are
        omitted.
    """
    dated = [r for r in records if r.start_date is not None and r.finish_date is not None]
    if not dated:
        return {"min_date": None, "max_date": None, "total_days": 0, "markers": [], "rows": []}

    min_date = min(r.start_date for r in dated)
    max_date = max(r.finish_date for r in dated)
    total_days = max(1, (max_date - min_date).days)

    rows = []
    for language in TIMELINE_LANGUAGES:
        books = sorted(
            (r for r in dated if r.normalized_language == language),
            key=lambda r: r.start_date,
        )
        if not books:
            continue
        rows.append({
            "language": language,
            "books": [
                {
                    "title": r.title,
                    "start_date": r.start_date.isoformat(),
                    "finish_date": r.finish_date.isoformat(),
                    "cover_url": r.cover_url,
                    "left_pct": round((r.start_date - min_date).days / total_days * 100, 2),
                    "width_pct": round(
                        max(
                            TIMELINE_MIN_WIDTH_PCT,
                            (r.finish_date - r.start_date).days / total_days * 100,
                        ),
                        2,
                    ),
                }
                for r in books
            ],
        })

    return {
        "min_date": min_date.isoformat(),
        "max_date": max_date.isoformat(),
        "total_days": total_days,
        "markers": _timeline_markers(min_date, total_days),
        "rows": rows,
    }


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

def compute_summary_stats(records: list[ReadingRecord]) -> dict[str, Any]:
    """Compute high-level summary statistics.

    Returns:
        Dict with keys: total_books, finished_books, in_progress,
        did_not_finish, total_pages, avg_days_per_book (float or None),
        first_finish, last_finish (ISO strings or None), top_language
        and top_author (str or None).
    """
    finished = [r for r in records if r.finish_date is not None]
    durations = [
        compute_duration(r.start_date, r.finish_date)
        for r in finished
        if r.start_date is not None
    ]
    languages = Counter(r.normalized_language for r in records)
    authors = compute_author_counts(records)

    return {
        "total_books": len(records),
        "finished_books": len(finished),
        "in_progress": sum(1 for r in records if r.is_in_progress),
        "did_not_finish": sum(1 for r in records if r.did_not_finish),
        "total_pages": sum(r.pages for r in records),
        "avg_days_per_book": round(sum(durations) / len(durations), 1) if durations else None,
        "first_finish": min(r.finish_date for r in finished).isoformat() if finished else None,
        "last_finish": max(r.finish_date for r in finished).isoformat() if finished else None,
        "top_language": languages.most_common(1)[0][0] if languages else None,
        "top_author": authors[0]["author"] if authors else None,
    }


def build_dashboard_payload(
    records: list[ReadingRecord],
    year: int | str | None = None,
    month: str | None = None,
    today: date | None = None,
    max_months: int = DEFAULT_MAX_MONTHS,
) -> dict[str, Any]:
    """One-call entry point: compute every widget for the dashboard.

    Args:
        records: All parsed reading records.
        year: Year to show; None selects the most recent year, "all"
            shows everything.
        month: Calendar month "YYYY-MM"; None picks the default month.
        today: Date treated as "today"; defaults to the real date.
        max_months: Months kept in the monthly chart.

    Returns:
        Dict with keys: generated_at, years, selected_year, total_books,
        total_pages, summary, languages, monthly, durations, timeline,
        authors, calendar.

    Raises:
        ValueError: If *year* or *month* is malformed.
    """
    today = today or date.today()
    years = extract_years(records)
    selected_year = resolve_year(year, years)
    selected = filter_records_by_year(records, selected_year)

    return {
        "generated_at": datetime.now().isoformat(),
        "years": years,
        "selected_year": selected_year,
        "total_books": len(selected),
        "total_pages": sum(r.pages for r in selected),
        "summary": compute_summary_stats(selected),
        "languages": compute_language_counts(selected),
        "monthly": compute_monthly_data(selected, max_months=max_months),
        "durations": compute_duration_data(selected),
        "timeline": compute_timeline_data(selected),
        "authors": compute_author_counts(selected),
        "calendar": compute_calendar_data(selected, month, today),
    }


# ---------------------------------------------------------------------------
# CLI helpers (bookstats_summary.py)
# ---------------------------------------------------------------------------

def _write_csv(path: str, fieldnames: list[str], rows: Iterable[dict]) -> None:
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)


def save_analytics_files(
    records: list[ReadingRecord],
    monthly: dict[str, Any],
    authors: list[dict],
    output_dir: str = "reading_analytics",
) -> None:
    """Write records, monthly totals and author counts as JSON and CSV.

    Creates *output_dir* if needed and writes records.json/csv,
    monthly.json/csv and authors.json/csv.
    """
    os.makedirs(output_dir, exist_ok=True)

    record_dicts = [r.to_dict() for r in records]
    monthly_rows = [
        {"month": m, "books": b, "pages": p}
        for m, b, p in zip(monthly["months"], monthly["books"], monthly["pages"])
    ]

    with open(f"{output_dir}/records.json", "w", encoding="utf-8") as f:
        json.dump(record_dicts, f, indent=2, ensure_ascii=False)
    with open(f"{output_dir}/monthly.json", "w", encoding="utf-8") as f:
        json.dump(monthly_rows, f, indent=2)
    with open(f"{output_dir}/authors.json", "w", encoding="utf-8") as f:
        json.dump(authors, f, indent=2, ensure_ascii=False)

    _write_csv(
        f"{output_dir}/records.csv",
        ["title", "language", "normalized_language", "start_date", "finish_date",
         "pages", "author", "cover_url", "did_not_finish"],
        record_dicts,
    )
    _write_csv(f"{output_dir}/monthly.csv", ["month", "books", "pages"], monthly_rows)
    _write_csv(f"{output_dir}/authors.csv", ["author", "count"], authors)
    logger.info("Saved analytics files to %s", output_dir)


def print_summary_report(
    stats: dict[str, Any],
    languages: dict[str, Any],
    authors: list[dict],
    selected_year: str = "all",
) -> None:
    """Print the CLI summary report to stdout."""
    heading = "All Time" if selected_year == "all" else selected_year
    print(f"\n{'=' * 60}")
    print(f"Reading Summary ({heading})")
    print(f"{'=' * 60}")
    print(f"Books: {stats['total_books']:,}")
    print(f"Finished: {stats['finished_books']:,}")
    print(f"In Progress: {stats['in_progress']:,}")
    print(f"Did Not Finish: {stats['did_not_finish']:,}")
    print(f"Pages: {stats['total_pages']:,}")

    if stats["avg_days_per_book"] is not None:
        print(f"Average Days per Book: {stats['avg_days_per_book']:.1f}")
    if stats["first_finish"] and stats["last_finish"]:
        print(f"First Finish: {stats['first_finish']}")
        print(f"Last Finish: {stats['last_finish']}")

    print("\nBooks by Language:")
    for label, count in zip(languages["labels"], languages["counts"]):
        if count:
            print(f"  {label}: {count:,}")

    if authors:
        print("\nTop 10 Authors:")
        for row in authors[:10]:
            print(f"  {row['author']}: {row['count']:,}")
    print(f"{'=' * 60}")
