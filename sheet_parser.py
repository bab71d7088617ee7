"""CSV parsing for the reading-tracker spreadsheet export.

Turns the raw CSV text of the exported sheet into ``ReadingRecord``
objects.  Used by the web dashboard (app.py) and the CLI
(bookstats_summary.py) through ``sheet_fetcher.load_records``.
"""

from __future__ import annotations

import csv
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Column names (matched after trimming and lower-casing the header)
# ---------------------------------------------------------------------------
LANGUAGE_COLUMN = "language"
TITLE_COLUMN = "title"
STARTED_COLUMN = "started"
FINISHED_COLUMN = "finished"
PAGES_COLUMN = "pages"
AUTHOR_COLUMNS = ("author", "authors")
URL_COLUMN = "url"
DNF_COLUMN = "dnf"

DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%m/%d/%Y", "%d.%m.%Y")
DNF_TRUE_VALUES = frozenset({"true", "yes", "y", "1", "x", "dnf"})

_PAGES_RE = re.compile(r"^\d{1,3}(,\d{3})+$|^\d+$")

KOREAN = "Korean"
JAPANESE = "Japanese"
CHINESE = "Chinese"
OTHER = "Other"


def normalize_language(language: str) -> str:
    """Classify a free-text language cell into Korean/Japanese/Chinese/Other.

    Matching is a case-insensitive substring test, so "Korean (webnovel)"
    is Korean and "Simplified" alone counts as Chinese.
    """
    lang = language.lower()
    if "korean" in lang:
        return KOREAN
    if "japanese" in lang:
        return JAPANESE
    if "traditional" in lang or "simplified" in lang or "chinese" in lang:
        return CHINESE
    return OTHER


class MissingColumnError(ValueError):
    """Raised when a required column is absent from the sheet header."""


@dataclass(frozen=True)
class ReadingRecord:
    """One spreadsheet row describing a single book read."""

    title: str
    language: str
    start_date: date | None = None
    finish_date: date | None = None
    pages: int = 0
    author: str = ""
    cover_url: str = ""
    did_not_finish: bool = False

    def __post_init__(self) -> None:
        if self.pages < 0:
            raise ValueError(f"pages must be non-negative, got {self.pages}")
        if (
            self.start_date is not None
            and self.finish_date is not None
            and self.finish_date < self.start_date
        ):
            raise ValueError(
                f"finish date {self.finish_date} is before start date {self.start_date}"
            )

    @property
    def normalized_language(self) -> str:
        return normalize_language(self.language)

    @property
    def is_in_progress(self) -> bool:
        """Started, not finished, and not abandoned."""
        return (
            self.start_date is not None
            and self.finish_date is None
            and not self.did_not_finish
        )

    @property
    def year(self) -> int | None:
        """Year the record is filed under: finish year, else start year."""
        if self.finish_date is not None:
            return self.finish_date.year
        if self.start_date is not None:
            return self.start_date.year
        return None

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "language": self.language,
            "normalized_language": self.normalized_language,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "finish_date": self.finish_date.isoformat() if self.finish_date else None,
            "pages": self.pages,
            "author": self.author,
            "cover_url": self.cover_url,
            "did_not_finish": self.did_not_finish,
        }


def parse_csv_line(line: str) -> list[str]:
    """Split one CSV line into fields, honouring double-quote escaping.

    Commas inside a quoted section are kept as text, and a doubled quote
    (``""``) inside a quoted section is a literal quote character.

    Args:
        line: A single line of CSV text without its trailing newline.

    Returns:
        List of raw field strings (untrimmed).  Always has at least one
        element, so an empty line yields ``[""]``.
    """
    return next(csv.reader([line]), None) or [""]


def parse_csv(text: str) -> list[list[str]]:
    """Parse CSV text into rows of fields, skipping blank lines.

    Args:
        text: Full CSV document.  Both ``\\n`` and ``\\r\\n`` line endings
            are accepted.  Quoted fields may not span lines.

    Returns:
        List of rows, each a list of field strings.
    """
    rows = []
    for line in text.strip().splitlines():
        if line.strip():
            rows.append(parse_csv_line(line))
    return rows


def build_column_index(header: list[str]) -> dict[str, int]:
    """Map trimmed, lower-cased header names to their first column index.

    A byte-order mark left on the first header cell is dropped.
    """
    index: dict[str, int] = {}
    for i, name in enumerate(header):
        index.setdefault(name.lstrip("\ufeff").strip().lower(), i)
    return index


def parse_date(value: str) -> date | None:
    """Parse a sheet date cell, returning None when blank or unrecognised."""
    value = value.strip()
    if not value:
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    logger.warning("Unrecognised date %r; treating as missing", value)
    return None


def parse_pages(value: str) -> int:
    """Parse a page count cell; blanks and non-numeric text count as zero."""
    value = value.strip()
    if not _PAGES_RE.match(value):
        return 0
    return int(value.replace(",", ""))


def parse_dnf(value: str) -> bool:
    return value.strip().lower() in DNF_TRUE_VALUES


def _cell(values: list[str], index: int | None) -> str:
    """Return the trimmed cell at *index*, or "" when absent."""
    if index is None or index >= len(values):
        return ""
    return values[index].strip()


def _row_to_record(
    values: list[str],
    columns: dict[str, int | None],
    row_number: int,
) -> ReadingRecord | None:
    """Build a record from one data row, or None if the row must be skipped."""
    language = _cell(values, columns[LANGUAGE_COLUMN])
    if not language:
        return None

    title = _cell(values, columns[TITLE_COLUMN]) or f"Book {row_number}"
    start_date = parse_date(_cell(values, columns[STARTED_COLUMN]))
    finish_date = parse_date(_cell(values, columns[FINISHED_COLUMN]))

    if start_date and finish_date and finish_date < start_date:
        logger.warning(
            "Skipping %r (row %d): finished %s before started %s",
            title, row_number, finish_date, start_date,
        )
        return None

    return ReadingRecord(
        title=title,
        language=language,
        start_date=start_date,
        finish_date=finish_date,
        pages=parse_pages(_cell(values, columns[PAGES_COLUMN])),
        author=_cell(values, columns["author"]),
        cover_url=_cell(values, columns[URL_COLUMN]),
        did_not_finish=parse_dnf(_cell(values, columns[DNF_COLUMN])),
    )


def parse_records(text: str) -> list[ReadingRecord]:
    """Parse the exported sheet into reading records.

    The first non-blank line is the header.  Column lookup is
    case-insensitive; only the ``language`` column is required.  Rows
    with a blank language cell, and rows whose finish date precedes
    their start date, are skipped.

    Args:
        text: Raw CSV text of the sheet export.

    Returns:
        List of ``ReadingRecord`` in sheet order.  Empty when the sheet
        has no data rows.

    Raises:
        MissingColumnError: If the header has no ``language`` column.
    """
    rows = parse_csv(text)
    if len(rows) < 2:
        return []

    index = build_column_index(rows[0])
    if LANGUAGE_COLUMN not in index:
        raise MissingColumnError('Could not find "language" column in the sheet')

    author_index = next(
        (index[name] for name in AUTHOR_COLUMNS if name in index), None
    )
    columns: dict[str, int | None] = {
        LANGUAGE_COLUMN: index[LANGUAGE_COLUMN],
        TITLE_COLUMN: index.get(TITLE_COLUMN),
        STARTED_COLUMN: index.get(STARTED_COLUMN),
        FINISHED_COLUMN: index.get(FINISHED_COLUMN),
        PAGES_COLUMN: index.get(PAGES_COLUMN),
        "author": author_index,
        URL_COLUMN: index.get(URL_COLUMN),
        DNF_COLUMN: index.get(DNF_COLUMN),
    }

    records = []
    for row_number, values in enumerate(rows[1:], 1):
        record = _row_to_record(values, columns, row_number)
        if record is not None:
            records.append(record)

    if len(rows) > 1 and not records:
        logger.warning(
            "Sheet has %d data rows but none produced records. "
            "Check that the language column is filled in.",
            len(rows) - 1,
        )
    return records
