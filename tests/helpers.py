"""Shared test helpers for bookstats tests.

Regular functions (not fixtures) that can be imported by any test module.
"""

from __future__ import annotations

from datetime import date

from sheet_parser import ReadingRecord

DEFAULT_HEADER = ["Title", "Language", "Started", "Finished", "Pages", "Author", "URL", "DNF"]


def _quote(value: str) -> str:
    if any(c in value for c in ',"'):
        return '"' + value.replace('"', '""') + '"'
    return value


def make_csv(rows: list[list[str]], header: list[str] | None = None) -> str:
    """Build CSV text from a header and data rows, quoting where needed.

    Args:
        rows: Data rows as lists of cell strings.
        header: Column names; defaults to ``DEFAULT_HEADER``.

    Returns:
        CSV text with ``\\n`` line endings.
    """
    lines = [",".join(_quote(c) for c in (header or DEFAULT_HEADER))]
    lines.extend(",".join(_quote(c) for c in row) for row in rows)
    return "\n".join(lines) + "\n"


def make_record(
    title: str = "Book",
    language: str = "Korean",
    start: str | None = "2024-01-01",
    finish: str | None = "2024-01-10",
    pages: int = 200,
    author: str = "",
    cover_url: str = "",
    did_not_finish: bool = False,
) -> ReadingRecord:
    """Build a ReadingRecord from ISO date strings."""
    return ReadingRecord(
        title=title,
        language=language,
        start_date=date.fromisoformat(start) if start else None,
        finish_date=date.fromisoformat(finish) if finish else None,
        pages=pages,
        author=author,
        cover_url=cover_url,
        did_not_finish=did_not_finish,
    )


SAMPLE_ROWS = [
    ["채식주의자", "Korean", "2024-01-05", "2024-01-20", "192", "Han Kang", "https://img/1.jpg", ""],
    ["ノルウェイの森", "Japanese", "2024-01-15", "2024-02-03", "384", "Murakami Haruki", "", ""],
    ["活着", "Simplified Chinese", "2024-02-10", "2024-02-12", "191", "Yu Hua", "", ""],
    ["Tale, Part \"One\"", "Traditional Chinese", "2023-11-01", "2023-12-01", "1,024", "Jin Yong; Gu Long", "", ""],
    ["Abandoned", "Korean", "2024-03-01", "", "", "Han Kang", "", "yes"],
    ["Reading Now", "Japanese", "2024-03-10", "", "300", "Murakami Haruki, Yoshimoto Banana", "", ""],
    ["Le Petit Prince", "French", "2022-05-01", "2022-05-02", "96", "Saint-Exupéry", "", ""],
]


def sample_csv() -> str:
    """CSV text of a small, realistic reading sheet (``SAMPLE_ROWS``)."""
    return make_csv(SAMPLE_ROWS)
