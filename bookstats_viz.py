"""Render static PNG versions of the dashboard charts.

Used by ``bookstats_summary.py --charts``.
"""

from __future__ import annotations

from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from analytics import (
    CHINESE,
    JAPANESE,
    KOREAN,
    LANGUAGE_COLORS,
    OTHER,
    compute_author_counts,
    compute_duration_data,
    compute_language_counts,
    compute_monthly_data,
)
from sheet_parser import ReadingRecord

LANGUAGE_PALETTE = {lang: LANGUAGE_COLORS[lang]["bg"] for lang in (KOREAN, JAPANESE, CHINESE, OTHER)}


def _save(fig, path: Path) -> Path:
    fig.tight_layout()
    fig.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    return path


def plot_language_pie(records: list[ReadingRecord], path: Path) -> Path | None:
    languages = compute_language_counts(records)
    slices = [
        (label, count, color)
        for label, count, color in zip(languages["labels"], languages["counts"], languages["colors"])
        if count
    ]
    if not slices:
        return None
    labels, counts, colors = zip(*slices)

    fig, ax = plt.subplots(figsize=(8, 8))
    ax.pie(counts, labels=labels, colors=colors, autopct="%1.1f%%", startangle=90)
    ax.set_title(f"Books by Language ({languages['total']} books)", fontsize=14, pad=20)
    return _save(fig, path)


def plot_monthly(records: list[ReadingRecord], path: Path) -> Path | None:
    """Books per month as bars with pages per month on a second axis."""
    monthly = compute_monthly_data(records)
    if not monthly["months"]:
        return None
    df = pd.DataFrame({
        "label": monthly["labels"],
        "books": monthly["books"],
        "pages": monthly["pages"],
    })

    fig, ax = plt.subplots(figsize=(15, 8))
    ax.bar(df["label"], df["books"], alpha=0.7, color="#AEC0CF", label="Books Read")
    ax.set_ylabel("Number of Books", fontsize=12)
    ax.set_xlabel("Month", fontsize=12)
    ax.tick_params(axis="x", rotation=45)
    ax.grid(True, alpha=0.3)

    ax2 = ax.twinx()
    ax2.plot(df["label"], df["pages"], color="#9E8472", linewidth=2, linestyle="--", marker="o", label="Pages Read")
    ax2.set_ylabel("Number of Pages", fontsize=12)
    ax2.set_ylim(bottom=0)

    handles = ax.get_legend_handles_labels()[0] + ax2.get_legend_handles_labels()[0]
    ax.legend(handles, [h.get_label() for h in handles], loc="upper left")
    ax.set_title("Books and Pages per Month", fontsize=14, pad=20)
    return _save(fig, path)


def plot_durations(records: list[ReadingRecord], path: Path) -> Path | None:
    durations = compute_duration_data(records)
    if not durations:
        return None
    df = pd.DataFrame(durations)

    fig, ax = plt.subplots(figsize=(12, max(4, 0.35 * len(df))))
    sns.barplot(
        data=df, x="days", y="title", hue="language",
        palette=LANGUAGE_PALETTE, dodge=False, ax=ax,
    )
    ax.set_title("Book Duration", fontsize=14, pad=20)
    ax.set_xlabel("Days", fontsize=12)
    ax.set_ylabel("")
    return _save(fig, path)


def plot_authors(records: list[ReadingRecord], path: Path, top_n: int = 20) -> Path | None:
    authors = compute_author_counts(records)[:top_n]
    if not authors:
        return None
    df = pd.DataFrame(authors)

    fig, ax = plt.subplots(figsize=(10, max(4, 0.35 * len(df))))
    sns.barplot(data=df, x="count", y="author", color="#1976D2", ax=ax)
    ax.set_title(f"Top {len(df)} Authors", fontsize=14, pad=20)
    ax.set_xlabel("Books", fontsize=12)
    ax.set_ylabel("")
    return _save(fig, path)


def render_charts(records: list[ReadingRecord], output_dir: str | Path) -> list[Path]:
    """Render every chart that has data into *output_dir*.

    Returns:
        Paths of the PNG files written, in rendering order.  Charts with
        no data are skipped.
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    rendered = [
        plot_language_pie(records, out / "languages.png"),
        plot_monthly(records, out / "monthly.png"),
        plot_durations(records, out / "durations.png"),
        plot_authors(records, out / "authors.png"),
    ]
    return [p for p in rendered if p is not None]
