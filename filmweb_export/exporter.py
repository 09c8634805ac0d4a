"""CSV export in the IMDb ratings layout.

Files written to the output directory:
  ratings.csv    every title, plus Favorited/Watchlist flag columns
  generic.csv    rated titles that are not favorites
  favorited.csv  favorite titles
  want2see.csv   titles without a rating
"""

from __future__ import annotations

import csv
import io
import logging
import os
import tempfile
from collections.abc import Sequence
from pathlib import Path

from filmweb_export.models import ListKind, RatingRecord

logger = logging.getLogger(__name__)

IMDB_COLUMNS = (
    "Const",
    "Your Rating",
    "Date Rated",
    "Title",
    "URL",
    "Title Type",
    "IMDb Rating",
    "Runtime (mins)",
    "Year",
    "Genres",
    "Num Votes",
    "Release Date",
    "Directors",
)
FLAG_COLUMNS = ("Favorited", "Watchlist")

RATINGS_FILE = "ratings.csv"
GENERIC_FILE = "generic.csv"
FAVORITED_FILE = "favorited.csv"
WANT2SEE_FILE = "want2see.csv"


def _imdb_row(record: RatingRecord) -> list[str]:
    row = dict.fromkeys(IMDB_COLUMNS, "")
    row["Const"] = str(record.external_id)
    if record.user_rating is not None:
        row["Your Rating"] = str(record.user_rating)
    if record.rated_at is not None:
        row["Date Rated"] = record.rated_at.isoformat()
    row["Title"] = record.export_title
    row["URL"] = record.url or ""
    row["Title Type"] = record.media_kind.value
    if record.year is not None:
        row["Year"] = str(record.year)
    return [row[column] for column in IMDB_COLUMNS]


def _flag(record: RatingRecord, kind: ListKind) -> str:
    return "true" if kind in record.lists else "false"


def _write_csv(header: Sequence[str], rows) -> bytes:
    buf = io.StringIO(newline="")
    writer = csv.writer(buf)
    writer.writerow(header)
    writer.writerows(rows)
    return buf.getvalue().encode("utf-8")


def export(dataset: Sequence[RatingRecord]) -> bytes:
    """Serialize the frozen dataset, one row per title, in dataset order."""
    rows = (
        _imdb_row(r) + [_flag(r, ListKind.FAVORITED), _flag(r, ListKind.WATCHLIST)]
        for r in dataset
    )
    return _write_csv(IMDB_COLUMNS + FLAG_COLUMNS, rows)


def _group_of(record: RatingRecord) -> str:
    if ListKind.FAVORITED in record.lists:
        return FAVORITED_FILE
    if record.user_rating is not None:
        return GENERIC_FILE
    return WANT2SEE_FILE


def export_groups(dataset: Sequence[RatingRecord]) -> dict[str, bytes]:
    """Split the dataset into favorited/generic/want2see files.

    Every title lands in exactly one file; each file keeps dataset order.
    """
    groups: dict[str, list[list[str]]] = {
        GENERIC_FILE: [],
        FAVORITED_FILE: [],
        WANT2SEE_FILE: [],
    }
    for record in dataset:
        groups[_group_of(record)].append(_imdb_row(record))
    return {name: _write_csv(IMDB_COLUMNS, rows) for name, rows in groups.items()}


def _write_temp(path: Path, data: bytes) -> str:
    """Write ``data`` to a temporary file next to ``path`` and return its name."""
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
    except BaseException:
        os.unlink(tmp)
        raise
    return tmp


def write_exports(dataset: Sequence[RatingRecord], output_dir: Path) -> list[Path]:
    """Write all export files.

    Every file is staged as a temporary file first and only then moved into
    place, so a failed write leaves the previous export untouched.

    Returns:
        Paths written, ratings.csv first.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    files = {RATINGS_FILE: export(dataset)}
    files.update(export_groups(dataset))

    staged: list[tuple[str, Path]] = []
    try:
        for name, data in files.items():
            path = output_dir / name
            staged.append((_write_temp(path, data), path))
    except BaseException:
        for tmp, _ in staged:
            os.unlink(tmp)
        raise

    for tmp, path in staged:
        os.replace(tmp, path)
    logger.info("Wrote %d titles to %s", len(dataset), output_dir)
    return [path for _, path in staged]
