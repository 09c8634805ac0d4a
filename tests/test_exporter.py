"""Tests for the CSV exporter."""

import csv
import io
from datetime import date

import pytest

from filmweb_export import exporter as exporter_module
from filmweb_export.exporter import (
    FAVORITED_FILE,
    GENERIC_FILE,
    IMDB_COLUMNS,
    RATINGS_FILE,
    WANT2SEE_FILE,
    export,
    export_groups,
    write_exports,
)
from filmweb_export.models import ListKind, MediaKind, RatingRecord


def _rows(data: bytes) -> list[dict]:
    return list(csv.DictReader(io.StringIO(data.decode("utf-8"))))


DATASET = (
    RatingRecord(
        external_id=628,
        title="Matrix",
        original_title="The Matrix",
        media_kind=MediaKind.MOVIE,
        lists=frozenset({ListKind.RATED, ListKind.FAVORITED}),
        user_rating=8,
        rated_at=date(2021, 3, 14),
        year=1999,
        url="https://www.filmweb.pl/film/Matrix-1999-628",
    ),
    RatingRecord(
        external_id=1039,
        title='Pulp Fiction, or "the one with the briefcase"',
        media_kind=MediaKind.MOVIE,
        lists=frozenset({ListKind.RATED}),
        user_rating=10,
    ),
    RatingRecord(
        external_id=94331,
        title="Miasteczko South Park",
        media_kind=MediaKind.SERIES,
        lists=frozenset({ListKind.WATCHLIST}),
    ),
)


class TestExport:
    def test_header(self):
        header = export(DATASET).decode("utf-8").splitlines()[0]
        assert header == (
            "Const,Your Rating,Date Rated,Title,URL,Title Type,IMDb Rating,"
            "Runtime (mins),Year,Genres,Num Votes,Release Date,Directors,"
            "Favorited,Watchlist"
        )

    def test_rows(self):
        rows = _rows(export(DATASET))

        assert [r["Const"] for r in rows] == ["628", "1039", "94331"]
        matrix = rows[0]
        assert matrix["Your Rating"] == "8"
        assert matrix["Date Rated"] == "2021-03-14"
        assert matrix["Title"] == "The Matrix"
        assert matrix["Title Type"] == "movie"
        assert matrix["Year"] == "1999"
        assert matrix["Favorited"] == "true"
        assert matrix["Watchlist"] == "false"

    def test_blank_absent_values(self):
        series = _rows(export(DATASET))[2]

        assert series["Your Rating"] == ""
        assert series["Date Rated"] == ""
        assert series["URL"] == ""
        assert series["Title Type"] == "tvSeries"
        assert series["Watchlist"] == "true"

    def test_quoting(self):
        text = export(DATASET).decode("utf-8")
        assert '"Pulp Fiction, or ""the one with the briefcase"""' in text
        assert _rows(export(DATASET))[1]["Title"] == 'Pulp Fiction, or "the one with the briefcase"'

    def test_empty_dataset(self):
        assert _rows(export(())) == []
        assert export(()).startswith(b"Const,")

    def test_deterministic(self):
        assert export(DATASET) == export(tuple(DATASET))


class TestExportGroups:
    def test_every_title_in_one_group(self):
        groups = export_groups(DATASET)

        assert set(groups) == {GENERIC_FILE, FAVORITED_FILE, WANT2SEE_FILE}
        assert [r["Const"] for r in _rows(groups[FAVORITED_FILE])] == ["628"]
        assert [r["Const"] for r in _rows(groups[GENERIC_FILE])] == ["1039"]
        assert [r["Const"] for r in _rows(groups[WANT2SEE_FILE])] == ["94331"]

    def test_imdb_columns_only(self):
        for data in export_groups(DATASET).values():
            reader = csv.reader(io.StringIO(data.decode("utf-8")))
            assert tuple(next(reader)) == IMDB_COLUMNS


class TestWriteExports:
    def test_writes_all_files(self, tmp_path):
        out = tmp_path / "exports"
        paths = write_exports(DATASET, out)

        assert [p.name for p in paths] == [RATINGS_FILE, GENERIC_FILE, FAVORITED_FILE, WANT2SEE_FILE]
        assert (out / RATINGS_FILE).read_bytes() == export(DATASET)
        assert sorted(p.name for p in out.iterdir()) == sorted(p.name for p in paths)

    def test_overwrites_previous_export(self, tmp_path):
        write_exports(DATASET, tmp_path)
        write_exports(DATASET[:1], tmp_path)

        assert len(_rows((tmp_path / RATINGS_FILE).read_bytes())) == 1

    def test_failed_write_keeps_previous_export(self, tmp_path, monkeypatch):
        """A failure while staging one file leaves every old file in place."""
        write_exports(DATASET, tmp_path)
        before = {p.name: p.read_bytes() for p in tmp_path.iterdir()}

        real_write_temp = exporter_module._write_temp
        staged = []

        def fail_third(path, data):
            if len(staged) == 2:
                raise OSError(28, "No space left on device")
            staged.append(path)
            return real_write_temp(path, data)

        monkeypatch.setattr(exporter_module, "_write_temp", fail_third)

        with pytest.raises(OSError):
            write_exports(DATASET[:1], tmp_path)

        assert {p.name: p.read_bytes() for p in tmp_path.iterdir()} == before
