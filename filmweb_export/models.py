"""Data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum


class MediaKind(Enum):
    """Title type, valued as the IMDb "Title Type" column."""

    MOVIE = "movie"
    SERIES = "tvSeries"


class ListKind(Enum):
    """Which of the user's lists a title was found on."""

    RATED = "rated"
    FAVORITED = "favorited"
    WATCHLIST = "watchlist"


class Category(Enum):
    """A paginated list on the user's filmweb.pl profile."""

    FILMS = "films"
    SERIALS = "serials"
    FAVORITES = "favorites"
    WATCHLIST = "wantToSee"

    @property
    def path(self) -> str:
        return self.value

    @property
    def list_kind(self) -> ListKind:
        return _LIST_KINDS[self]

    @property
    def media_kind(self) -> MediaKind | None:
        """Kind of every title on the list, None for mixed lists."""
        return _MEDIA_KINDS.get(self)


_LIST_KINDS = {
    Category.FILMS: ListKind.RATED,
    Category.SERIALS: ListKind.RATED,
    Category.FAVORITES: ListKind.FAVORITED,
    Category.WATCHLIST: ListKind.WATCHLIST,
}

_MEDIA_KINDS = {
    Category.FILMS: MediaKind.MOVIE,
    Category.SERIALS: MediaKind.SERIES,
}


@dataclass(frozen=True)
class RatingRecord:
    """One title from the user's lists."""

    external_id: int  # filmweb.pl title id
    title: str  # title as shown on filmweb.pl (usually Polish)
    media_kind: MediaKind
    lists: frozenset[ListKind]
    user_rating: int | None = None  # 1-10, None when not rated
    rated_at: date | None = None
    original_title: str | None = None
    year: int | None = None  # first year for series running over a range
    url: str | None = None

    @property
    def key(self) -> tuple[int, MediaKind]:
        return (self.external_id, self.media_kind)

    @property
    def export_title(self) -> str:
        return self.original_title or self.title


@dataclass(frozen=True)
class VoteDetails:
    """The user's vote on one title, from the logged-in vote API."""

    rate: int | None  # 1-10, None when the title is not rated
    favorite: bool
    voted_at: date | None = None


def _pick(a, b, choose):
    if a is None:
        return b
    if b is None:
        return a
    return choose(a, b)


def merge_records(a: RatingRecord, b: RatingRecord) -> RatingRecord:
    """Merge two records describing the same title.

    Lists are unioned and a present value always wins over a missing one.
    Conflicting values resolve by max/min so the merge is commutative,
    associative and idempotent.

    Raises:
        ValueError: the records have different keys.
    """
    if a.key != b.key:
        raise ValueError(f"cannot merge records {a.key} and {b.key}")
    return RatingRecord(
        external_id=a.external_id,
        title=min(a.title, b.title),
        media_kind=a.media_kind,
        lists=a.lists | b.lists,
        user_rating=_pick(a.user_rating, b.user_rating, max),
        rated_at=_pick(a.rated_at, b.rated_at, max),
        original_title=_pick(a.original_title, b.original_title, min),
        year=_pick(a.year, b.year, min),
        url=_pick(a.url, b.url, min),
    )


@dataclass(frozen=True)
class WorkItem:
    """One page of one list to fetch."""

    category: Category
    page: int  # 1-based

    def __str__(self) -> str:
        return f"{self.category.path}#{self.page}"


@dataclass
class PageResult:
    """Parsed content of one list page."""

    records: tuple[RatingRecord, ...]
    has_next_page: bool


@dataclass
class UserCounts:
    """Title totals shown on the user's profile."""

    rated_films: int
    rated_serials: int
    watchlist: int
    favorites: int

    def expected(self, category: Category) -> int:
        return {
            Category.FILMS: self.rated_films,
            Category.SERIALS: self.rated_serials,
            Category.FAVORITES: self.favorites,
            Category.WATCHLIST: self.watchlist,
        }[category]


@dataclass
class ExportSummary:
    """Outcome of one scheduler run."""

    pages_fetched: int = 0
    pages_degraded: int = 0
    titles_degraded: int = 0  # titles dropped because their vote could not be read
    records_ingested: int = 0
    per_category: dict[Category, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
