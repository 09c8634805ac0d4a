"""Parsing of filmweb.pl user pages.

List pages (films, serials, favorites, wantToSee) render one ``div.myVoteBox``
per title:

    <div class="myVoteBox">
      <div class="previewFilm" data-film-id="628">
        <a class="preview__link" href="/film/Matrix-1999-628">Matrix</a>
        <div class="preview__alternateTitle">The Matrix</div>
        <div class="preview__year">1999</div>
      </div>
    </div>

The vote itself is not part of the page. It comes from the vote API as

    {"rate": 8, "favorite": true, "viewDate": 0, "timestamp": 1615725000000}

and is folded into the record by ``apply_vote``.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import replace
from datetime import datetime, timezone
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from filmweb_export.config import BASE_URL, PAGE_SIZE
from filmweb_export.errors import MalformedPage, MalformedVote
from filmweb_export.models import (
    Category,
    ListKind,
    MediaKind,
    PageResult,
    RatingRecord,
    UserCounts,
    VoteDetails,
)

logger = logging.getLogger(__name__)

# "1999", "2015-2019", "2015 - " (still running)
_YEAR_PATTERN = re.compile(r"^\s*(\d{4})\s*(?:-\s*(?:\d{4})?\s*)?$")

_KIND_BY_LINK = (
    ("/film/", MediaKind.MOVIE),
    ("/serial/", MediaKind.SERIES),
)


def parse_page(category: Category, html: str, page_size: int = PAGE_SIZE) -> PageResult:
    """Extract the titles of one list page.

    A full page (``page_size`` entries or more) means another page may
    follow; a short or empty page ends the list.

    Raises:
        MalformedPage: an entry lacks its id or title link, or has a broken
            year. Carries the page's ``has_next_page``.
    """
    soup = BeautifulSoup(html, "html.parser")
    boxes = soup.select("div.myVoteBox")
    has_next_page = len(boxes) >= page_size

    records: list[RatingRecord] = []
    for position, box in enumerate(boxes, start=1):
        try:
            records.append(_parse_vote_box(box, category))
        except ValueError as e:
            raise MalformedPage(
                f"{category.path}: entry {position}: {e}",
                has_next_page=has_next_page,
            ) from e

    return PageResult(records=tuple(records), has_next_page=has_next_page)


def _parse_vote_box(box, category: Category) -> RatingRecord:
    preview = box.select_one(".previewFilm")
    raw_id = preview.get("data-film-id") if preview else None
    if not raw_id or not raw_id.strip().isdigit():
        raise ValueError(f"missing or invalid title id: {raw_id!r}")
    external_id = int(raw_id.strip())

    link = box.select_one("a.preview__link")
    if link is None:
        raise ValueError(f"no title link for id {external_id}")
    title = link.get_text(strip=True)
    href = link.get("href", "")

    media_kind = category.media_kind or _media_kind_from_link(href)
    if media_kind is None:
        raise ValueError(f"cannot tell film from serial for id {external_id}: {href!r}")

    alternate = box.select_one(".preview__alternateTitle")
    original_title = alternate.get_text(strip=True) if alternate else ""

    return RatingRecord(
        external_id=external_id,
        title=title,
        media_kind=media_kind,
        lists=frozenset({category.list_kind}),
        original_title=original_title or None,
        year=_parse_year(box.select_one(".preview__year"), external_id),
        url=urljoin(BASE_URL, href) if href else None,
    )


def _media_kind_from_link(href: str) -> MediaKind | None:
    for prefix, kind in _KIND_BY_LINK:
        if href.startswith(prefix) or f"filmweb.pl{prefix}" in href:
            return kind
    return None


def parse_vote_details(data) -> VoteDetails | None:
    """Validate one decoded vote API response.

    Returns:
        The vote, or None for a JSON null (no vote on the title).

    Raises:
        MalformedVote: ``rate`` is not 0-10, ``favorite`` is not a boolean
            or ``timestamp`` is not a non-negative number.
    """
    if data is None:
        return None
    if not isinstance(data, dict):
        raise MalformedVote(f"expected an object, got {type(data).__name__}")

    rate = data.get("rate", 0)
    # bool is an int subclass
    if not isinstance(rate, int) or isinstance(rate, bool) or not 0 <= rate <= 10:
        raise MalformedVote(f"rating out of range: {rate!r}")

    favorite = data.get("favorite", False)
    if not isinstance(favorite, bool):
        raise MalformedVote(f"invalid favorite flag: {favorite!r}")

    timestamp = data.get("timestamp", 0)
    if not isinstance(timestamp, int) or isinstance(timestamp, bool) or timestamp < 0:
        raise MalformedVote(f"invalid timestamp: {timestamp!r}")

    return VoteDetails(
        rate=rate or None,
        favorite=favorite,
        voted_at=_timestamp_date(timestamp),
    )


def _timestamp_date(millis: int):
    """Epoch milliseconds to a UTC date; 0 means unknown."""
    if millis == 0:
        return None
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).date()


def apply_vote(record: RatingRecord, vote: VoteDetails | None) -> RatingRecord:
    """Copy a vote's rating, date and favorite flag onto a list record."""
    if vote is None:
        return record
    lists = record.lists | {ListKind.FAVORITED} if vote.favorite else record.lists
    return replace(record, lists=lists, user_rating=vote.rate, rated_at=vote.voted_at)


def _parse_year(tag, external_id: int) -> int | None:
    if tag is None:
        return None
    text = tag.get_text(strip=True)
    if not text:
        return None
    m = _YEAR_PATTERN.match(text)
    if not m:
        raise ValueError(f"invalid year {text!r} for id {external_id}")
    return int(m.group(1))


def parse_username(html: str) -> str | None:
    """Read the logged-in username from the settings page.

    Returns:
        The username, or None when the page is not a logged-in settings page.
    """
    soup = BeautifulSoup(html, "html.parser")
    items = soup.select(".mainSettings__groupItemStateContent")
    if len(items) < 3:
        return None
    username = items[2].get_text(strip=True)
    return username or None


def parse_user_counts(html: str) -> UserCounts | None:
    """Read the title totals from the profile page's vote stats JSON."""
    soup = BeautifulSoup(html, "html.parser")
    tag = soup.select_one(".voteStatsBoxData")
    if tag is None:
        logger.warning("Profile page has no vote stats")
        return None

    try:
        data = json.loads(tag.string or "")
    except json.JSONDecodeError as e:
        logger.warning("Vote stats JSON parse error: %s", e)
        return None

    def count(*keys: str) -> int:
        value = _deep_get(data, *keys)
        return int(value) if isinstance(value, (int, str)) and str(value).isdigit() else 0

    return UserCounts(
        rated_films=count("votes", "films"),
        rated_serials=count("votes", "serials"),
        watchlist=count("w2s", "films") + count("w2s", "serials"),
        favorites=count("favorite", "films") + count("favorite", "serials"),
    )


def _deep_get(d: dict, *keys: str):
    """Safely read a value from nested dicts."""
    for key in keys:
        if not isinstance(d, dict):
            return None
        d = d.get(key)
    return d
