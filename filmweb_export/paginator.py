"""Page sequencing for the user's lists.

No network or parsing here: only which page comes next and where it lives.
"""

from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import quote

from filmweb_export.config import USER_LIST_URL_TEMPLATE
from filmweb_export.models import Category, PageResult, WorkItem

ALL_CATEGORIES = (
    Category.FILMS,
    Category.SERIALS,
    Category.FAVORITES,
    Category.WATCHLIST,
)


def seed_items(categories: Iterable[Category] = ALL_CATEGORIES) -> list[WorkItem]:
    """Return the first page of every category."""
    return [WorkItem(category, 1) for category in categories]


def next_item(item: WorkItem, result: PageResult) -> WorkItem | None:
    """Return the page after ``item`` if the parsed result says one exists."""
    if not result.has_next_page:
        return None
    return WorkItem(item.category, item.page + 1)


def page_url(username: str, item: WorkItem) -> str:
    """Build the URL of a list page.

    Raises:
        ValueError: page number below 1.
    """
    if item.page < 1:
        raise ValueError(f"page must be >= 1, got {item.page}")
    return USER_LIST_URL_TEMPLATE.format(
        username=quote(username, safe=""),
        path=item.category.path,
        page=item.page,
    )
