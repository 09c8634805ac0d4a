import pytest

from helpers import list_page, vote_box
from filmweb_export.models import Category, WorkItem


@pytest.fixture
def scenario_pages():
    """Films: 25 + 3 titles over two pages; favorites: 2 titles, one also rated.

    Votes come from ScriptedClient's default, so film 5 is rated 6.
    """
    page1 = list_page(*(vote_box(i) for i in range(1, 26)))
    page2 = list_page(*(vote_box(i) for i in range(26, 29)))
    favorites = list_page(vote_box(5), vote_box(100))
    return {
        WorkItem(Category.FILMS, 1): page1,
        WorkItem(Category.FILMS, 2): page2,
        WorkItem(Category.FAVORITES, 1): favorites,
    }
