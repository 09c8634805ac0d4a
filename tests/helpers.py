"""Page builders and a scripted client shared by the tests."""

import threading
import time
from pathlib import Path

from filmweb_export.config import ExportConfig
from filmweb_export.errors import PageNotFound
from filmweb_export.models import WorkItem

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(name: str) -> str:
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


def vote_box(film_id, title=None, kind="film", year=2000):
    title = title or f"Tytul {film_id}"
    return (
        f'<div class="myVoteBox">'
        f'<div class="previewFilm" data-film-id="{film_id}">'
        f'<a class="preview__link" href="/{kind}/{title.replace(" ", "+")}-{year}-{film_id}">{title}</a>'
        f'<div class="preview__year">{year}</div>'
        f"</div></div>"
    )


def vote(rate, favorite=False, timestamp=0):
    """A decoded vote API response."""
    return {"rate": rate, "favorite": favorite, "viewDate": 0, "timestamp": timestamp}


def list_page(*boxes: str) -> str:
    return "<html><body><section>" + "".join(boxes) + "</section></body></html>"


def make_config(tmp_path=None, **overrides) -> ExportConfig:
    values = dict(
        username="jankowalski",
        token="tok",
        session_id="sess",
        jwt="jwt",
        threads=3,
        quiet=False,
        output_dir=Path(tmp_path) if tmp_path else Path("exports"),
        retry_backoff=0.0,
    )
    values.update(overrides)
    return ExportConfig(**values)


def _next_outcome(outcomes, attempt):
    if not isinstance(outcomes, list):
        outcomes = [outcomes]
    outcome = outcomes[min(attempt, len(outcomes) - 1)]
    if isinstance(outcome, BaseException):
        raise outcome
    return outcome


class ScriptedClient:
    """Stands in for FilmwebClient.

    ``pages`` maps a WorkItem to either one outcome or a list of outcomes
    consumed in order (the last one repeats). An outcome is an HTML string
    or an exception instance to raise. Unknown items raise PageNotFound.
    ``settings`` and ``profile`` take outcomes the same way.

    ``votes`` maps ``(media_kind, external_id)`` to vote API outcomes. Titles
    not in it are rated ``external_id % 10 + 1``.
    """

    def __init__(self, pages=None, settings=None, profile=None, votes=None, delay=None, on_fetch=None):
        self.pages = dict(pages or {})
        self.settings = settings if settings is not None else load_fixture("settings.html")
        self.profile = profile if profile is not None else load_fixture("profile.html")
        self.votes = dict(votes or {})
        self.delay = delay
        self.on_fetch = on_fetch
        self.calls: list[WorkItem] = []
        self.vote_calls: list[tuple] = []
        self.closed = False
        self._attempts: dict = {}
        self._lock = threading.Lock()

    def _attempt(self, key) -> int:
        with self._lock:
            attempt = self._attempts.get(key, 0)
            self._attempts[key] = attempt + 1
        return attempt

    def fetch_page(self, item: WorkItem) -> str:
        with self._lock:
            self.calls.append(item)
        attempt = self._attempt(item)
        if self.on_fetch is not None:
            self.on_fetch(item)
        if self.delay is not None:
            time.sleep(self.delay())
        if item not in self.pages:
            raise PageNotFound(str(item))
        return _next_outcome(self.pages[item], attempt)

    def fetch_vote_details(self, media_kind, external_id):
        key = (media_kind, external_id)
        with self._lock:
            self.vote_calls.append(key)
        attempt = self._attempt(key)
        if key not in self.votes:
            return vote(external_id % 10 + 1)
        return _next_outcome(self.votes[key], attempt)

    def fetch_settings(self) -> str:
        return _next_outcome(self.settings, self._attempt("settings"))

    def fetch_profile(self) -> str:
        return _next_outcome(self.profile, self._attempt("profile"))

    def close(self) -> None:
        self.closed = True
