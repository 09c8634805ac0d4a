"""Authenticated HTTP access to filmweb.pl."""

from __future__ import annotations

import logging
import random
import threading
import time
from collections.abc import Callable
from typing import TypeVar
from urllib.parse import quote, urlparse

import requests

from filmweb_export.config import (
    LOGIN_PATH,
    PROFILE_URL_TEMPLATE,
    SETTINGS_URL,
    USER_AGENT,
    VOTE_DETAILS_URL_TEMPLATE,
    ExportConfig,
)
from filmweb_export.errors import AuthExpired, FetchError, PageNotFound, TransientError
from filmweb_export.models import MediaKind, WorkItem
from filmweb_export.paginator import page_url

logger = logging.getLogger(__name__)

_AUTH_FAILURE_STATUSES = (401, 403)
_RETRYABLE_STATUSES = (429, 500, 502, 503, 504)
_VOTE_KINDS = {MediaKind.MOVIE: "film", MediaKind.SERIES: "serial"}

T = TypeVar("T")


def call_with_retries(
    call: Callable[[], T],
    label: str,
    retries: int,
    backoff: float,
    cancelled: threading.Event | None = None,
) -> T | None:
    """Run ``call``, retrying TransientError with exponential backoff.

    The wait before retry n is ``backoff * 2**n`` plus up to ``backoff`` of
    jitter. With a ``cancelled`` event the wait ends early on cancellation
    and no further attempt is made.

    Returns:
        The result of ``call``, or None when ``cancelled`` was set first.

    Raises:
        TransientError: the last of ``retries + 1`` attempts still failed.
    """
    for attempt in range(retries + 1):
        if cancelled is not None and cancelled.is_set():
            return None
        try:
            return call()
        except TransientError as e:
            if attempt == retries:
                raise
            delay = backoff * 2 ** attempt + random.uniform(0, backoff)
            logger.info(
                "%s: %s, retrying in %.1fs (attempt %d/%d)",
                label, e, delay, attempt + 1, retries,
            )
            if cancelled is not None:
                cancelled.wait(delay)
            else:
                time.sleep(delay)
    return None


def _is_login_redirect(resp: requests.Response) -> bool:
    """True when the request was redirected to the login page."""
    if not resp.history:
        return False
    path = urlparse(resp.url or "").path
    return path == LOGIN_PATH or path.startswith(LOGIN_PATH + "/")


class FilmwebClient:
    """Sends requests carrying the user's session cookies.

    Every worker thread gets its own ``requests.Session`` built from the
    same cookie header.
    """

    def __init__(
        self,
        config: ExportConfig,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        self._config = config
        self._session_factory = session_factory
        self._local = threading.local()
        self._sessions: list[requests.Session] = []
        self._lock = threading.Lock()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            logger.debug("Creating filmweb session for %s", threading.current_thread().name)
            session = self._session_factory()
            session.headers.update({
                "User-Agent": USER_AGENT,
                "Cookie": self._config.cookie_header(),
                "Connection": "keep-alive",
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "pl,en-US;q=0.9,en;q=0.8",
            })
            self._local.session = session
            with self._lock:
                self._sessions.append(session)
        return session

    def _send(self, url: str) -> requests.Response:
        """GET a URL and map failures onto the export error taxonomy.

        Raises:
            AuthExpired: 401/403, or a redirect that landed on the login page.
            PageNotFound: 404.
            TransientError: timeout, connection error, 429 or 5xx.
            FetchError: any other non-2xx status.
        """
        try:
            resp = self._session().get(url, timeout=self._config.timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientError(f"{url}: {e}") from e
        except requests.RequestException as e:
            raise FetchError(f"{url}: {e}") from e

        status = resp.status_code
        if status in _AUTH_FAILURE_STATUSES or _is_login_redirect(resp):
            raise AuthExpired(
                f"session rejected ({status}); fetch fresh cookies and try again"
            )
        if status == 404:
            raise PageNotFound(url)
        if status in _RETRYABLE_STATUSES:
            raise TransientError(f"{url}: HTTP {status}")
        try:
            resp.raise_for_status()
        except requests.HTTPError as e:
            raise FetchError(f"{url}: HTTP {status}") from e
        return resp

    def _get(self, url: str) -> str:
        return self._send(url).text

    def fetch_page(self, item: WorkItem) -> str:
        """Return the HTML of one list page."""
        if not self._config.username:
            raise ValueError("username is not set")
        return self._get(page_url(self._config.username, item))

    def fetch_settings(self) -> str:
        """Return the account settings page, which names the logged-in user."""
        return self._get(SETTINGS_URL)

    def fetch_profile(self) -> str:
        """Return the user's profile page with the title totals."""
        if not self._config.username:
            raise ValueError("username is not set")
        username = quote(self._config.username, safe="")
        return self._get(PROFILE_URL_TEMPLATE.format(username=username))

    def fetch_vote_details(self, media_kind: MediaKind, external_id: int) -> dict | None:
        """Return the user's vote on a title as decoded JSON.

        ``None`` (JSON null) means the title carries no vote.

        Raises:
            AuthExpired: the body is not JSON. The API answers with an HTML
                page once the JWT cookie has been invalidated.
        """
        url = VOTE_DETAILS_URL_TEMPLATE.format(kind=_VOTE_KINDS[media_kind], id=external_id)
        resp = self._send(url)
        try:
            return resp.json()
        except ValueError as e:
            raise AuthExpired(
                f"vote details for {external_id} are not JSON; the JWT was rejected"
            ) from e

    def close(self) -> None:
        with self._lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
