"""Configuration: environment variables, constants and the run config."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path

from dotenv import load_dotenv

from filmweb_export.errors import ConfigError

logger = logging.getLogger(__name__)

# .env lives in the project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# --- Filmweb ---
BASE_URL = "https://www.filmweb.pl"
USER_LIST_URL_TEMPLATE = BASE_URL + "/user/{username}/{path}?page={page}"
PROFILE_URL_TEMPLATE = BASE_URL + "/user/{username}"
SETTINGS_URL = BASE_URL + "/settings"
# JSON with the logged-in user's vote: {"rate", "favorite", "viewDate", "timestamp"}
VOTE_DETAILS_URL_TEMPLATE = BASE_URL + "/api/v1/logged/vote/{kind}/{id}/details"
LOGIN_PATH = "/login"

# --- User-Agent ---
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:106.0) "
    "Gecko/20100101 Firefox/106.0"
)

# --- Requests ---
REQUEST_TIMEOUT = 15  # seconds
MAX_RETRIES = 3
RETRY_BACKOFF = 1.0  # seconds, doubled per attempt

# Titles per list page served by filmweb.pl
PAGE_SIZE = 25

# --- Workers ---
DEFAULT_THREADS = 6
# More concurrent requests than this makes filmweb.pl omit titles without an error
SAFE_MAX_THREADS = 6

# --- Output ---
DEFAULT_OUTPUT_DIR = Path("exports")

# --- Logs ---
LOG_DIR = _PROJECT_ROOT / "logs"


@dataclass(frozen=True)
class ExportConfig:
    """Settings for one export run, built once at startup."""

    username: str | None
    token: str = field(repr=False)
    session_id: str = field(repr=False)
    jwt: str = field(repr=False)
    threads: int = DEFAULT_THREADS
    quiet: bool = False
    output_dir: Path = DEFAULT_OUTPUT_DIR
    max_retries: int = MAX_RETRIES
    retry_backoff: float = RETRY_BACKOFF
    page_size: int = PAGE_SIZE
    timeout: float = REQUEST_TIMEOUT

    def cookie_header(self) -> str:
        return (
            f"_fwuser_token={self.token.strip()}; "
            f"_fwuser_sessionId={self.session_id.strip()}; "
            f"JWT={self.jwt.strip()};"
        )

    def with_username(self, username: str) -> ExportConfig:
        return replace(self, username=username)


def _parse_threads(value) -> int:
    try:
        threads = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"threads must be a positive integer, got {value!r}") from None
    if threads < 1:
        raise ConfigError(f"threads must be a positive integer, got {threads}")
    return threads


def load_config(
    username: str | None = None,
    token: str | None = None,
    session_id: str | None = None,
    jwt: str | None = None,
    threads: int | str | None = None,
    quiet: bool = False,
    output_dir: str | Path | None = None,
) -> ExportConfig:
    """Build the run configuration.

    Explicit arguments win over the FILMWEB_* environment variables.

    Raises:
        ConfigError: a cookie value is missing or threads is not positive.
    """
    username = username or os.getenv("FILMWEB_USERNAME") or None
    token = token or os.getenv("FILMWEB_TOKEN", "")
    session_id = session_id or os.getenv("FILMWEB_SESSION", "")
    jwt = jwt or os.getenv("FILMWEB_JWT", "")

    missing = [
        name for name, value in (
            ("token", token), ("session", session_id), ("jwt", jwt),
        )
        if not value.strip()
    ]
    if missing:
        raise ConfigError(f"missing cookie value(s): {', '.join(missing)}")

    if threads is None:
        threads = os.getenv("FILMWEB_THREADS", DEFAULT_THREADS)
    threads = _parse_threads(threads)
    if threads > SAFE_MAX_THREADS:
        logger.warning(
            "threads=%d is above %d; filmweb.pl may silently drop titles",
            threads, SAFE_MAX_THREADS,
        )

    if output_dir is None:
        output_dir = os.getenv("FILMWEB_OUTPUT_DIR") or DEFAULT_OUTPUT_DIR

    return ExportConfig(
        username=username.strip() if username else None,
        token=token,
        session_id=session_id,
        jwt=jwt,
        threads=threads,
        quiet=quiet,
        output_dir=Path(output_dir),
    )
