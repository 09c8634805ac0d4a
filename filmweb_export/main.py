"""filmweb.pl rating export: main entry point.

Flow:
  1. check the session cookies against the settings page
  2. read the profile's title totals
  3. fetch and parse every list page with the worker pool
  4. freeze the merged dataset and write the CSV files
  5. warn when fewer titles were exported than the profile reports
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from filmweb_export.aggregator import Aggregator
from filmweb_export.client import FilmwebClient, call_with_retries
from filmweb_export.config import DEFAULT_THREADS, LOG_DIR, ExportConfig, load_config
from filmweb_export.errors import (
    AuthExpired,
    ConfigError,
    ExportCancelled,
    FetchError,
    NoProgressError,
    PageNotFound,
    TransientError,
)
from filmweb_export.exporter import write_exports
from filmweb_export.models import ExportSummary, UserCounts
from filmweb_export.scheduler import FetchScheduler
from filmweb_export.scraper import parse_user_counts, parse_username

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


def setup_logging(verbose: bool = False) -> None:
    """Initial logging setup."""
    LOG_DIR.mkdir(exist_ok=True)
    log_file = LOG_DIR / f"export_{datetime.now().strftime('%Y%m%d')}.log"
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="filmweb-export",
        description="Export filmweb.pl ratings, favorites and watchlist to IMDb-style CSV files.",
    )
    parser.add_argument("-u", "--username", help="filmweb.pl username (read from the account if omitted)")
    parser.add_argument("-t", "--token", help="_fwuser_token cookie value")
    parser.add_argument("-s", "--session", help="_fwuser_sessionId cookie value")
    parser.add_argument("-j", "--jwt", help="JWT cookie value")
    parser.add_argument(
        "--threads",
        help=f"number of concurrent workers (default {DEFAULT_THREADS})",
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true",
        help="do not print successfully exported titles",
    )
    parser.add_argument("-o", "--output-dir", help="directory for the CSV files (default ./exports)")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser.parse_args(argv)


def _preflight(call: Callable[[], str], label: str, config: ExportConfig) -> str:
    """Fetch an account page, retrying transient failures like list pages."""
    return call_with_retries(call, label, config.max_retries, config.retry_backoff)


def _fetch_counts(client: FilmwebClient, config: ExportConfig) -> UserCounts | None:
    try:
        html = _preflight(client.fetch_profile, "profile page", config)
    except (TransientError, FetchError, PageNotFound) as e:
        logger.warning("Could not read profile totals: %s", e)
        return None
    return parse_user_counts(html)


def _check_counts(counts: UserCounts, summary: ExportSummary) -> None:
    for category, parsed in summary.per_category.items():
        expected = counts.expected(category)
        if parsed < expected:
            logger.warning(
                "%s: exported %d of %d titles shown on the profile; "
                "try again with fewer --threads",
                category.path, parsed, expected,
            )


def run(
    config: ExportConfig,
    client_factory: Callable[[ExportConfig], FilmwebClient] | None = None,
) -> list[Path]:
    """Run one export.

    Returns:
        Paths of the written CSV files.

    Raises:
        AuthExpired: cookies rejected; nothing is written.
        NoProgressError: no page could be fetched; nothing is written.
        ExportCancelled: interrupted; nothing is written.
    """
    logger.info("=== filmweb export started ===")
    start_time = time.time()

    client_factory = client_factory or FilmwebClient
    client = client_factory(config)
    try:
        username = parse_username(_preflight(client.fetch_settings, "settings page", config))
    except (TransientError, FetchError, PageNotFound) as e:
        client.close()
        raise NoProgressError(f"settings page unavailable: {e}") from e
    if username is None:
        client.close()
        raise AuthExpired("invalid credentials: settings page shows no logged-in user")

    if config.username is None:
        logger.info("Logged in as %s", username)
        config = config.with_username(username)
        client.close()
        client = client_factory(config)
    elif config.username.lower() != username.lower():
        logger.warning(
            "Cookies belong to %s but exporting %s; ratings may be missing",
            username, config.username,
        )

    aggregator = Aggregator()
    scheduler = FetchScheduler(client, aggregator, config)
    try:
        counts = _fetch_counts(client, config)
        summary = scheduler.run()
    finally:
        client.close()

    dataset = aggregator.freeze()
    if counts is not None:
        _check_counts(counts, summary)
    paths = write_exports(dataset, config.output_dir)

    elapsed = time.time() - start_time
    logger.info("=== filmweb export finished ===")
    logger.info(
        "Pages: %d, degraded: %d, titles: %d, titles without vote: %d, elapsed: %.1f s",
        summary.pages_fetched, summary.pages_degraded, len(dataset),
        summary.titles_degraded, elapsed,
    )
    for warning in summary.warnings:
        logger.warning("Degraded: %s", warning)
    return paths


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = load_config(
            username=args.username,
            token=args.token,
            session_id=args.session,
            jwt=args.jwt,
            threads=args.threads,
            quiet=args.quiet,
            output_dir=args.output_dir,
        )
        run(config)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_FAILURE
    except AuthExpired as e:
        logger.error("Session rejected: %s", e)
        return EXIT_FAILURE
    except NoProgressError as e:
        logger.error("Export failed: %s", e)
        return EXIT_FAILURE
    except (ExportCancelled, KeyboardInterrupt):
        logger.error("Export cancelled, nothing written")
        return EXIT_CANCELLED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
