"""Worker pool that fetches and parses every list page.

Flow per work item:
  1. fetch the page (retrying transient failures with exponential backoff)
  2. parse it into records; on rated lists read each title's vote from the
     vote API
  3. merge the records into the aggregator
  4. queue the next page of the same list if the page was full

Page n+1 of a list is queued only once page n is known, so each list has at
most one page in flight; different lists run in parallel.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Iterable
from functools import partial

from filmweb_export.aggregator import Aggregator
from filmweb_export.client import FilmwebClient, call_with_retries
from filmweb_export.config import ExportConfig
from filmweb_export.errors import (
    AuthExpired,
    ExportCancelled,
    FetchError,
    MalformedPage,
    MalformedVote,
    NoProgressError,
    PageNotFound,
    TransientError,
)
from filmweb_export.models import (
    Category,
    ExportSummary,
    ListKind,
    PageResult,
    RatingRecord,
    WorkItem,
)
from filmweb_export.paginator import ALL_CATEGORIES, next_item, seed_items
from filmweb_export.scraper import apply_vote, parse_page, parse_vote_details

logger = logging.getLogger(__name__)


class FetchScheduler:
    """Runs ``config.threads`` workers over one FIFO queue of work items."""

    def __init__(self, client: FilmwebClient, aggregator: Aggregator, config: ExportConfig):
        self._client = client
        self._aggregator = aggregator
        self._config = config

        self._queue: deque[WorkItem] = deque()
        self._cond = threading.Condition()
        self._in_flight = 0
        self._cancelled = threading.Event()
        self._fatal: BaseException | None = None

        self._stats_lock = threading.Lock()
        self._summary = ExportSummary()

    def cancel(self) -> None:
        """Stop dispatching work. In-flight requests are allowed to finish."""
        self._cancelled.set()
        with self._cond:
            self._cond.notify_all()

    def run(self, categories: Iterable[Category] = ALL_CATEGORIES) -> ExportSummary:
        """Fetch every page of the given lists.

        Raises:
            AuthExpired: the session was rejected by any request.
            ExportCancelled: ``cancel`` was called or the run was interrupted.
            NoProgressError: not a single page could be fetched.
        """
        seeds = seed_items(categories)
        with self._cond:
            self._queue.extend(seeds)
        for item in seeds:
            self._summary.per_category.setdefault(item.category, 0)

        workers = [
            threading.Thread(target=self._worker, name=f"fetch-{i + 1}", daemon=True)
            for i in range(self._config.threads)
        ]
        logger.info("Starting %d workers for %d lists", len(workers), len(seeds))
        for worker in workers:
            worker.start()
        try:
            for worker in workers:
                worker.join()
        except KeyboardInterrupt:
            logger.warning("Interrupted, waiting for in-flight requests")
            self.cancel()
            for worker in workers:
                worker.join()

        if self._fatal is not None:
            raise self._fatal
        if self._cancelled.is_set():
            raise ExportCancelled("export cancelled")
        if self._summary.pages_fetched == 0:
            raise NoProgressError("no page could be fetched")
        return self._summary

    def _worker(self) -> None:
        while True:
            with self._cond:
                while not self._queue and self._in_flight and not self._cancelled.is_set():
                    self._cond.wait()
                if self._cancelled.is_set() or not self._queue:
                    self._cond.notify_all()
                    return
                item = self._queue.popleft()
                self._in_flight += 1

            follow_up = None
            try:
                follow_up = self._process(item)
            except AuthExpired as e:
                logger.error("%s: %s", item, e)
                self._abort(e)
            except BaseException as e:
                logger.exception("%s: unexpected error", item)
                self._abort(e)
            finally:
                with self._cond:
                    self._in_flight -= 1
                    if follow_up is not None and not self._cancelled.is_set():
                        self._queue.append(follow_up)
                    self._cond.notify_all()

    def _abort(self, error: BaseException) -> None:
        with self._cond:
            if self._fatal is None:
                self._fatal = error
        self.cancel()

    def _process(self, item: WorkItem) -> WorkItem | None:
        try:
            result = self._fetch_result(item)
        except PageNotFound:
            logger.debug("%s: past the last page", item)
            self._category_done(item)
            return None
        except TransientError as e:
            self._degrade(
                item,
                f"gave up after {self._config.max_retries} retries ({e}); "
                f"later pages of {item.category.path} were not fetched",
            )
            self._category_done(item)
            return None
        except FetchError as e:
            self._degrade(item, str(e))
            self._category_done(item)
            return None
        except MalformedPage as e:
            self._degrade(item, f"malformed page ({e})")
            result = PageResult(records=(), has_next_page=e.has_next_page)
        else:
            if result is None:
                return None
            added = self._aggregator.ingest(result)
            with self._stats_lock:
                self._summary.records_ingested += added
                self._summary.per_category[item.category] += len(result.records)
            if not self._config.quiet:
                for record in result.records:
                    logger.info("[+] %s %s", record.title, _rating_label(record))

        follow_up = next_item(item, result)
        if follow_up is None:
            self._category_done(item)
        return follow_up

    def _fetch_result(self, item: WorkItem) -> PageResult | None:
        """Fetch and parse one page, with votes attached on rated lists.

        Returns:
            The parsed page, or None when the run was cancelled meanwhile.
        """
        html = self._retrying(partial(self._client.fetch_page, item), str(item))
        if html is None:
            return None
        with self._stats_lock:
            self._summary.pages_fetched += 1

        result = parse_page(item.category, html, self._config.page_size)
        if item.category.list_kind is not ListKind.RATED:
            return result

        records = []
        for record in result.records:
            label = f"{item} vote {record.external_id}"
            try:
                data = self._retrying(
                    partial(self._client.fetch_vote_details, record.media_kind, record.external_id),
                    label,
                )
            except PageNotFound:
                records.append(record)
                continue
            except (TransientError, FetchError) as e:
                self._degrade_title(item, record, str(e))
                continue
            if self._cancelled.is_set():
                return None
            try:
                records.append(apply_vote(record, parse_vote_details(data)))
            except MalformedVote as e:
                self._degrade_title(item, record, f"malformed vote ({e})")
        return PageResult(records=tuple(records), has_next_page=result.has_next_page)

    def _retrying(self, call, label: str):
        return call_with_retries(
            call,
            label,
            self._config.max_retries,
            self._config.retry_backoff,
            cancelled=self._cancelled,
        )

    def _degrade(self, item: WorkItem, reason: str) -> None:
        message = f"{item}: {reason}; titles from this page are missing"
        logger.warning("%s", message)
        with self._stats_lock:
            self._summary.pages_degraded += 1
            self._summary.warnings.append(message)

    def _degrade_title(self, item: WorkItem, record: RatingRecord, reason: str) -> None:
        message = f"{item}: vote for {record.title} ({record.external_id}) unavailable: {reason}; title is missing"
        logger.warning("%s", message)
        with self._stats_lock:
            self._summary.titles_degraded += 1
            self._summary.warnings.append(message)

    def _category_done(self, item: WorkItem) -> None:
        with self._stats_lock:
            count = self._summary.per_category.get(item.category, 0)
        logger.info("Finished %s: %d pages, %d titles", item.category.path, item.page, count)


def _rating_label(record: RatingRecord) -> str:
    parts = []
    if record.user_rating is not None:
        parts.append(f"{record.user_rating}/10")
    if ListKind.FAVORITED in record.lists:
        parts.append("♥")
    if ListKind.WATCHLIST in record.lists and record.user_rating is None:
        parts.append("(watchlist)")
    return " ".join(parts)
