"""Thread-safe collection of parsed records."""

from __future__ import annotations

import logging
import threading

from filmweb_export.models import MediaKind, PageResult, RatingRecord, merge_records

logger = logging.getLogger(__name__)


class Aggregator:
    """Merges records from every worker into one dataset.

    Records sharing ``(external_id, media_kind)`` are merged, never
    replaced. ``freeze`` ends ingestion and returns the records sorted by
    id so the output does not depend on fetch order.
    """

    def __init__(self):
        self._records: dict[tuple[int, MediaKind], RatingRecord] = {}
        self._lock = threading.Lock()
        self._frozen = False

    def ingest(self, result: PageResult) -> int:
        """Merge one page's records.

        Returns:
            Number of titles not seen before.
        """
        added = 0
        with self._lock:
            if self._frozen:
                raise RuntimeError("dataset is frozen")
            for record in result.records:
                current = self._records.get(record.key)
                if current is None:
                    self._records[record.key] = record
                    added += 1
                else:
                    self._records[record.key] = merge_records(current, record)
        return added

    def freeze(self) -> tuple[RatingRecord, ...]:
        with self._lock:
            self._frozen = True
            records = sorted(
                self._records.values(),
                key=lambda r: (r.external_id, r.media_kind.value),
            )
        logger.debug("Dataset frozen with %d titles", len(records))
        return tuple(records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
