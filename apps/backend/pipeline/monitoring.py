"""
Run statistics for a crawl.

In-memory counters only; a run's statistics are discarded when it ends.
"""

import logging
import threading
from collections import defaultdict
from typing import Dict, Optional

logger = logging.getLogger(__name__)

COUNTERS = [
    'list_pages',
    'api_pages',
    'api_fallbacks',
    'html_pages',
    'detail_links_found',
    'detail_enqueued',
    'saved',
    'dropped_low_yield',
    'duplicates',
    'budget_rejected',
    'fetch_failed',
    'skipped_after_budget',
]


class CrawlStats:
    """Collects crawl counters."""

    def __init__(self):
        self.counters = defaultdict(int)
        self.title_origins = defaultdict(int)
        self._lock = threading.Lock()

    def incr(self, name: str, value: int = 1):
        """Increment a counter."""
        with self._lock:
            self.counters[name] += value

    def record_origin(self, origin: Optional[str]):
        """Record which strategy supplied an emitted record's title."""
        with self._lock:
            self.title_origins[origin or 'none'] += 1

    def get(self, name: str) -> int:
        return self.counters.get(name, 0)

    def get_stats(self) -> Dict:
        """Get current statistics."""
        with self._lock:
            counters = {name: self.counters.get(name, 0) for name in COUNTERS}
            counters.update({k: v for k, v in self.counters.items() if k not in counters})
            return {
                'counters': counters,
                'title_origins': dict(self.title_origins),
            }

    def log_summary(self):
        """Log non-zero counters on one line."""
        counters = self.get_stats()['counters']
        summary = ', '.join(f"{name}={value}" for name, value in counters.items() if value)
        logger.info(f"[stats] {summary or 'no activity'}")
