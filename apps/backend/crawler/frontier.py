"""
Shared crawl state for one run.

FrontierState holds the saved-count budget and the deduplication sets. Every
mutation goes through a try-reserve style method that checks and updates under
one lock, so concurrent workers can neither overshoot the budget nor enqueue
the same URL twice.
"""

import threading
from collections import Counter
from typing import Optional, Set

DEFAULT_MAX_PAGES = 20


class FrontierState:
    """Budget and dedupe bookkeeping for one crawl run."""

    def __init__(self, budget: Optional[int] = 100, page_budget_per_chain: int = DEFAULT_MAX_PAGES,
                 dedupe: bool = True):
        # budget None means unbounded
        self.budget = budget
        self.page_budget_per_chain = max(1, page_budget_per_chain)
        self.dedupe = dedupe
        self.saved_count = 0
        self.seen_urls: Set[str] = set()
        # url -> records accepted and not released
        self.emitted_urls: Counter = Counter()
        self._lock = threading.Lock()

    def try_reserve_url(self, url: str, force: bool = False) -> bool:
        """
        Reserve a URL for enqueueing.

        With dedupe off, only forced reservations (listing pages) are tracked;
        everything else is always granted.
        """
        with self._lock:
            if not (self.dedupe or force):
                return True
            if url in self.seen_urls:
                return False
            self.seen_urls.add(url)
            return True

    def try_accept_record(self, url: str) -> bool:
        """
        Reserve a budget unit for a record about to be emitted.

        The dedupe check and the budget increment happen together. Call
        release_record if the record is not stored after all.
        """
        with self._lock:
            if self.dedupe and url in self.emitted_urls:
                return False
            if self.budget is not None and self.saved_count >= self.budget:
                return False
            self.saved_count += 1
            self.emitted_urls[url] += 1
            self.seen_urls.add(url)
            return True

    def release_record(self, url: str):
        """Give back a budget unit reserved by try_accept_record."""
        with self._lock:
            if self.emitted_urls[url] > 0:
                self.emitted_urls[url] -= 1
                if not self.emitted_urls[url]:
                    del self.emitted_urls[url]
                self.saved_count = max(0, self.saved_count - 1)

    def is_emitted(self, url: str) -> bool:
        with self._lock:
            return url in self.emitted_urls

    def remaining_budget(self) -> Optional[int]:
        """Units left before the budget is reached; None when unbounded."""
        with self._lock:
            if self.budget is None:
                return None
            return max(0, self.budget - self.saved_count)

    def budget_reached(self) -> bool:
        with self._lock:
            return self.budget is not None and self.saved_count >= self.budget

    def can_paginate(self, page_number: int) -> bool:
        """Whether a chain currently at page_number may enqueue its next page."""
        return not self.budget_reached() and page_number < self.page_budget_per_chain
