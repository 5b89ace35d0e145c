"""
Tests for the shared frontier state.
"""

import threading

from crawler.frontier import FrontierState


class TestReservations:
    """Test dedupe and budget reservations."""

    def test_url_reserved_once(self):
        state = FrontierState(budget=10)
        assert state.try_reserve_url("https://a/1")
        assert not state.try_reserve_url("https://a/1")

    def test_dedupe_off_grants_everything_but_forced(self):
        """Test that listing pages stay deduplicated with dedupe off."""
        state = FrontierState(budget=10, dedupe=False)
        assert state.try_reserve_url("https://a/1")
        assert state.try_reserve_url("https://a/1")
        assert state.try_reserve_url("https://a/list", force=True)
        assert not state.try_reserve_url("https://a/list", force=True)

    def test_budget_never_exceeded(self):
        state = FrontierState(budget=2)
        assert state.try_accept_record("https://a/1")
        assert state.try_accept_record("https://a/2")
        assert not state.try_accept_record("https://a/3")
        assert state.saved_count == 2
        assert state.budget_reached()
        assert state.remaining_budget() == 0

    def test_duplicate_record_rejected(self):
        state = FrontierState(budget=5)
        assert state.try_accept_record("https://a/1")
        assert not state.try_accept_record("https://a/1")
        assert state.saved_count == 1

    def test_duplicate_record_allowed_without_dedupe(self):
        state = FrontierState(budget=5, dedupe=False)
        assert state.try_accept_record("https://a/1")
        assert state.try_accept_record("https://a/1")
        assert state.saved_count == 2

    def test_release_returns_budget_unit(self):
        state = FrontierState(budget=1)
        assert state.try_accept_record("https://a/1")
        state.release_record("https://a/1")
        assert state.saved_count == 0
        assert state.try_accept_record("https://a/2")

    def test_release_per_acceptance_without_dedupe(self):
        """Test that each accepted record for a shared URL releases its own unit."""
        state = FrontierState(budget=5, dedupe=False)
        assert state.try_accept_record("https://a/1")
        assert state.try_accept_record("https://a/1")

        state.release_record("https://a/1")
        assert state.saved_count == 1
        assert state.is_emitted("https://a/1")

        state.release_record("https://a/1")
        assert state.saved_count == 0
        assert not state.is_emitted("https://a/1")

        # Nothing left to release
        state.release_record("https://a/1")
        assert state.saved_count == 0

    def test_unbounded_budget(self):
        state = FrontierState(budget=None)
        for i in range(500):
            assert state.try_accept_record(f"https://a/{i}")
        assert state.remaining_budget() is None
        assert not state.budget_reached()

    def test_accepted_record_blocks_detail_enqueue(self):
        """Test that a record URL emitted from the API is not fetched again."""
        state = FrontierState(budget=5)
        state.try_accept_record("https://a/1")
        assert not state.try_reserve_url("https://a/1")


class TestPagination:
    """Test the next-page condition."""

    def test_page_limit(self):
        state = FrontierState(budget=100, page_budget_per_chain=3)
        assert state.can_paginate(1)
        assert state.can_paginate(2)
        assert not state.can_paginate(3)

    def test_budget_stops_pagination(self):
        state = FrontierState(budget=1, page_budget_per_chain=20)
        state.try_accept_record("https://a/1")
        assert not state.can_paginate(1)


class TestConcurrency:
    """Test that reservations are atomic across threads."""

    def test_concurrent_accepts_respect_budget(self):
        state = FrontierState(budget=50)
        accepted = []
        lock = threading.Lock()

        def worker(offset):
            for i in range(100):
                if state.try_accept_record(f"https://a/{offset}-{i}"):
                    with lock:
                        accepted.append(1)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert state.saved_count == 50
        assert len(accepted) == 50

    def test_concurrent_reservations_unique(self):
        state = FrontierState(budget=None)
        granted = []
        lock = threading.Lock()

        def worker():
            for i in range(200):
                if state.try_reserve_url(f"https://a/{i}"):
                    with lock:
                        granted.append(i)

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(granted) == list(range(200))
