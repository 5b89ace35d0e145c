"""
Tests for the frontier controller, with in-memory fetchers, API stubs and sinks.
"""

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from core.config import ConfigurationError, RunConfig
from core.net import FetchError
from crawler.orchestrator import FrontierController
from pipeline.dataset import MemoryDataset
from pipeline.models import Record, TargetKind
from pipeline.page import PageContent

FIXTURES = Path(__file__).parent / 'fixtures'
SITE = "https://www.freelancer.com"
LISTING = f"{SITE}/jobs/design"


def listing_html(ids) -> str:
    anchors = ''.join(f'<a href="/projects/design/job-{i}">Job {i}</a>' for i in ids)
    return f"<html><body>{anchors}</body></html>"


def detail_html(title: str) -> str:
    return f"<html><body><h1>{title}</h1><div class=\"description\"><p>About {title}</p></div></body></html>"


def detail_url(i) -> str:
    return f"{SITE}/projects/design/job-{i}"


def detail_pages(ids) -> Dict[str, str]:
    return {detail_url(i): detail_html(f"Job {i}") for i in ids}


class FakeFetcher:
    """Serves pages from a dict; unknown URLs fail like a 404."""

    def __init__(self, pages: Dict[str, str], failures=()):
        self.pages = pages
        self.failures = set(failures)
        self.fetched = []

    async def fetch(self, target):
        self.fetched.append(target)
        await asyncio.sleep(0)
        if target.url in self.failures:
            raise FetchError(target.url, "HTTP 500", 500)
        if target.url not in self.pages:
            raise FetchError(target.url, "HTTP 404", 404)
        return PageContent(target.url, self.pages[target.url])

    def fetched_urls(self, kind: TargetKind) -> List[str]:
        return [t.url for t in self.fetched if t.kind is kind]


class FakeApi:
    """Returns canned records per page number; missing pages fail."""

    def __init__(self, pages: Dict[int, Optional[List[Record]]]):
        self.pages = pages
        self.calls = []

    async def fetch_page(self, page_number, keyword='', category=''):
        self.calls.append(page_number)
        await asyncio.sleep(0)
        return self.pages.get(page_number)


class FailingSink(MemoryDataset):
    """Memory sink that fails to store one URL."""

    def __init__(self, bad_url: str):
        super().__init__()
        self.bad_url = bad_url

    async def push(self, record):
        if record.source_url == self.bad_url:
            raise OSError("disk full")
        await super().push(record)


def api_records(ids, category=None) -> List[Record]:
    return [
        Record(source_url=detail_url(i), title=f"API job {i}", description_text="From API",
               category=category, origin='api')
        for i in ids
    ]


async def run(config: RunConfig, fetcher, api=None, sink=None):
    sink = sink if sink is not None else MemoryDataset()
    controller = FrontierController(config, sink=sink, fetcher=fetcher, api=api)
    summary = await controller.run()
    return controller, summary, sink


class TestHtmlPath:
    """Test listing pages parsed from HTML."""

    @pytest.mark.asyncio
    async def test_api_failure_falls_back_to_link_discovery(self):
        """Test that a failed API page enqueues exactly the non-excluded detail links."""
        pages = {LISTING: (FIXTURES / 'listing.html').read_text(encoding='utf-8')}
        fetcher = FakeFetcher(pages)
        api = FakeApi({1: None})
        config = RunConfig(start_urls=[LISTING], max_pages=1, max_concurrency=3)

        controller, summary, sink = await run(config, fetcher, api=api)

        assert api.calls == [1]
        assert controller.stats.get('api_fallbacks') == 1
        assert controller.stats.get('detail_enqueued') == 8
        assert len(fetcher.fetched_urls(TargetKind.DETAIL)) == 8
        # Fixture detail URLs are unknown to the fetcher
        assert summary.failed == 8
        assert sink.count == 0

    @pytest.mark.asyncio
    async def test_details_extracted_and_saved(self):
        pages = {LISTING: listing_html(range(4)), **detail_pages(range(4))}
        config = RunConfig(start_urls=[LISTING], max_pages=1, use_api_first=False)

        controller, summary, sink = await run(config, FakeFetcher(pages))

        assert sink.count == 4
        assert sorted(sink.urls()) == sorted(detail_url(i) for i in range(4))
        record = next(r for r in sink.records if r.source_url == detail_url(2))
        assert record.title == "Job 2"
        assert record.origin == 'markup'
        assert record.category == "Design"
        assert summary.saved == 4
        assert summary.states['extracted'] == 5

    @pytest.mark.asyncio
    async def test_budget_never_exceeded(self):
        """Test that concurrent workers never save more than results_wanted."""
        pages = {
            LISTING: listing_html(range(10)),
            f"{LISTING}/2": listing_html(range(10, 20)),
            f"{LISTING}/3": listing_html(range(20, 30)),
            **detail_pages(range(30)),
        }
        config = RunConfig(start_urls=[LISTING], results_wanted=3, max_pages=5,
                           max_concurrency=5, use_api_first=False)

        controller, summary, sink = await run(config, FakeFetcher(pages))

        assert sink.count == 3
        assert controller.state.saved_count == 3
        assert len(set(sink.urls())) == 3
        assert summary.saved == 3

    @pytest.mark.asyncio
    async def test_pagination_stops_at_page_limit(self):
        pages = {
            LISTING: listing_html([1]),
            f"{LISTING}/2": listing_html([2]),
            f"{LISTING}/3": listing_html([3]),
            **detail_pages([1, 2, 3]),
        }
        fetcher = FakeFetcher(pages)
        config = RunConfig(start_urls=[LISTING], max_pages=2, use_api_first=False)

        await run(config, fetcher)

        assert sorted(fetcher.fetched_urls(TargetKind.LIST)) == [LISTING, f"{LISTING}/2"]

    @pytest.mark.asyncio
    async def test_dedupe_across_listing_pages(self):
        """Test that a detail URL seen on two listing pages is fetched once."""
        pages = {
            LISTING: listing_html([1, 2]),
            f"{LISTING}/2": listing_html([2, 3]),
            **detail_pages([1, 2, 3]),
        }
        fetcher = FakeFetcher(pages)
        config = RunConfig(start_urls=[LISTING], max_pages=2, max_concurrency=1, use_api_first=False)

        _, _, sink = await run(config, fetcher)

        assert fetcher.fetched_urls(TargetKind.DETAIL).count(detail_url(2)) == 1
        assert sorted(sink.urls()) == [detail_url(1), detail_url(2), detail_url(3)]

    @pytest.mark.asyncio
    async def test_dedupe_disabled(self):
        """Test that repeated detail URLs are fetched and emitted again without dedupe."""
        pages = {
            LISTING: listing_html([1, 2]),
            f"{LISTING}/2": listing_html([2, 3]),
            **detail_pages([1, 2, 3]),
        }
        fetcher = FakeFetcher(pages)
        config = RunConfig(start_urls=[LISTING], max_pages=2, max_concurrency=1,
                           use_api_first=False, dedupe=False)

        _, _, sink = await run(config, fetcher)

        assert sink.urls().count(detail_url(2)) == 2
        # Listing pages are still fetched once
        assert fetcher.fetched_urls(TargetKind.LIST).count(LISTING) == 1

    @pytest.mark.asyncio
    async def test_low_yield_page_dropped(self):
        pages = {
            LISTING: listing_html([1, 2]),
            detail_url(1): detail_html("Job 1"),
            detail_url(2): "<html><body><span>nothing useful</span></body></html>",
        }
        config = RunConfig(start_urls=[LISTING], max_pages=1, use_api_first=False)

        controller, summary, sink = await run(config, FakeFetcher(pages))

        assert sink.urls() == [detail_url(1)]
        assert controller.stats.get('dropped_low_yield') == 1
        assert summary.dropped == 1

    @pytest.mark.asyncio
    async def test_fetch_failure_marks_target_failed(self):
        pages = {LISTING: listing_html([1, 2, 3]), **detail_pages([1, 2, 3])}
        fetcher = FakeFetcher(pages, failures=[detail_url(2)])
        config = RunConfig(start_urls=[LISTING], max_pages=1, use_api_first=False)

        controller, summary, sink = await run(config, fetcher)

        assert sorted(sink.urls()) == [detail_url(1), detail_url(3)]
        assert summary.failed == 1
        assert summary.states['failed'] == 1
        assert controller.stats.get('fetch_failed') == 1

    @pytest.mark.asyncio
    async def test_sink_error_releases_budget(self):
        pages = {LISTING: listing_html([1, 2, 3]), **detail_pages([1, 2, 3])}
        sink = FailingSink(detail_url(2))
        config = RunConfig(start_urls=[LISTING], results_wanted=5, max_pages=1, use_api_first=False)

        controller, summary, _ = await run(config, FakeFetcher(pages), sink=sink)

        assert sorted(sink.urls()) == [detail_url(1), detail_url(3)]
        assert controller.state.saved_count == 2
        assert summary.failed == 1

    @pytest.mark.asyncio
    async def test_pending_targets_skipped_after_budget(self):
        """Test that targets dequeued after the budget is reached are not fetched."""
        other_listing = f"{SITE}/jobs/writing"
        pages = {
            LISTING: listing_html([1]),
            other_listing: listing_html([2]),
            **detail_pages([1, 2]),
        }
        fetcher = FakeFetcher(pages)
        config = RunConfig(start_urls=[LISTING, other_listing], results_wanted=1, max_pages=1,
                           max_concurrency=1, use_api_first=False)

        controller, _, sink = await run(config, fetcher)

        assert sink.urls() == [detail_url(1)]
        assert detail_url(2) not in fetcher.fetched_urls(TargetKind.DETAIL)
        assert controller.stats.get('skipped_after_budget') == 1


class TestApiPath:
    """Test listing pages served by the remote API."""

    @pytest.mark.asyncio
    async def test_api_records_bypass_html(self):
        api = FakeApi({1: api_records([1, 2]), 2: api_records([3])})
        fetcher = FakeFetcher({})
        config = RunConfig(start_urls=[LISTING], max_pages=2)

        controller, summary, sink = await run(config, fetcher, api=api)

        assert sorted(api.calls) == [1, 2]
        assert fetcher.fetched == []
        assert sorted(sink.urls()) == [detail_url(1), detail_url(2), detail_url(3)]
        assert all(r.origin == 'api' for r in sink.records)
        assert controller.stats.get('api_pages') == 2
        assert summary.failed == 0

    @pytest.mark.asyncio
    async def test_api_records_respect_budget_and_dedupe(self):
        api = FakeApi({1: api_records([1, 1, 2, 3])})
        config = RunConfig(start_urls=[LISTING], results_wanted=2, max_pages=3)

        controller, _, sink = await run(config, FakeFetcher({}), api=api)

        assert sink.urls() == [detail_url(1), detail_url(2)]
        assert controller.stats.get('duplicates') == 1
        assert controller.stats.get('budget_rejected') == 1
        # Budget reached: no next page
        assert api.calls == [1]

    @pytest.mark.asyncio
    async def test_api_records_without_title_or_description_dropped(self):
        """Test that API records go through the same acceptance gate as detail pages."""
        empty = Record(source_url=detail_url(7), origin='api')
        api = FakeApi({1: [empty] + api_records([8])})
        config = RunConfig(start_urls=[LISTING], max_pages=1)

        controller, _, sink = await run(config, FakeFetcher({}), api=api)

        assert sink.urls() == [detail_url(8)]
        assert all(r.is_acceptable() for r in sink.records)
        assert controller.stats.get('dropped_low_yield') == 1

    @pytest.mark.asyncio
    async def test_url_only_api_records_skip_acceptance_gate(self):
        api = FakeApi({1: [Record(source_url=detail_url(7), origin='api')]})
        config = RunConfig(start_urls=[LISTING], max_pages=1, collect_details=False)

        controller, _, sink = await run(config, FakeFetcher({}), api=api)

        assert sink.urls() == [detail_url(7)]
        assert controller.stats.get('dropped_low_yield') == 0

    @pytest.mark.asyncio
    async def test_collect_details_false_strips_api_records(self):
        api = FakeApi({1: api_records([1], category="Design")})
        config = RunConfig(start_urls=[LISTING], max_pages=1, collect_details=False)

        _, _, sink = await run(config, FakeFetcher({}), api=api)

        assert [r.to_dict() for r in sink.records] == [
            {'url': detail_url(1), 'category': "Design", '_source': "freelancer.com"},
        ]


class TestUrlOnlyMode:
    """Test collect_details=false on the HTML path."""

    @pytest.mark.asyncio
    async def test_no_detail_targets_created(self):
        pages = {LISTING: (FIXTURES / 'listing.html').read_text(encoding='utf-8')}
        fetcher = FakeFetcher(pages)
        config = RunConfig(start_urls=[LISTING], max_pages=1, collect_details=False,
                           use_api_first=False)

        controller, _, sink = await run(config, fetcher)

        assert fetcher.fetched_urls(TargetKind.DETAIL) == []
        assert controller.stats.get('detail_enqueued') == 0
        assert sink.count == 8
        for record in sink.records:
            assert set(record.to_dict()) == {'url', 'category', '_source'}
            assert record.category == "Design"


class TestSeeding:
    """Test seed handling and configuration errors."""

    @pytest.mark.asyncio
    async def test_no_usable_seed_is_fatal(self):
        config = RunConfig(start_urls=["ftp://example.com/jobs"], use_api_first=False)
        fetcher = FakeFetcher({})

        with pytest.raises(ConfigurationError):
            await run(config, fetcher)
        assert fetcher.fetched == []

    @pytest.mark.asyncio
    async def test_seed_built_from_category(self):
        pages = {f"{SITE}/jobs/graphic-design": listing_html([])}
        fetcher = FakeFetcher(pages)
        config = RunConfig(category="Graphic Design", max_pages=1, use_api_first=False)

        await run(config, fetcher)

        assert fetcher.fetched_urls(TargetKind.LIST) == [f"{SITE}/jobs/graphic-design"]

    @pytest.mark.asyncio
    async def test_unapplied_filters_logged(self, caplog):
        config = RunConfig(start_urls=[LISTING], max_pages=1, use_api_first=False,
                           job_type='hourly', min_budget=50)

        with caplog.at_level(logging.WARNING):
            await run(config, FakeFetcher({LISTING: listing_html([])}))

        assert "not applied" in caplog.text
        assert "job_type" in caplog.text
