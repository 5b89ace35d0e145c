"""
Frontier controller - walks listing pages and collects records.

A bounded pool of asyncio workers drains one queue of crawl targets:
1. LIST targets try the remote API first; on fallback the listing HTML is
   parsed for detail links and the next page
2. DETAIL targets are fetched, run through the extraction chain and gated
3. Accepted records go to the dataset sink in emission order

All shared state lives in FrontierState and is only touched through its
try-reserve methods.
"""

import asyncio
import itertools
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from core.config import ConfigurationError, RunConfig
from core.extraction_heuristics import guess_category_from_url, normalize_url
from core.net import FetchError, HTTPClient
from pipeline.extractor import Extractor
from pipeline.links import discover_links, synthesize_next_page_url
from pipeline.models import CrawlTarget, Record, TargetKind, TargetStatus, TERMINAL_STATES
from pipeline.monitoring import CrawlStats

from .api_fetch import API_MAX_RETRIES, RemoteApiExtractor
from .frontier import FrontierState
from .html_fetch import PageFetcher

logger = logging.getLogger(__name__)


@dataclass
class CrawlSummary:
    """Outcome of one crawl run."""
    saved: int
    dropped: int
    failed: int
    states: Dict[str, int] = field(default_factory=dict)
    stats: Dict = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            'saved': self.saved,
            'dropped': self.dropped,
            'failed': self.failed,
            'states': self.states,
            'stats': self.stats,
        }


class FrontierController:
    """
    Owns the crawl frontier for one run.

    Collaborators (page fetcher, remote API, dataset sink, extractor) can be
    injected; defaults are built from the run configuration.
    """

    def __init__(
        self,
        config: RunConfig,
        sink,
        fetcher: Optional[PageFetcher] = None,
        api: Optional[RemoteApiExtractor] = None,
        extractor: Optional[Extractor] = None,
        stats: Optional[CrawlStats] = None,
    ):
        self.config = config
        self.sink = sink
        self.fetcher = fetcher or PageFetcher(self._http_client(config.max_request_retries))
        if api is None and config.use_api_first:
            api = RemoteApiExtractor(self._http_client(API_MAX_RETRIES))
        self.api = api if config.use_api_first else None
        self.extractor = extractor or Extractor()
        self.stats = stats or CrawlStats()

        self.state = FrontierState(
            budget=config.results_wanted,
            page_budget_per_chain=config.max_pages,
            dedupe=config.dedupe,
        )
        self.target_states: Dict[int, TargetStatus] = {}
        self.outcomes: List[Tuple[CrawlTarget, TargetStatus]] = []
        self._ids = itertools.count(1)
        self._queue: Optional[asyncio.Queue] = None

    def _http_client(self, max_retries: int) -> HTTPClient:
        return HTTPClient(
            user_agent=self.config.user_agent,
            timeout=self.config.request_timeout,
            max_retries=max_retries,
            request_delay_ms=self.config.request_delay_ms,
            proxy_url=self.config.proxy_url,
        )

    async def run(self) -> CrawlSummary:
        """
        Crawl until the frontier is exhausted.

        Raises:
            ConfigurationError: if no seed target can be produced
        """
        seeds = self.config.seed_urls()
        self._warn_unapplied_filters()

        self._queue = asyncio.Queue()
        for url in seeds:
            if self.state.try_reserve_url(url, force=True):
                self._enqueue(CrawlTarget(url, TargetKind.LIST, page_number=1))
        if self._queue.empty():
            raise ConfigurationError("No seed target could be enqueued")

        logger.info(f"[frontier] Starting crawl with {len(seeds)} seed URL(s), "
                    f"{self.config.max_concurrency} worker(s)")

        workers = [
            asyncio.create_task(self._worker(i))
            for i in range(self.config.max_concurrency)
        ]
        try:
            await self._queue.join()
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        summary = self._summary()
        logger.info(
            f"[frontier] Finished: saved={summary.saved}, dropped={summary.dropped}, "
            f"failed={summary.failed}"
        )
        self.stats.log_summary()
        return summary

    def _warn_unapplied_filters(self):
        filters = self.config.unapplied_filters()
        if filters:
            logger.warning(f"[frontier] Filters accepted but not applied: {filters}")

    def _enqueue(self, target: CrawlTarget):
        target_id = next(self._ids)
        self.target_states[target_id] = TargetStatus.PENDING
        self._queue.put_nowait((target_id, target))
        if target.kind is TargetKind.DETAIL:
            self.stats.incr('detail_enqueued')

    def _set_status(self, target_id: int, status: TargetStatus):
        self.target_states[target_id] = status

    async def _worker(self, worker_id: int):
        while True:
            target_id, target = await self._queue.get()
            try:
                status = await self._process(target_id, target)
            except Exception as e:
                logger.error(f"[frontier] Worker {worker_id} failed on {target.url}: {e}", exc_info=True)
                status = TargetStatus.FAILED
            self._set_status(target_id, status)
            self.outcomes.append((target, status))
            self._queue.task_done()

    async def _process(self, target_id: int, target: CrawlTarget) -> TargetStatus:
        if self.state.budget_reached():
            logger.debug(f"[frontier] Budget reached, skipping {target.kind.value} {target.url}")
            self.stats.incr('skipped_after_budget')
            return TargetStatus.DROPPED

        try:
            if target.is_list:
                return await self._process_list(target_id, target)
            return await self._process_detail(target_id, target)
        except FetchError as e:
            self.stats.incr('fetch_failed')
            logger.error(f"[frontier] Fetch failed for {target.kind.value} {target.url}: {e}")
            return TargetStatus.FAILED

    async def _process_list(self, target_id: int, target: CrawlTarget) -> TargetStatus:
        page_number = target.page_number
        self.stats.incr('list_pages')
        logger.info(f"[frontier] Processing LIST page {page_number}: {target.url}")

        if self.api is not None:
            records = await self.api.fetch_page(page_number, self.config.keyword, self.config.category)
            if records is not None:
                self._set_status(target_id, TargetStatus.FETCHED)
                self.stats.incr('api_pages')
                for record in records:
                    if not self.config.collect_details:
                        record = Record(source_url=record.source_url, category=record.category)
                    elif not record.is_acceptable():
                        self.stats.incr('dropped_low_yield')
                        logger.warning(f"[frontier] Dropping low-yield API record: {record.source_url}")
                        continue
                    await self._emit(record)
                self._paginate(target, synthesize_next_page_url(target.url, page_number))
                return TargetStatus.EXTRACTED

            self.stats.incr('api_fallbacks')
            logger.warning(f"[frontier] API unavailable for page {page_number}, parsing HTML")

        page = await self.fetcher.fetch(target)
        self._set_status(target_id, TargetStatus.FETCHED)
        self.stats.incr('html_pages')

        links = discover_links(page, page_number, base_url=target.url)
        self.stats.incr('detail_links_found', len(links.detail_urls))
        logger.info(f"[frontier] HTML: found {len(links.detail_urls)} project links on page {page_number}")

        if self.config.collect_details:
            self._enqueue_details(target, links.detail_urls)
        else:
            category = self.config.category or guess_category_from_url(target.url)
            for url in links.detail_urls:
                await self._emit(Record(source_url=url, category=category))

        self._paginate(target, links.next_page_url)
        return TargetStatus.EXTRACTED

    def _enqueue_details(self, target: CrawlTarget, detail_urls: List[str]):
        """Enqueue detail targets, never more than the remaining budget."""
        remaining = self.state.remaining_budget()
        enqueued = 0
        for url in detail_urls:
            if remaining is not None and enqueued >= remaining:
                break
            if not self.state.try_reserve_url(url):
                self.stats.incr('duplicates')
                continue
            self._enqueue(CrawlTarget(url, TargetKind.DETAIL, target.page_number, referer=target.url))
            enqueued += 1

    def _paginate(self, target: CrawlTarget, next_url: Optional[str]):
        """Enqueue the chain's next listing page while budget and page limit allow."""
        if not self.state.can_paginate(target.page_number):
            logger.info(f"[frontier] Pagination stopped after page {target.page_number}: {target.url}")
            return
        next_url = normalize_url(next_url) if next_url else None
        if not next_url:
            return
        # listing pages are never fetched twice, even with dedupe off
        if not self.state.try_reserve_url(next_url, force=True):
            return
        self._enqueue(CrawlTarget(next_url, TargetKind.LIST, target.page_number + 1, referer=target.url))

    async def _process_detail(self, target_id: int, target: CrawlTarget) -> TargetStatus:
        page = await self.fetcher.fetch(target)
        self._set_status(target_id, TargetStatus.FETCHED)

        record = self.extractor.extract_record(page, category=self.config.category or None)
        if not record.is_acceptable():
            self.stats.incr('dropped_low_yield')
            logger.warning(f"[frontier] Dropping low-yield page (no title or description): {target.url}")
            return TargetStatus.DROPPED

        if await self._emit(record):
            return TargetStatus.EXTRACTED
        return TargetStatus.DROPPED

    async def _emit(self, record: Record) -> bool:
        """
        Pass a record through the dedupe and budget gate, then store it.

        Sink errors release the reserved budget unit and propagate.
        """
        url = record.source_url
        if not self.state.try_accept_record(url):
            if self.config.dedupe and self.state.is_emitted(url):
                self.stats.incr('duplicates')
            else:
                self.stats.incr('budget_rejected')
            return False

        try:
            await self.sink.push(record)
        except Exception:
            self.state.release_record(url)
            raise

        self.stats.incr('saved')
        self.stats.record_origin(record.origin)
        logger.info(f"[frontier] Saved record {self.stats.get('saved')}: {url}")
        return True

    def _summary(self) -> CrawlSummary:
        counts = Counter(status.value for status in self.target_states.values())
        states = {status.value: counts.get(status.value, 0) for status in TargetStatus}
        dropped = sum(1 for _, status in self.outcomes if status is TargetStatus.DROPPED)
        failed = sum(1 for _, status in self.outcomes if status is TargetStatus.FAILED)
        unresolved = [tid for tid, status in self.target_states.items() if status not in TERMINAL_STATES]
        if unresolved:
            logger.warning(f"[frontier] {len(unresolved)} target(s) did not reach a terminal state")
        return CrawlSummary(
            saved=self.state.saved_count,
            dropped=dropped,
            failed=failed,
            states=states,
            stats=self.stats.get_stats(),
        )
