"""
HTML page fetcher.

Turns a crawl target into a PageContent, or raises FetchError. A page
that was fetched but is empty is still returned; the caller decides what
an empty page means.
"""
import logging
from typing import Optional

from core.net import FetchError, HTTPClient
from pipeline.models import CrawlTarget
from pipeline.page import PageContent

logger = logging.getLogger(__name__)

MAX_PAGE_KB = 4096


class PageFetcher:
    """Fetches listing and detail pages over HTTP."""

    def __init__(self, http_client: Optional[HTTPClient] = None, max_size_kb: int = MAX_PAGE_KB):
        self.http_client = http_client or HTTPClient()
        self.max_size_kb = max_size_kb

    async def fetch(self, target: CrawlTarget) -> PageContent:
        """
        Fetch a target's page.

        Raises:
            FetchError: network failure, exhausted retries or non-2xx status
        """
        status, headers, body = await self.http_client.fetch(target.url, referer=target.referer)

        if not 200 <= status < 300:
            logger.warning(f"[html_fetch] HTTP {status} for {target.kind.value} {target.url}")
            raise FetchError(target.url, f"HTTP {status}", status)

        if len(body) > self.max_size_kb * 1024:
            logger.warning(f"[html_fetch] Content too large: {len(body)} bytes (limit: {self.max_size_kb}KB) - {target.url}")
            body = body[:self.max_size_kb * 1024]

        html = body.decode(self._charset(headers), errors='ignore')
        if not html.strip():
            logger.info(f"[html_fetch] Empty page: {target.url}")

        return PageContent(target.url, html, status_code=status)

    @staticmethod
    def _charset(headers) -> str:
        content_type = headers.get('content-type', '') if headers else ''
        for part in content_type.split(';'):
            part = part.strip()
            if part.lower().startswith('charset='):
                charset = part.split('=', 1)[1].strip('"\' ')
                try:
                    b''.decode(charset)
                    return charset
                except LookupError:
                    break
        return 'utf-8'
