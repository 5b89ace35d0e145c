"""
HTTP client with retries, backoff, politeness delay and Retry-After support.
"""
import os
import json
import time
import random
import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

DEFAULT_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
DEFAULT_REFERER = "https://www.freelancer.com/jobs"
DEFAULT_TIMEOUT = 60.0
MAX_RETRIES = 5
MAX_JITTER_MS = 1500
RETRYABLE_STATUSES = {429, 500, 502, 503, 504}

HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8"
JSON_ACCEPT = "application/json, text/plain, */*"


class FetchError(RuntimeError):
    """A request failed: network error, exhausted retries or a non-2xx status."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status_code = status_code


class RetryableStatusError(FetchError):
    """Response status worth retrying (rate limiting, server errors)."""


class HTTPClient:
    """HTTP client with politeness, retries and optional proxy."""

    def __init__(
        self,
        user_agent: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        request_delay_ms: int = 0,
        jitter_ms: int = MAX_JITTER_MS,
        proxy_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_min_wait: float = 2.0,
        retry_max_wait: float = 10.0,
    ):
        self.user_agent = user_agent or os.getenv("CRAWLER_USER_AGENT", DEFAULT_UA)
        self.timeout = httpx.Timeout(timeout)
        self.max_retries = max(0, max_retries)
        self.request_delay_ms = max(0, request_delay_ms)
        self.jitter_ms = max(0, jitter_ms)
        self.proxy_url = proxy_url
        self.transport = transport
        self.retry_min_wait = retry_min_wait
        self.retry_max_wait = retry_max_wait

    def _get_headers(
        self,
        referer: Optional[str] = None,
        accept: str = HTML_ACCEPT,
        custom_headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, str]:
        """Build browser-like request headers."""
        headers = {
            "User-Agent": self.user_agent,
            "Accept": accept,
            "Accept-Language": "en-US,en;q=0.9",
            "Accept-Encoding": "gzip, deflate",
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
            "Referer": referer or DEFAULT_REFERER,
        }
        if accept == HTML_ACCEPT:
            headers.update({
                "Sec-Fetch-Dest": "document",
                "Sec-Fetch-Mode": "navigate",
                "Sec-Fetch-Site": "same-origin",
                "Upgrade-Insecure-Requests": "1",
            })

        if custom_headers:
            headers.update(custom_headers)

        return headers

    def _client(self) -> httpx.AsyncClient:
        kwargs: Dict[str, Any] = {"timeout": self.timeout, "follow_redirects": True}
        if self.transport is not None:
            kwargs["transport"] = self.transport
        elif self.proxy_url:
            kwargs["proxy"] = self.proxy_url
        return httpx.AsyncClient(**kwargs)

    async def _polite_delay(self):
        """Sleep for the configured request delay plus random jitter."""
        if not self.request_delay_ms:
            return
        delay_ms = self.request_delay_ms + random.uniform(0, self.jitter_ms)
        await asyncio.sleep(delay_ms / 1000.0)

    async def _handle_retry_after(self, headers: httpx.Headers, url: str):
        """Handle Retry-After header if present"""
        retry_after = headers.get("Retry-After")
        if not retry_after:
            return
        try:
            wait_seconds = int(retry_after)
        except ValueError:
            # Try parsing as HTTP date (RFC 7231)
            try:
                from email.utils import parsedate_to_datetime
                retry_date = parsedate_to_datetime(retry_after)
                wait_seconds = max(0, int(retry_date.timestamp() - time.time()))
            except (TypeError, ValueError):
                logger.warning(f"[net] Could not parse Retry-After header: {retry_after}")
                return

        wait_seconds = min(wait_seconds, 60)
        if wait_seconds > 0:
            logger.info(f"[net] Retry-After header: waiting {wait_seconds}s for {url}")
            await asyncio.sleep(wait_seconds)

    async def _fetch_once(
        self,
        url: str,
        headers: Dict[str, str],
        params: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, httpx.Headers, bytes]:
        await self._polite_delay()

        async with self._client() as client:
            start_time = time.time()
            response = await client.get(url, headers=headers, params=params)
            elapsed_ms = int((time.time() - start_time) * 1000)

        logger.info(f"[net] GET {response.status_code} {url} ({len(response.content)} bytes, {elapsed_ms}ms)")

        if response.status_code in RETRYABLE_STATUSES:
            if response.status_code in (429, 503):
                await self._handle_retry_after(response.headers, url)
            raise RetryableStatusError(url, f"HTTP {response.status_code}", response.status_code)

        return response.status_code, response.headers, response.content

    async def fetch(
        self,
        url: str,
        referer: Optional[str] = None,
        accept: str = HTML_ACCEPT,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, httpx.Headers, bytes]:
        """
        GET a URL with retries on timeouts, connection errors and retryable statuses.

        Returns:
            (status_code, headers, body)

        Raises:
            FetchError: when every attempt failed
        """
        request_headers = self._get_headers(referer=referer, accept=accept, custom_headers=headers)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries + 1),
                wait=wait_exponential(multiplier=1, min=self.retry_min_wait, max=self.retry_max_wait),
                retry=retry_if_exception_type(
                    (httpx.TimeoutException, httpx.TransportError, RetryableStatusError)
                ),
                reraise=True,
            ):
                with attempt:
                    return await self._fetch_once(url, request_headers, params=params)
        except FetchError as e:
            logger.error(f"[net] Giving up on {url}: {e}")
            raise
        except httpx.TimeoutException as e:
            logger.error(f"[net] Timeout fetching {url}: {e}")
            raise FetchError(url, f"timeout: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"[net] Error fetching {url}: {e}")
            raise FetchError(url, f"network error: {e}") from e

    async def fetch_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        referer: Optional[str] = None,
    ) -> Any:
        """GET a JSON document. Non-2xx statuses raise FetchError; bad JSON raises ValueError."""
        status, _, body = await self.fetch(
            url,
            referer=referer,
            accept=JSON_ACCEPT,
            headers={"X-Requested-With": "XMLHttpRequest", "Sec-Fetch-Mode": "cors", "Sec-Fetch-Dest": "empty"},
            params=params,
        )
        if not 200 <= status < 300:
            raise FetchError(url, f"HTTP {status}", status)
        return json.loads(body.decode('utf-8', errors='replace'))
