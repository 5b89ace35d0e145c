"""
Link discovery for listing pages.

Finds detail-page links and the URL of the next listing page.
"""

import logging
import re
from typing import List, Optional
from urllib.parse import urlparse, urlunparse

from core.extraction_heuristics import normalize_url, to_absolute

from .page import PageContent

logger = logging.getLogger(__name__)

DETAIL_MARKER = '/projects/'
EXCLUDED_SEGMENTS = ('contests', 'repost')

NEXT_PAGE_SELECTORS = [
    'link[rel~="next"][href]',
    'a[rel~="next"][href]',
]

_NUMERIC_SEGMENT = re.compile(r'^\d+$')
_QUERY_OR_FRAGMENT = re.compile(r'[?#]')


class LinkDiscovery:
    """Result of scanning one listing page."""

    def __init__(self, detail_urls: List[str], next_page_url: Optional[str]):
        self.detail_urls = detail_urls
        self.next_page_url = next_page_url

    def __repr__(self):
        return f"LinkDiscovery(detail_urls={len(self.detail_urls)}, next_page_url={self.next_page_url!r})"


def is_detail_href(href: str) -> bool:
    """Detail links contain the project marker and no excluded path segment."""
    if DETAIL_MARKER not in href:
        return False
    path = _QUERY_OR_FRAGMENT.split(href, 1)[0]
    segments = [s.lower() for s in path.split('/') if s]
    return not any(segment in EXCLUDED_SEGMENTS for segment in segments)


def find_detail_urls(page: PageContent, base_url: Optional[str] = None) -> List[str]:
    """Absolute detail URLs in first-seen order, without duplicates."""
    base_url = base_url or page.url
    urls = []
    seen = set()

    for link in page.soup.find_all('a', href=True):
        href = link['href'].strip()
        if not is_detail_href(href):
            continue
        absolute = to_absolute(href, base_url)
        # Resolution can move the marker (e.g. "../projects/x" against odd bases)
        if not absolute or not is_detail_href(absolute):
            continue
        if absolute not in seen:
            seen.add(absolute)
            urls.append(absolute)

    return urls


def synthesize_next_page_url(current_url: str, current_page: int) -> Optional[str]:
    """
    Build the next listing URL by replacing (or adding) the trailing page number.

    ``.../jobs/design/3`` at page 3 -> ``.../jobs/design/4``;
    ``.../jobs/design`` at page 1 -> ``.../jobs/design/2``.
    """
    try:
        parsed = urlparse(current_url)
    except ValueError:
        return None
    if not parsed.scheme or not parsed.netloc:
        return None

    parts = [part for part in parsed.path.split('/') if part]
    if parts and _NUMERIC_SEGMENT.match(parts[-1]):
        parts.pop()
    parts.append(str(current_page + 1))

    return normalize_url(urlunparse(parsed._replace(path='/' + '/'.join(parts))))


def find_next_page_url(page: PageContent, current_page: int, base_url: Optional[str] = None) -> Optional[str]:
    """Explicit rel="next" navigation when present, synthesized otherwise."""
    base_url = base_url or page.url
    for selector in NEXT_PAGE_SELECTORS:
        element = page.soup.select_one(selector)
        if element is not None:
            next_url = to_absolute(element.get('href'), base_url)
            if next_url:
                return next_url
    return synthesize_next_page_url(base_url, current_page)


def discover_links(page: PageContent, current_page: int, base_url: Optional[str] = None) -> LinkDiscovery:
    """Scan a listing page for detail links and the next-page URL."""
    base_url = base_url or page.url
    detail_urls = find_detail_urls(page, base_url)
    next_page_url = find_next_page_url(page, current_page, base_url)
    logger.debug(f"Link discovery on {base_url}: {len(detail_urls)} detail links, next={next_page_url}")
    return LinkDiscovery(detail_urls, next_page_url)
