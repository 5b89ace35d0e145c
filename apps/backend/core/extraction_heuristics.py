"""
URL heuristics shared by link discovery, the merger and the frontier.

These helpers never raise on bad input: malformed URLs come back as None
so callers can simply discard them.
"""
import logging
from typing import List, Optional, Sequence
from urllib.parse import parse_qs, unquote, urlencode, urljoin, urlparse, urlunparse

logger = logging.getLogger(__name__)

# Tracking parameters to strip
TRACKING_PARAMS = ['utm_source', 'utm_medium', 'utm_campaign', 'utm_term',
                   'utm_content', 'fbclid', 'gclid', '_ga']

# Path segments after which the category slug appears
CATEGORY_PREFIXES = ('jobs', 'projects')


def normalize_url(url: str) -> Optional[str]:
    """
    Normalize an absolute URL for deduplication:
    - Lowercase scheme and host
    - Strip tracking parameters
    - Drop the fragment

    Returns None for URLs that cannot be parsed or are not http(s).
    """
    try:
        parsed = urlparse(url.strip())
        scheme = parsed.scheme.lower()
        if scheme not in ('http', 'https') or not parsed.netloc:
            return None
        # Accessing .port validates the netloc
        parsed.port

        query_params = parse_qs(parsed.query, keep_blank_values=True)
        filtered_params = {k: v for k, v in query_params.items()
                           if k.lower() not in TRACKING_PARAMS}
        new_query = urlencode(filtered_params, doseq=True) if filtered_params else ''

        return urlunparse((
            scheme,
            parsed.netloc.lower(),
            parsed.path or '/',
            parsed.params,
            new_query,
            ''
        ))
    except (ValueError, AttributeError) as e:
        logger.debug(f"Discarding malformed URL {url!r}: {e}")
        return None


def to_absolute(href: Optional[str], base_url: str) -> Optional[str]:
    """Resolve ``href`` against ``base_url`` and normalize it."""
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith('#') or href.lower().startswith(('javascript:', 'mailto:', 'tel:')):
        return None
    try:
        absolute = urljoin(base_url, href)
    except ValueError as e:
        logger.debug(f"Discarding unresolvable href {href!r}: {e}")
        return None
    return normalize_url(absolute)


def path_segments(url: str) -> List[str]:
    """Non-empty path segments of a URL (empty list when unparseable)."""
    try:
        path = urlparse(url).path
    except ValueError:
        return []
    return [unquote(part) for part in path.split('/') if part]


def guess_category_from_url(url: str, prefixes: Sequence[str] = CATEGORY_PREFIXES) -> Optional[str]:
    """
    Guess a category from the URL path.

    Takes the segment after a known prefix, converts hyphens to spaces and
    title-cases it: ``/jobs/graphic-design/3`` -> ``Graphic Design``,
    ``/projects/php/build-a-site-123`` -> ``Php``. Numeric segments never
    count as a category, and under ``projects`` the last segment is the
    project slug, not a category.
    """
    segments = path_segments(url)
    for index, segment in enumerate(segments[:-1]):
        if segment.lower() not in prefixes:
            continue
        candidate = segments[index + 1]
        if candidate.isdigit():
            return None
        if segment.lower() == 'projects' and index + 1 == len(segments) - 1:
            return None
        return candidate.replace('-', ' ').strip().title() or None
    return None
