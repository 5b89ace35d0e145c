"""
Remote API extractor for listing pages.

Asks the site's JSON projects endpoint for one listing page worth of
projects. Either the API supplies every record of the page, or it supplies
nothing and the caller parses the listing HTML instead; results are never
mixed within a page.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from jsonpath_ng.ext import parse

from core.extraction_heuristics import normalize_url
from core.net import FetchError, HTTPClient
from core.normalize import html_to_text
from pipeline.models import Record

logger = logging.getLogger(__name__)

SITE_ROOT = "https://www.freelancer.com"
API_ENDPOINT = f"{SITE_ROOT}/api/projects/0.1/projects/active"
PAGE_SIZE = 50
API_MAX_RETRIES = 2

PROJECTS_PATH = '$.result.projects'
SKILLS_PATH = '$.jobs[*].name'

# Record field (or intermediate value) -> JSONPath into one project item
FIELD_MAP = {
    'title': '$.title',
    'company': '$.owner.username',
    'description_html': '$.description',
    'currency': '$.currency.code',
    'external_id': '$.id',
    'bid_count': '$.bid_stats.bid_count',
    'location': '$.owner.location.country.name',
    'seo_url': '$.seo_url',
    'project_type': '$.type',
    'time_submitted': '$.time_submitted',
    'budget': '$.budget',
}

_COMPILED_PATHS = {name: parse(path) for name, path in FIELD_MAP.items()}
_PROJECTS_EXPR = parse(PROJECTS_PATH)
_SKILLS_EXPR = parse(SKILLS_PATH)


class RemoteApiExtractor:
    """Fetches listing pages from the JSON projects API."""

    name = 'api'

    def __init__(self, http_client: Optional[HTTPClient] = None,
                 endpoint: str = API_ENDPOINT, page_size: int = PAGE_SIZE):
        self.http_client = http_client or HTTPClient(max_retries=API_MAX_RETRIES)
        self.endpoint = endpoint
        self.page_size = page_size

    def build_params(self, page_number: int, keyword: str = '', category: str = '') -> Dict[str, str]:
        """Query parameters for one listing page."""
        params = {
            'compact': 'true',
            'limit': str(self.page_size),
            'offset': str((max(1, page_number) - 1) * self.page_size),
            'full_description': 'true',
            'job_details': 'true',
            'user_details': 'true',
        }
        if keyword:
            params['query'] = keyword
        if category:
            params['jobs[]'] = category
        return params

    async def fetch_page(self, page_number: int, keyword: str = '',
                         category: str = '') -> Optional[List[Record]]:
        """
        Fetch and map one listing page.

        Returns:
            Records for the whole page, or None on any failure (network
            error, bad status, malformed JSON, missing field path, empty page)
        """
        params = self.build_params(page_number, keyword, category)
        try:
            payload = await self.http_client.fetch_json(self.endpoint, params=params)
        except (FetchError, httpx.HTTPError, ValueError) as e:
            logger.warning(f"[api_fetch] API fetch failed for page {page_number}: {e}")
            return None

        records = self.parse_projects(payload, category)
        if records is None:
            logger.warning(f"[api_fetch] Unusable API response for page {page_number}")
            return None

        logger.info(f"[api_fetch] API: fetched {len(records)} projects from page {page_number}")
        return records

    def parse_projects(self, payload: Any, category: str = '') -> Optional[List[Record]]:
        """Map an API payload to records; None if the payload is structurally invalid or empty."""
        matches = _PROJECTS_EXPR.find(payload) if isinstance(payload, dict) else []
        if not matches or not isinstance(matches[0].value, list):
            return None

        projects = matches[0].value
        if not projects:
            return None

        records = []
        for item in projects:
            record = self._map_project(item, category)
            if record is None:
                return None
            records.append(record)
        return records

    def _map_project(self, item: Any, category: str) -> Optional[Record]:
        """Map one project item; None when the item lacks an identity."""
        if not isinstance(item, dict):
            logger.debug(f"[api_fetch] Non-object project item: {item!r}")
            return None

        values = {name: self._extract_field_value(item, name) for name in FIELD_MAP}

        slug = values['seo_url'] or values['external_id']
        url = normalize_url(f"{SITE_ROOT}/projects/{slug}") if slug is not None else None
        if not url:
            logger.debug(f"[api_fetch] Project without seo_url or id: {json.dumps(item)[:200]}")
            return None

        description = values['description_html']
        skills = [match.value for match in _SKILLS_EXPR.find(item) if isinstance(match.value, str)]

        return Record(
            source_url=url,
            title=self._as_text(values['title']),
            company=self._as_text(values['company']),
            category=category or None,
            location=self._as_text(values['location']),
            salary_text=self._format_budget(values['budget'], values['currency']),
            currency=self._as_text(values['currency']),
            job_type='Hourly' if values['project_type'] == 'hourly' else 'Fixed Price',
            skills=skills,
            date_posted=self._format_timestamp(values['time_submitted']),
            description_html=self._as_text(description),
            description_text=html_to_text(description) if isinstance(description, str) else None,
            external_id=self._as_text(values['external_id']),
            bid_count=self._as_text(values['bid_count']),
            origin=self.name,
        )

    @staticmethod
    def _extract_field_value(item: Dict, name: str) -> Any:
        matches = _COMPILED_PATHS[name].find(item)
        if matches:
            return matches[0].value
        return None

    @staticmethod
    def _format_budget(budget: Any, currency: Any) -> Optional[str]:
        """``"<CUR> <min>-<max>"`` with USD as the default currency."""
        if not isinstance(budget, dict) or not budget:
            return None
        low = budget.get('minimum')
        high = budget.get('maximum')
        low = '' if low is None else low
        high = '' if high is None else high
        return f"{currency or 'USD'} {low}-{high}"

    @staticmethod
    def _format_timestamp(value: Any) -> Optional[str]:
        """Epoch seconds -> ISO-8601 UTC."""
        if value in (None, ''):
            return None
        try:
            dt = datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            logger.debug(f"[api_fetch] Bad time_submitted value: {value!r}")
            return None
        return dt.strftime('%Y-%m-%dT%H:%M:%SZ')

    @staticmethod
    def _as_text(value: Any) -> Optional[str]:
        if value is None or isinstance(value, (dict, list)):
            return None
        text = str(value).strip()
        return text or None
