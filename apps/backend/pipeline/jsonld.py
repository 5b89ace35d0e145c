"""
JSON-LD extractor.

Extracts job information from structured JSON-LD data (Schema.org JobPosting).
"""

import json
import logging
from typing import Any, Dict, List, Optional

from core.normalize import first_non_empty

from .models import PartialExtraction
from .page import PageContent

logger = logging.getLogger(__name__)

JOB_POSTING_TYPE = 'JobPosting'


class JSONLDExtractor:
    """Extracts a job record from the first JobPosting block on a page."""

    name = 'jsonld'

    def extract(self, page: PageContent) -> Optional[PartialExtraction]:
        """
        Scan every ``application/ld+json`` block in document order.

        Returns:
            PartialExtraction built from the first JobPosting candidate, or
            None when no block on the page carries that type.
        """
        scripts = page.soup.find_all('script', type='application/ld+json')

        for script in scripts:
            raw = script.string or script.get_text() or ''
            if not raw.strip():
                continue
            try:
                data = json.loads(raw)
            except (json.JSONDecodeError, TypeError) as e:
                logger.debug(f"Failed to parse JSON-LD on {page.url}: {e}")
                continue

            for item in self._flatten_jsonld(data):
                if self._is_job_posting(item):
                    return self._extract_job_posting(item)

        return None

    def _flatten_jsonld(self, data: Any) -> List[Dict]:
        """Flatten a JSON-LD payload (object, array or @graph) to candidate objects."""
        items = []

        if isinstance(data, dict):
            items.append(data)
            if isinstance(data.get('@graph'), list):
                items.extend(item for item in data['@graph'] if isinstance(item, dict))
        elif isinstance(data, list):
            for element in data:
                items.extend(self._flatten_jsonld(element))

        return items

    def _is_job_posting(self, item: Dict) -> bool:
        """Check if a JSON-LD object is (or includes) the JobPosting type."""
        item_type = item.get('@type', item.get('type'))
        types = item_type if isinstance(item_type, list) else [item_type]
        for value in types:
            if isinstance(value, str) and value.rsplit('/', 1)[-1] == JOB_POSTING_TYPE:
                return True
        return False

    def _extract_job_posting(self, job_data: Dict) -> PartialExtraction:
        """Map JobPosting properties onto a partial record."""
        partial = PartialExtraction(origin=self.name)

        partial.title = first_non_empty([self._as_text(job_data.get('title')),
                                         self._as_text(job_data.get('name'))])

        # Employer/Organization
        org = job_data.get('hiringOrganization')
        if isinstance(org, dict):
            partial.company = self._as_text(org.get('name'))
        elif isinstance(org, str):
            partial.company = org.strip() or None

        partial.location = self._extract_location(job_data.get('jobLocation'))

        salary, currency = self._extract_salary(job_data.get('baseSalary'))
        partial.salary_text = salary
        partial.currency = currency

        partial.date_posted = self._as_text(job_data.get('datePosted'))

        employment_type = job_data.get('employmentType')
        if isinstance(employment_type, list):
            employment_type = ', '.join(str(t) for t in employment_type if t)
        partial.job_type = self._as_text(employment_type)

        # Kept verbatim; text conversion happens at merge time
        description = job_data.get('description')
        if isinstance(description, str) and description.strip():
            partial.description_html = description.strip()

        return partial

    def _extract_location(self, location: Any) -> Optional[str]:
        """Locality, then region, then the place name."""
        if isinstance(location, list):
            location = next((loc for loc in location if isinstance(loc, dict)), None)
        if isinstance(location, str):
            return location.strip() or None
        if not isinstance(location, dict):
            return None

        address = location.get('address')
        if isinstance(address, dict):
            return first_non_empty([
                self._as_text(address.get('addressLocality')),
                self._as_text(address.get('addressRegion')),
                self._as_text(location.get('name')),
            ])
        if isinstance(address, str) and address.strip():
            return address.strip()
        return self._as_text(location.get('name'))

    def _extract_salary(self, base_salary: Any):
        """
        Salary text and currency from ``baseSalary``.

        Prefers a single value; falls back to ``"min-max"`` when both bounds
        are present.
        """
        if base_salary is None:
            return None, None
        if not isinstance(base_salary, dict):
            return self._as_text(base_salary), None

        currency = self._as_text(base_salary.get('currency'))
        value = base_salary.get('value')

        if isinstance(value, dict):
            single = self._as_text(value.get('value'))
            if single:
                return single, currency
            bounds = (value.get('minValue'), value.get('maxValue'))
        else:
            single = self._as_text(value)
            if single:
                return single, currency
            bounds = (base_salary.get('minValue'), base_salary.get('maxValue'))

        low, high = (self._as_text(b) for b in bounds)
        if low and high:
            return f"{low}-{high}", currency
        return None, currency

    @staticmethod
    def _as_text(value: Any) -> Optional[str]:
        if value is None or isinstance(value, (dict, list)):
            return None
        text = str(value).strip()
        return text or None
