"""
Markup extractor.

Pulls record fields from visible markup. Class names on the source site
change between deployments, so every field is resolved through an ordered
locator table: most specific structure first, generic text patterns last.
"""

import re
import logging
from typing import List, Optional, Sequence
from urllib.parse import urlparse

from bs4 import Tag

from core.normalize import clean_text, html_to_text

from .models import PartialExtraction
from .page import PageContent

logger = logging.getLogger(__name__)

TITLE_LOCATORS = [
    'h1.PageProjectViewLogout-title',
    'h1[class*="project-title"]',
    '[class*="ProjectTitle"]',
    '.title',
    'h1',
]

BUDGET_LOCATORS = [
    'p.PageProjectViewLogout-budget',
    '[class*="ProjectBudget"]',
    '[class*="budget" i]',
    '[class*="price" i]',
]

DESCRIPTION_LOCATORS = [
    'div.PageProjectViewLogout-detail',
    '.project-details',
    '[class*="ProjectDescription"]',
    '[class*="description" i]',
    'article',
    '[role="article"]',
]

COMPANY_LOCATORS = [
    '[class*="AboutBuyer"] a',
    '[class*="client"] a',
    '[class*="employer"] a',
    '.ClientInfo a',
]

JOB_TYPE_LOCATORS = [
    '[class*="type" i]',
]

# (label, phrases) in the order they are reported
JOB_TYPE_FAMILIES = [
    ('Fixed Price', ['fixed price', 'fixed-price', 'fixed budget']),
    ('Hourly', ['hourly', 'per hour']),
]

BUDGET_PATTERN = re.compile(
    r'(?:[$€£₹]|\b(?:USD|EUR|GBP|INR|AUD|CAD)\b)\s*\d[\d,.]*'
    r'(?:\s*[-–]\s*(?:[$€£₹]\s*)?\d[\d,.]*)?(?:\s*(?:USD|EUR|GBP|INR|AUD|CAD)\b)?',
    re.IGNORECASE
)
POSTED_PATTERN = re.compile(
    r'\bposted\s+(?:\d+\s+\w+\s+ago|less than (?:a|an|\d+) \w+ ago)',
    re.IGNORECASE
)
URL_ID_PATTERN = re.compile(r'(?:^|-)(\d+)$')
PROJECT_ID_PATTERN = re.compile(r'Project ID[:#\s]*(\d+)', re.IGNORECASE)
BIDS_PATTERN = re.compile(r'(\d+)\s*bids?\b', re.IGNORECASE)
SKILL_LINK_PATTERN = re.compile(r'^/jobs/[^/]+/?$')

MIN_SKILL_LENGTH = 2
MAX_SKILL_LENGTH = 49


class MarkupExtractor:
    """Best-effort extraction from page markup. Never returns None."""

    name = 'markup'

    def extract(self, page: PageContent, url: Optional[str] = None) -> PartialExtraction:
        """Run every field's locator chain against the page."""
        url = url or page.url
        soup = page.soup
        text = page.text

        partial = PartialExtraction(origin=self.name)
        partial.title = self._first_text(soup, TITLE_LOCATORS)
        partial.company = self._first_text(soup, COMPANY_LOCATORS)
        partial.salary_text = self._extract_budget(soup, text)
        partial.description_html, partial.description_text = self._extract_description(soup)
        partial.job_type = self._extract_job_type(soup, text)
        partial.skills = self._extract_skills(soup)
        partial.date_posted = self._extract_posted_date(soup, text)
        partial.external_id = self._extract_project_id(url, text)
        partial.bid_count = self._extract_bids(text)

        logger.debug(f"Markup extraction for {url}: {partial.filled_fields()}")
        return partial

    def _first_text(self, soup, locators: Sequence[str]) -> Optional[str]:
        """Text of the first locator match that is non-empty after trimming."""
        for selector in locators:
            for element in soup.select(selector):
                value = clean_text(element.get_text(' '))
                if value:
                    return value
        return None

    def _extract_budget(self, soup, text: str) -> Optional[str]:
        budget = self._first_text(soup, BUDGET_LOCATORS)
        if budget:
            return budget

        match = BUDGET_PATTERN.search(text)
        if match:
            return clean_text(match.group(0))
        return None

    def _extract_description(self, soup):
        """Inner HTML and normalized text of the first non-empty description container."""
        for selector in DESCRIPTION_LOCATORS:
            for element in soup.select(selector):
                html = element.decode_contents().strip()
                description_text = html_to_text(html)
                if description_text:
                    return html, description_text
        return None, None

    def _extract_job_type(self, soup, text: str) -> Optional[str]:
        """Keyword scan over page text, then over type-labelled elements."""
        job_type = self._match_job_type(text.lower())
        if job_type:
            return job_type

        for selector in JOB_TYPE_LOCATORS:
            for element in soup.select(selector):
                job_type = self._match_job_type(element.get_text(' ').lower())
                if job_type:
                    return job_type
        return None

    def _match_job_type(self, lowered: str) -> Optional[str]:
        """Family whose earliest phrase occurs first in the text."""
        best_label = None
        best_index = None
        for label, phrases in JOB_TYPE_FAMILIES:
            positions = [lowered.find(phrase) for phrase in phrases]
            positions = [p for p in positions if p >= 0]
            if positions and (best_index is None or min(positions) < best_index):
                best_label = label
                best_index = min(positions)
        return best_label

    def _extract_skills(self, soup) -> List[str]:
        """Texts of taxonomy links, filtered and deduplicated in order."""
        skills = []
        seen = set()
        for link in soup.find_all('a', href=True):
            if not self._is_skill_link(link):
                continue
            skill = clean_text(link.get_text(' '))
            if not MIN_SKILL_LENGTH <= len(skill) <= MAX_SKILL_LENGTH:
                continue
            if 'browse' in skill.lower():
                continue
            if skill not in seen:
                seen.add(skill)
                skills.append(skill)
        return skills

    @staticmethod
    def _is_skill_link(link: Tag) -> bool:
        try:
            path = urlparse(link['href'].strip()).path
        except ValueError:
            return False
        return bool(SKILL_LINK_PATTERN.match(path))

    def _extract_posted_date(self, soup, text: str) -> Optional[str]:
        time_el = soup.find('time')
        if time_el:
            value = (time_el.get('datetime') or '').strip() or clean_text(time_el.get_text(' '))
            if value:
                return value

        match = POSTED_PATTERN.search(text)
        if match:
            return clean_text(match.group(0))
        return None

    def _extract_project_id(self, url: str, text: str) -> Optional[str]:
        try:
            segments = [s for s in urlparse(url).path.split('/') if s]
        except ValueError:
            segments = []
        if segments:
            match = URL_ID_PATTERN.search(segments[-1])
            if match:
                return match.group(1)

        match = PROJECT_ID_PATTERN.search(text)
        if match:
            return match.group(1)
        return None

    def _extract_bids(self, text: str) -> Optional[str]:
        match = BIDS_PATTERN.search(text)
        if match:
            return match.group(1)
        return None
