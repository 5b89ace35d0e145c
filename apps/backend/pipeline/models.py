"""
Data model for the crawl pipeline.

CrawlTarget and PartialExtraction are plain value objects; Record is the
validated output unit handed to the dataset sink.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, field_validator

SOURCE_TAG = "freelancer.com"


class TargetKind(Enum):
    """Kind of page a crawl target points at."""
    LIST = "LIST"
    DETAIL = "DETAIL"


class TargetStatus(Enum):
    """Lifecycle of a crawl target: PENDING -> FETCHED -> terminal state."""
    PENDING = "pending"
    FETCHED = "fetched"
    EXTRACTED = "extracted"
    DROPPED = "dropped"
    FAILED = "failed"


TERMINAL_STATES = (TargetStatus.EXTRACTED, TargetStatus.DROPPED, TargetStatus.FAILED)


@dataclass(frozen=True)
class CrawlTarget:
    """A single fetch target on the frontier. Consumed exactly once."""
    url: str
    kind: TargetKind
    page_number: int = 1
    referer: Optional[str] = None

    @property
    def is_list(self) -> bool:
        return self.kind is TargetKind.LIST


@dataclass
class PartialExtraction:
    """
    Output of a single extraction strategy.

    Every field may be missing; None (or an empty string / empty list)
    means "this strategy found nothing for this field".
    """
    title: Optional[str] = None
    company: Optional[str] = None
    category: Optional[str] = None
    location: Optional[str] = None
    salary_text: Optional[str] = None
    currency: Optional[str] = None
    job_type: Optional[str] = None
    skills: List[str] = field(default_factory=list)
    date_posted: Optional[str] = None
    description_html: Optional[str] = None
    description_text: Optional[str] = None
    external_id: Optional[str] = None
    bid_count: Optional[str] = None
    origin: Optional[str] = None

    def get(self, name: str) -> Optional[str]:
        """Return a field value, treating blank strings as missing."""
        value = getattr(self, name, None)
        if isinstance(value, str):
            value = value.strip()
        return value or None

    def filled_fields(self) -> List[str]:
        """Names of fields that carry a usable value."""
        return [f.name for f in fields(self) if f.name != 'origin' and self.get(f.name)]


# Serialized key for each Record attribute
OUTPUT_KEYS: Dict[str, str] = {
    'title': 'title',
    'company': 'company',
    'category': 'category',
    'location': 'location',
    'salary_text': 'salary',
    'currency': 'currency',
    'job_type': 'job_type',
    'skills': 'skills',
    'date_posted': 'date_posted',
    'description_html': 'description_html',
    'description_text': 'description_text',
    'external_id': 'project_id',
    'bid_count': 'bids_count',
    'source_url': 'url',
    'origin': 'origin',
}


class Record(BaseModel):
    """Canonical output record. ``source_url`` is the identity key."""
    source_url: str
    title: Optional[str] = None
    company: Optional[str] = None
    category: Optional[str] = None
    location: Optional[str] = None
    salary_text: Optional[str] = None
    currency: Optional[str] = None
    job_type: Optional[str] = None
    skills: List[str] = []
    date_posted: Optional[str] = None
    description_html: Optional[str] = None
    description_text: Optional[str] = None
    external_id: Optional[str] = None
    bid_count: Optional[str] = None
    origin: Optional[str] = None

    @field_validator('skills')
    @classmethod
    def _dedupe_skills(cls, value: List[str]) -> List[str]:
        # ordered set: keep first appearance
        seen = set()
        skills = []
        for skill in value:
            skill = (skill or '').strip()
            if skill and skill not in seen:
                seen.add(skill)
                skills.append(skill)
        return skills

    def is_acceptable(self) -> bool:
        """A record is emitted only if it has a title or description text."""
        return bool((self.title or '').strip() or (self.description_text or '').strip())

    def to_dict(self) -> Dict:
        """Serialize to the dataset schema, omitting absent fields."""
        data = {}
        for attr, key in OUTPUT_KEYS.items():
            value = getattr(self, attr)
            if value is None or value == '' or value == []:
                continue
            data[key] = value
        data['_source'] = SOURCE_TAG
        return data
