"""
Record merger.

Reduces an ordered list of partial extractions into one canonical Record.
For every field the first source (in priority order) with a non-empty value
wins, except for a few fields that follow their own rule (see the table
below ``MERGED_FIELDS``).
"""

from typing import Optional, Sequence

from core.extraction_heuristics import guess_category_from_url
from core.normalize import html_to_text

from .models import PartialExtraction, Record

# Fields resolved by "first non-empty source wins"
MERGED_FIELDS = [
    'title',
    'company',
    'location',
    'salary_text',
    'currency',
    'job_type',
    'date_posted',
    'description_html',
    'external_id',
    'bid_count',
]

# Fields with a dedicated rule:
#   skills           -> always from the markup source (structured data has no tag list)
#   description_text -> markup text if present, else HTML->text of the winning description_html
#   category         -> requested category, else a source value, else guessed from the URL path
#   origin           -> strategy that supplied the title

MARKUP_ORIGIN = 'markup'


def merge_partials(partials: Sequence[Optional[PartialExtraction]], source_url: str,
                   category: Optional[str] = None) -> Record:
    """
    Merge partial extractions, highest priority first.

    Args:
        partials: Partial extractions in strategy-priority order; None
            entries (strategies that found nothing) are skipped.
        source_url: URL of the page the partials came from.
        category: Category requested for the crawl, if any.

    Returns:
        The merged Record. Acceptance is decided by the caller.
    """
    sources = [p for p in partials if p is not None]
    values = {}

    for field_name in MERGED_FIELDS:
        for partial in sources:
            value = partial.get(field_name)
            if value:
                values[field_name] = value
                break

    title_source = next((p for p in sources if p.get('title')), None)
    values['origin'] = title_source.origin if title_source else None

    markup = next((p for p in sources if p.origin == MARKUP_ORIGIN), None)
    values['skills'] = list(markup.skills) if markup else []

    description_text = markup.get('description_text') if markup else None
    if not description_text:
        # Derived from whichever description HTML won
        description_text = html_to_text(values.get('description_html')) or None
        if not description_text:
            description_text = next((p.get('description_text') for p in sources
                                     if p.get('description_text')), None)
    values['description_text'] = description_text

    values['category'] = resolve_category(category, sources, source_url)

    return Record(source_url=source_url, **values)


def resolve_category(category: Optional[str], sources: Sequence[PartialExtraction],
                     source_url: str) -> Optional[str]:
    """Requested category, then any source value, then a URL-path guess."""
    if category and category.strip():
        return category.strip()
    for partial in sources:
        value = partial.get('category')
        if value:
            return value
    return guess_category_from_url(source_url)
