"""
Detail-page extraction orchestrator.

Runs the strategy chain in priority order and merges the results:
1. JSON-LD (Schema.org JobPosting)
2. Markup locator tables

Each strategy is a plain ``Page -> PartialExtraction | None`` callable, so
strategies stay independently testable and the merger never depends on any
one strategy's shape.
"""

import logging
from typing import Callable, List, Optional, Sequence, Tuple

from .heuristics import MarkupExtractor
from .jsonld import JSONLDExtractor
from .merger import merge_partials
from .models import PartialExtraction, Record
from .page import PageContent

logger = logging.getLogger(__name__)

Strategy = Callable[[PageContent], Optional[PartialExtraction]]


class Extractor:
    """Main extraction orchestrator for detail pages."""

    def __init__(self, strategies: Optional[Sequence[Tuple[str, Strategy]]] = None):
        if strategies is None:
            strategies = [
                (JSONLDExtractor.name, JSONLDExtractor().extract),
                (MarkupExtractor.name, MarkupExtractor().extract),
            ]
        self.strategies: List[Tuple[str, Strategy]] = list(strategies)

    def extract_partials(self, page: PageContent) -> List[Optional[PartialExtraction]]:
        """Run every strategy; a failing strategy contributes None."""
        partials = []
        for name, strategy in self.strategies:
            try:
                partial = strategy(page)
            except (ValueError, TypeError, AttributeError, KeyError) as e:
                logger.warning(f"Strategy {name} failed on {page.url}: {e}", exc_info=True)
                partial = None
            if partial is not None and partial.origin is None:
                partial.origin = name
            partials.append(partial)
        return partials

    def extract_record(self, page: PageContent, category: Optional[str] = None) -> Record:
        """
        Extract one merged record from a detail page.

        Args:
            page: Fetched detail page
            category: Category requested for the crawl (optional)

        Returns:
            Merged Record; the caller applies the acceptance gate
        """
        partials = self.extract_partials(page)
        record = merge_partials(partials, source_url=page.url, category=category)
        logger.debug(f"Merged record for {page.url} (title origin: {record.origin})")
        return record
