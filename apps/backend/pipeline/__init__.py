"""
Listing extraction pipeline.

Turns fetched listing and detail pages into canonical records: JSON-LD and
markup strategies run in priority order and a merger resolves one record per
page.
"""

__version__ = "1.0.0"
