"""
Page content model consumed by every extractor.
"""

from typing import Optional

from bs4 import BeautifulSoup
from bs4.element import PreformattedString

# Elements whose strings are not visible page text
NON_TEXT_TAGS = {'script', 'style', 'noscript', 'template'}


class PageContent:
    """Normalized view of a fetched page: URL, raw HTML, parsed tree and text."""

    def __init__(self, url: str, html: str, status_code: int = 200,
                 soup: Optional[BeautifulSoup] = None):
        self.url = url
        self.html = html or ''
        self.status_code = status_code
        self._soup = soup
        self._text: Optional[str] = None

    @property
    def soup(self) -> BeautifulSoup:
        """Parsed markup tree (parsed lazily, once)."""
        if self._soup is None:
            self._soup = BeautifulSoup(self.html, 'lxml')
        return self._soup

    @property
    def text(self) -> str:
        """Full visible page text, elements separated by spaces."""
        if self._text is None:
            self._text = ' '.join(
                s for s in self.soup.find_all(string=True)
                if not isinstance(s, PreformattedString) and s.parent.name not in NON_TEXT_TAGS
            )
        return self._text

    @property
    def is_empty(self) -> bool:
        return not self.html.strip()

    def __repr__(self):
        return f"PageContent(url={self.url!r}, status={self.status_code}, size={len(self.html)})"
