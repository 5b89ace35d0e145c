"""
Text normalization helpers shared by the extractors.

Converts captured HTML fragments into readable plain text and tidies up
short text snippets pulled from markup.
"""

import re
from typing import Iterable, Optional

from bs4 import BeautifulSoup

# Subtrees that never contribute visible text
STRIP_TAGS = ['script', 'style', 'noscript', 'iframe', 'template']

# Elements that end a paragraph/line in rendered text
BLOCK_TAGS = [
    'p', 'div', 'br', 'li', 'ul', 'ol', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6',
    'tr', 'table', 'section', 'article', 'blockquote', 'pre', 'header', 'footer',
]

_WHITESPACE_RE = re.compile(r'\s+')
_BREAK = '\n'


def clean_text(text: Optional[str]) -> str:
    """Collapse whitespace runs into single spaces and trim."""
    if not text:
        return ''
    return _WHITESPACE_RE.sub(' ', text).strip()


def html_to_text(html: Optional[str]) -> str:
    """
    Convert an HTML fragment to normalized text.

    Script, style and embedded-frame subtrees are removed, whitespace inside
    each paragraph is collapsed, and paragraph breaks become single newlines.
    """
    if not html:
        return ''

    soup = BeautifulSoup(html, 'lxml')
    for tag in soup.find_all(STRIP_TAGS):
        tag.decompose()

    for tag in soup.find_all(BLOCK_TAGS):
        if tag.name == 'br':
            tag.replace_with(_BREAK)
        else:
            tag.insert_before(_BREAK)
            tag.insert_after(_BREAK)

    lines = (clean_text(line) for line in soup.get_text().split(_BREAK))
    return _BREAK.join(line for line in lines if line)


def first_non_empty(values: Iterable[Optional[str]]) -> Optional[str]:
    """Return the first value that is non-empty after trimming."""
    for value in values:
        if value is None:
            continue
        value = str(value).strip()
        if value:
            return value
    return None
