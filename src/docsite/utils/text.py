"""Text helpers for turning rendered HTML into search terms."""

from __future__ import annotations

import re
import unicodedata
from typing import List

from bs4 import BeautifulSoup, Comment

# Tags whose subtree never contributes indexable text
_REMOVE_TAGS = {"script", "style", "noscript", "template", "svg", "canvas", "nav"}

_WHITESPACE_RE = re.compile(r"\s+")
_TOKEN_RE = re.compile(r"[^\W_]+")


def strip_markup(html: str) -> str:
    """Return the visible text of ``html`` with tags removed."""
    soup = BeautifulSoup(html, "lxml")
    for tag in soup.find_all(_REMOVE_TAGS):
        tag.decompose()
    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()
    return soup.get_text(" ")


def normalize_text(text: str) -> str:
    """Case-fold and collapse whitespace."""
    text = unicodedata.normalize("NFKC", text).casefold()
    return _WHITESPACE_RE.sub(" ", text).strip()


def tokenize(text: str) -> List[str]:
    """Split text into normalized terms, preserving order."""
    return _TOKEN_RE.findall(normalize_text(text))
