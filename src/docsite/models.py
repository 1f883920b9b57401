"""Core docsite data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Tuple

PAGE_SUFFIX = ".html"

# Frontmatter keys claimed by FileNode fields
FRONTMATTER_FIELDS = {
    "title": "title",
    "navOrder": "nav_order",
    "parent": "parent",
    "layout": "layout",
    "permalink": "permalink",
    "redirect": "redirect",
    "excludeFromNavigation": "exclude_from_navigation",
    "excludeFromSearch": "exclude_from_search",
    "excludeFromSitemap": "exclude_from_sitemap",
}


@dataclass(slots=True)
class FileNode:
    """One logical output file and the metadata stages attach to it."""

    path: str
    contents: bytes
    frontmatter: Dict[str, Any] = field(default_factory=dict)
    source_path: str = ""
    title: Optional[str] = None
    nav_order: Optional[float] = None
    parent: Optional[str] = None
    layout: Any = None
    permalink: Any = None
    redirect: Optional[str] = None
    exclude_from_navigation: bool = False
    exclude_from_search: bool = False
    exclude_from_sitemap: bool = False
    fingerprint: Optional[str] = None
    headings: List[Dict[str, Any]] = field(default_factory=list)
    url: Optional[str] = None
    canonical_url: Optional[str] = None
    breadcrumbs: List[Tuple[str, str]] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.source_path:
            self.source_path = self.path

    @property
    def suffix(self) -> str:
        return PurePosixPath(self.path).suffix.lower()

    @property
    def is_page(self) -> bool:
        return self.suffix == PAGE_SUFFIX

    @property
    def text(self) -> str:
        return self.contents.decode("utf-8")

    @text.setter
    def text(self, value: str) -> None:
        self.contents = value.encode("utf-8")


@dataclass(slots=True, eq=False)
class NavigationNode:
    """A titled, ordered entry in the site navigation tree."""

    title: str
    url: str
    order: float = 0
    source_path: Optional[str] = None
    children: List["NavigationNode"] = field(default_factory=list)
    parent: Optional["NavigationNode"] = field(default=None, repr=False)

    def add_child(self, child: "NavigationNode") -> None:
        child.parent = self
        self.children.append(child)

    def walk(self):
        """Yield this node and its descendants depth-first."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass(slots=True)
class SearchDocument:
    """Indexable text of one page."""

    url: str
    title: str
    tokens: List[str]
    headings: List[str] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class SitemapEntry:
    url: str


@dataclass(slots=True)
class LinkRecord:
    """A link found in rendered content, and whether it resolves."""

    source_path: str
    target_url: str
    internal: bool = True
    resolved: bool = False
