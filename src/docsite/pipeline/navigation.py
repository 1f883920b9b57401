"""Navigation tree builder.

Builds the site menu from final page URLs. A page's parent is its explicit
``parent`` frontmatter reference, or else the nearest ancestor directory
that has a navigation entry; the site root is the ``/`` page (or a
synthetic node when the site has no home page).
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from docsite.errors import StructuralError, ValidationError
from docsite.models import FileNode, NavigationNode
from docsite.pipeline.base import BuildContext, Stage
from docsite.tree import FileTree
from docsite.utils.files import matches_any

LOGGER = logging.getLogger(__name__)

ROOT_URL = "/"


def parent_url(url: str) -> Optional[str]:
    """``/guide/a/`` -> ``/guide/``; the root has no parent."""
    if url == ROOT_URL:
        return None
    head = url.rstrip("/").rsplit("/", 1)[0]
    return head + "/"


def _sort_key(page: FileNode) -> tuple:
    if page.nav_order is not None:
        return (0, page.nav_order, page.source_path)
    return (1, 0, page.source_path)


def is_navigable(page: FileNode, exclude: Sequence[str] = ()) -> bool:
    if page.exclude_from_navigation:
        return False
    return not (exclude and (matches_any(page.source_path, exclude) or matches_any(page.path, exclude)))


class NavigationBuilder:
    """Derive a single-rooted NavigationNode tree from a set of pages."""

    def __init__(self, pages: Sequence[FileNode], *, site_title: str, exclude: Sequence[str] = ()) -> None:
        self.pages = sorted(pages, key=lambda page: page.path)
        self.site_title = site_title
        self.exclude = tuple(exclude)
        self.entries: Dict[str, NavigationNode] = {}
        self.page_for: Dict[str, FileNode] = {}

    def build(self) -> NavigationNode:
        eligible = [page for page in self.pages if is_navigable(page, self.exclude)]
        for page in eligible:
            if not (page.title or "").strip():
                raise ValidationError("Navigation entry has no title", path=page.source_path)
            if page.url is None:
                raise StructuralError("Page has no URL", path=page.source_path)
            self.entries[page.url] = NavigationNode(title=page.title, url=page.url, source_path=page.source_path)
            self.page_for[page.url] = page

        root = self.entries.get(ROOT_URL) or NavigationNode(title=self.site_title, url=ROOT_URL)

        parents: Dict[str, NavigationNode] = {}
        for url, entry in self.entries.items():
            if entry is root:
                continue
            parents[url] = self._resolve_parent(self.page_for[url], root)
        self._check_acyclic(parents, root)

        children: Dict[int, List[FileNode]] = {}
        for url, parent in parents.items():
            children.setdefault(id(parent), []).append(self.page_for[url])
        for entry in [root, *self.entries.values()]:
            ordered = sorted(children.get(id(entry), []), key=_sort_key)
            for position, page in enumerate(ordered):
                child = self.entries[page.url]
                child.order = page.nav_order if page.nav_order is not None else position
                entry.add_child(child)

        reachable = sum(1 for _ in root.walk())
        expected = len(self.entries) + (0 if ROOT_URL in self.entries else 1)
        if reachable != expected:
            raise StructuralError(f"Navigation tree reaches {reachable} of {expected} entries")
        return root

    def _resolve_parent(self, page: FileNode, root: NavigationNode) -> NavigationNode:
        if page.parent:
            target = self._find_page(page.parent)
            if target is None:
                raise StructuralError(f"Navigation parent {page.parent!r} does not exist", path=page.source_path)
            if target.url == page.url:
                raise StructuralError("Page cannot be its own navigation parent", path=page.source_path)
            if target.url in self.entries:
                return self.entries[target.url]
            return self._nearest_ancestor(target.url, root)
        return self._nearest_ancestor(page.url, root)

    def _nearest_ancestor(self, url: str, root: NavigationNode) -> NavigationNode:
        candidate = parent_url(url)
        while candidate is not None:
            if candidate in self.entries:
                return self.entries[candidate]
            candidate = parent_url(candidate)
        return root

    def _find_page(self, reference: str) -> Optional[FileNode]:
        reference = reference.strip()
        stripped = reference.lstrip("/")
        for page in self.pages:
            if stripped in (page.source_path, page.path):
                return page
            if page.url is not None and reference.rstrip("/") == page.url.rstrip("/"):
                return page
        return None

    def _check_acyclic(self, parents: Dict[str, NavigationNode], root: NavigationNode) -> None:
        for start in parents:
            seen = {start}
            current = parents[start]
            while current is not root:
                if current.url in seen:
                    raise StructuralError("Navigation parents form a cycle", path=self.page_for[start].source_path)
                seen.add(current.url)
                current = parents[current.url]


def breadcrumbs_for(entry: NavigationNode) -> List[tuple]:
    trail = []
    current: Optional[NavigationNode] = entry
    while current is not None:
        trail.append((current.title, current.url))
        current = current.parent
    return list(reversed(trail))


class NavigationStage(Stage):
    """Attach the navigation tree to the build context and breadcrumbs to pages."""

    name = "navigation"
    reads = frozenset({"path", "url", "title", "nav_order", "parent", "exclude_from_navigation", "source_path"})
    writes = frozenset({"breadcrumbs"})

    def run(self, tree: FileTree, context: BuildContext) -> FileTree:
        builder = NavigationBuilder(
            tree.pages(),
            site_title=context.config.site_title,
            exclude=context.config.navigation_exclude,
        )
        root = builder.build()
        for url, entry in builder.entries.items():
            builder.page_for[url].breadcrumbs = breadcrumbs_for(entry)
        context.navigation = root
        LOGGER.info("Built navigation with %d entries", len(builder.entries))
        return tree
