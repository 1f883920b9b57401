"""Stage contract and the shared build context."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, TypeVar

from docsite.config import BuildConfig
from docsite.models import FileNode, LinkRecord, NavigationNode, SitemapEntry
from docsite.tree import FileTree

T = TypeVar("T")

# Fields populated by FileTree.from_directory before the first stage runs
LOADER_WRITES: FrozenSet[str] = frozenset(
    {
        "path",
        "contents",
        "frontmatter",
        "source_path",
        "title",
        "nav_order",
        "parent",
        "layout",
        "permalink",
        "redirect",
        "exclude_from_navigation",
        "exclude_from_search",
        "exclude_from_sitemap",
    }
)


@dataclass(slots=True)
class BuildContext:
    """Read-only configuration plus the artifacts stages publish for later stages."""

    config: BuildConfig
    fingerprints: Dict[str, str] = field(default_factory=dict)
    navigation: Optional[NavigationNode] = None
    search_index: Optional[Dict[str, Any]] = None
    sitemap: List[SitemapEntry] = field(default_factory=list)
    links: List[LinkRecord] = field(default_factory=list)

    def asset_url(self, path: str) -> str:
        """Root-relative URL of an asset, fingerprinted when a stage hashed it."""
        path = path.lstrip("/")
        return "/" + self.fingerprints.get(path, path)


class Stage:
    """One pipeline step: ``run(tree, context)`` returns the tree or raises BuildError.

    ``reads`` and ``writes`` name the FileNode fields the stage depends on and
    produces, so the pipeline can check the stage order up front.
    """

    name = "stage"
    reads: FrozenSet[str] = frozenset()
    writes: FrozenSet[str] = frozenset()

    def run(self, tree: FileTree, context: BuildContext) -> FileTree:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


def for_each_file(
    nodes: Iterable[FileNode], func: Callable[[FileNode], T], *, workers: int = 1
) -> List[T]:
    """Apply ``func`` to every node and wait for all of them.

    Results come back in input order; the first failure in that order is
    re-raised once the pool has drained.
    """
    nodes = list(nodes)
    if workers <= 1 or len(nodes) <= 1:
        return [func(node) for node in nodes]
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(func, node) for node in nodes]
    return [future.result() for future in futures]
