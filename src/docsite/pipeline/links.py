"""Internal link validation, the last stage of every build."""

from __future__ import annotations

import logging
from typing import Iterable, List, Set
from urllib.parse import unquote, urljoin, urlsplit

from bs4 import BeautifulSoup

from docsite.errors import LinkResolutionError
from docsite.models import FileNode, LinkRecord
from docsite.pipeline.base import BuildContext, Stage, for_each_file
from docsite.tree import FileTree

LOGGER = logging.getLogger(__name__)

# (tag, attribute) pairs that reference other resources
LINK_ATTRIBUTES = (
    ("a", "href"),
    ("link", "href"),
    ("img", "src"),
    ("script", "src"),
    ("source", "src"),
)

_IGNORED_SCHEMES = {"mailto", "tel", "javascript", "data"}


def url_set(nodes: Iterable[FileNode]) -> Set[str]:
    """Every URL path the build publishes.

    ``dir/index.html`` is reachable as ``/dir/index.html``, ``/dir/`` and ``/dir``.
    """
    urls: Set[str] = set()
    for node in nodes:
        path = "/" + node.path
        urls.add(path)
        if path == "/index.html":
            urls.add("/")
        elif path.endswith("/index.html"):
            directory = path[: -len("index.html")]
            urls.add(directory)
            urls.add(directory.rstrip("/"))
        if node.url:
            urls.add(node.url)
    return urls


def extract_links(html: str) -> List[str]:
    """Link targets in document order."""
    soup = BeautifulSoup(html, "lxml")
    targets: List[str] = []
    for tag in soup.find_all([name for name, _ in LINK_ATTRIBUTES]):
        for name, attribute in LINK_ATTRIBUTES:
            if tag.name == name and tag.get(attribute):
                targets.append(str(tag[attribute]).strip())
    return targets


class LinkChecker:
    """Resolve link targets against the final URL set."""

    def __init__(self, urls: Set[str], hostname: str) -> None:
        self.urls = urls
        self.host = urlsplit(hostname).netloc.lower()

    def classify(self, target: str) -> str:
        """Return ``internal``, ``external`` or ``ignored``."""
        parts = urlsplit(target)
        if parts.scheme.lower() in _IGNORED_SCHEMES:
            return "ignored"
        if not parts.scheme and not parts.netloc and not parts.path:
            # Fragment- or query-only reference to the same page
            return "ignored"
        if parts.netloc and parts.netloc.lower() != self.host:
            return "external"
        if parts.scheme and parts.scheme.lower() not in ("http", "https"):
            return "external"
        return "internal"

    def resolves(self, target: str, page_url: str) -> bool:
        parts = urlsplit(target)
        path = parts.path if parts.netloc else urlsplit(urljoin(page_url, parts.path)).path
        path = unquote(path) or "/"
        return path in self.urls

    def check(self, node: FileNode) -> List[LinkRecord]:
        page_url = node.url or "/" + node.path
        records = []
        for target in extract_links(node.text):
            kind = self.classify(target)
            if kind == "ignored":
                continue
            if kind == "external":
                records.append(LinkRecord(source_path=node.source_path, target_url=target, internal=False))
                continue
            records.append(
                LinkRecord(
                    source_path=node.source_path,
                    target_url=target,
                    resolved=self.resolves(target, page_url),
                )
            )
        return records


class LinkCheckStage(Stage):
    """Report every unresolved internal link at once."""

    name = "check-links"
    reads = frozenset({"path", "contents", "url", "source_path"})

    def run(self, tree: FileTree, context: BuildContext) -> FileTree:
        checker = LinkChecker(url_set(tree.nodes()), context.config.hostname)
        results = for_each_file(tree.pages(), checker.check, workers=context.config.workers)
        records = [record for page_records in results for record in page_records]
        context.links = records

        broken = [record for record in records if record.internal and not record.resolved]
        external = sum(1 for record in records if not record.internal)
        LOGGER.info("Checked %d links (%d external, not validated)", len(records), external)
        if broken:
            raise LinkResolutionError(broken)
        return tree
