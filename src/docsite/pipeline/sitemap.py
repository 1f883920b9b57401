"""Sitemap generation."""

from __future__ import annotations

import logging
from typing import List, Sequence
from xml.etree import ElementTree

from docsite.models import FileNode, SitemapEntry
from docsite.pipeline.base import BuildContext, Stage
from docsite.tree import FileTree
from docsite.utils.files import matches_any

LOGGER = logging.getLogger(__name__)

SITEMAP_NAMESPACE = "http://www.sitemaps.org/schemas/sitemap/0.9"


def in_sitemap(page: FileNode, exclude: Sequence[str] = ()) -> bool:
    if page.exclude_from_sitemap or page.redirect:
        return False
    return not (exclude and (matches_any(page.path, exclude) or matches_any(page.source_path, exclude)))


def collect_entries(pages: Sequence[FileNode], hostname: str, exclude: Sequence[str] = ()) -> List[SitemapEntry]:
    """Absolute URLs of qualifying pages, sorted."""
    urls = {hostname.rstrip("/") + (page.url or "/" + page.path) for page in pages if in_sitemap(page, exclude)}
    return [SitemapEntry(url=url) for url in sorted(urls)]


def render_sitemap(entries: Sequence[SitemapEntry]) -> bytes:
    urlset = ElementTree.Element("urlset", xmlns=SITEMAP_NAMESPACE)
    for entry in entries:
        url = ElementTree.SubElement(urlset, "url")
        ElementTree.SubElement(url, "loc").text = entry.url
    ElementTree.indent(urlset)
    return ElementTree.tostring(urlset, encoding="utf-8", xml_declaration=True) + b"\n"


class SitemapStage(Stage):
    name = "sitemap"
    reads = frozenset({"path", "url", "exclude_from_sitemap", "redirect", "source_path"})
    writes = frozenset({"path", "contents", "url"})

    def run(self, tree: FileTree, context: BuildContext) -> FileTree:
        config = context.config
        entries = collect_entries(tree.pages(), config.hostname, config.sitemap_exclude)
        node = tree.add(FileNode(path=config.sitemap_path, contents=render_sitemap(entries)))
        node.url = "/" + node.path
        context.sitemap = entries
        LOGGER.info("Sitemap lists %d URLs", len(entries))
        return tree
