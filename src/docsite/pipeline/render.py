"""Rendering collaborators: templating, Markdown, permalinks, canonical URLs, layouts."""

from __future__ import annotations

import html
import logging
import posixpath
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import jinja2
import markdown
from bs4 import BeautifulSoup
from markupsafe import Markup

from docsite.errors import CollaboratorError, ValidationError
from docsite.models import FileNode
from docsite.pipeline.base import BuildContext, Stage, for_each_file
from docsite.tree import CONTENT_SUFFIXES, FileTree, normalize_path

LOGGER = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = ["extra", "toc", "sane_lists"]

_REDIRECT_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{title}</title>
<meta http-equiv="refresh" content="0; url={target}">
<link rel="canonical" href="{target}">
</head>
<body>
<p>This page has moved to <a href="{target}">{target}</a>.</p>
</body>
</html>
"""


@dataclass(slots=True)
class RenderedPage:
    html: str
    title: Optional[str] = None
    headings: List[Dict[str, Any]] = field(default_factory=list)


class Renderer(Protocol):
    def render(self, node: FileNode, context: BuildContext) -> RenderedPage: ...


def _site_globals(context: BuildContext) -> Dict[str, Any]:
    config = context.config
    return {
        "site": {"title": config.site_title, "hostname": config.hostname},
        "preview": config.preview,
        "asset_url": context.asset_url,
    }


def extract_headings(rendered: str) -> RenderedPage:
    """Pull the first ``h1`` and every ``h2``/``h3`` out of rendered HTML."""
    soup = BeautifulSoup(rendered, "lxml")
    h1 = soup.find("h1")
    headings = [
        {
            "level": int(tag.name[1]),
            "text": tag.get_text(" ", strip=True),
            "id": tag.get("id"),
        }
        for tag in soup.find_all(["h2", "h3"])
    ]
    return RenderedPage(
        html=rendered,
        title=h1.get_text(" ", strip=True) if h1 else None,
        headings=headings,
    )


class MarkdownRenderer:
    """Render page bodies through Jinja2, then Markdown for ``.md`` sources."""

    def __init__(self, environment: jinja2.Environment) -> None:
        self.environment = environment

    @classmethod
    def from_config(cls, config) -> "MarkdownRenderer":
        environment = jinja2.Environment(
            loader=jinja2.FileSystemLoader([str(config.partials_dir), str(config.layouts_dir)]),
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=False,
        )
        return cls(environment)

    def render(self, node: FileNode, context: BuildContext) -> RenderedPage:
        if node.redirect:
            target = html.escape(node.redirect, quote=True)
            title = node.title or f"Redirecting to {node.redirect}"
            return RenderedPage(html=_REDIRECT_TEMPLATE.format(title=html.escape(title), target=target), title=title)

        template = self.environment.from_string(node.text)
        text = template.render({**node.frontmatter, "page": node, **_site_globals(context)})

        if node.suffix == ".md":
            text = markdown.Markdown(extensions=MARKDOWN_EXTENSIONS).convert(text)
        return extract_headings(text)


class RenderStage(Stage):
    """Render every content file to HTML and rename ``.md`` sources to ``.html``."""

    name = "render-content"
    reads = frozenset({"path", "contents", "frontmatter", "title", "redirect"})
    writes = frozenset({"path", "contents", "title", "headings", "exclude_from_navigation", "exclude_from_search", "exclude_from_sitemap"})

    def __init__(self, renderer: Renderer) -> None:
        self.renderer = renderer

    def run(self, tree: FileTree, context: BuildContext) -> FileTree:
        content = [node for node in tree.nodes() if node.suffix in CONTENT_SUFFIXES]
        for_each_file(content, lambda node: self._render(node, context), workers=context.config.workers)

        tree.rename_many(
            {node.path: node.path[: -len(".md")] + ".html" for node in content if node.suffix == ".md"}
        )
        LOGGER.info("Rendered %d content files", len(content))
        return tree

    def _render(self, node: FileNode, context: BuildContext) -> None:
        try:
            page = self.renderer.render(node, context)
        except (jinja2.TemplateError, ValueError, LookupError) as exc:
            raise CollaboratorError(f"Rendering failed: {exc}", path=node.source_path, cause=exc) from exc

        node.text = page.html
        node.headings = page.headings
        if not node.title and page.title:
            node.title = page.title
        if node.redirect:
            node.exclude_from_navigation = True
            node.exclude_from_search = True
            node.exclude_from_sitemap = True
        LOGGER.debug("Rendered %s", node.source_path)


class TitleCheckStage(Stage):
    """Every page must have a title before URLs and navigation are derived."""

    name = "check-titles"
    reads = frozenset({"path", "title"})

    def run(self, tree: FileTree, context: BuildContext) -> FileTree:
        for node in tree.pages():
            if not (node.title or "").strip():
                raise ValidationError("Page has no title", path=node.source_path)
        return tree


def permalink_path(node: FileNode) -> str:
    """Output path for a page: ``a/b.html`` becomes ``a/b/index.html``."""
    if node.permalink is False:
        return node.path
    if isinstance(node.permalink, str) and node.permalink.strip("/"):
        target = node.permalink.strip("/")
        if target.endswith(".html"):
            return normalize_path(target)
        return normalize_path(f"{target}/index.html")
    if isinstance(node.permalink, str):
        return "index.html"
    if posixpath.basename(node.path) == "index.html":
        return node.path
    return node.path[: -len(".html")] + "/index.html"


def url_for_path(path: str) -> str:
    """Public URL for an output path, dropping a trailing ``index.html``."""
    if path == "index.html":
        return "/"
    if path.endswith("/index.html"):
        return "/" + path[: -len("index.html")]
    return "/" + path


class PermalinkStage(Stage):
    """Move pages to directory-style paths and assign every node its URL."""

    name = "permalinks"
    reads = frozenset({"path", "permalink"})
    writes = frozenset({"path", "url"})

    def run(self, tree: FileTree, context: BuildContext) -> FileTree:
        tree.rename_many({node.path: permalink_path(node) for node in tree.pages()})
        for node in tree.nodes():
            node.url = url_for_path(node.path)
        return tree


class CanonicalStage(Stage):
    """Absolute canonical URL for every page."""

    name = "canonical-urls"
    reads = frozenset({"path", "url"})
    writes = frozenset({"canonical_url"})

    def run(self, tree: FileTree, context: BuildContext) -> FileTree:
        for node in tree.pages():
            node.canonical_url = context.config.hostname + node.url
        return tree


class LayoutStage(Stage):
    """Wrap rendered pages in their layout template."""

    name = "layouts"
    reads = frozenset({"path", "contents", "layout", "redirect", "title", "url", "canonical_url", "breadcrumbs"})
    writes = frozenset({"contents"})

    def __init__(self, environment: jinja2.Environment) -> None:
        self.environment = environment

    @classmethod
    def from_config(cls, config) -> "LayoutStage":
        environment = jinja2.Environment(
            loader=jinja2.ChoiceLoader(
                [
                    jinja2.FileSystemLoader([str(config.layouts_dir), str(config.partials_dir)]),
                    jinja2.PackageLoader("docsite", "templates"),
                ]
            ),
            autoescape=jinja2.select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        return cls(environment)

    def run(self, tree: FileTree, context: BuildContext) -> FileTree:
        pages = [node for node in tree.pages() if node.layout is not False and not node.redirect]
        for_each_file(pages, lambda node: self._apply(node, context), workers=context.config.workers)
        LOGGER.info("Applied layouts to %d pages", len(pages))
        return tree

    def _apply(self, node: FileNode, context: BuildContext) -> None:
        name = node.layout or context.config.default_layout
        try:
            template = self.environment.get_template(name)
            node.text = template.render(
                content=Markup(node.text),
                page=node,
                navigation=context.navigation,
                breadcrumbs=node.breadcrumbs,
                search_index_url=context.asset_url(context.config.search_index_path),
                **_site_globals(context),
            )
        except jinja2.TemplateError as exc:
            raise CollaboratorError(f"Layout {name!r} failed: {exc}", path=node.source_path, cause=exc) from exc
