"""Tests for content rendering, permalinks and layouts."""

from __future__ import annotations

from pathlib import Path

import jinja2
import pytest

from docsite.errors import CollaboratorError, ValidationError
from docsite.models import FileNode, NavigationNode
from docsite.pipeline.base import BuildContext
from docsite.pipeline.render import (
    CanonicalStage,
    LayoutStage,
    MarkdownRenderer,
    PermalinkStage,
    RenderStage,
    TitleCheckStage,
    extract_headings,
    permalink_path,
    url_for_path,
)
from docsite.tree import FileTree, load_node

from conftest import HOSTNAME


@pytest.fixture
def renderer() -> MarkdownRenderer:
    environment = jinja2.Environment(
        loader=jinja2.DictLoader({"note.html": "<aside>{{ text }}</aside>"}),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    return MarkdownRenderer(environment)


class TestExtractHeadings:
    """Test heading extraction."""

    def test_title_and_subheadings(self) -> None:
        page = extract_headings('<h1>Button</h1><h2 id="usage">Usage</h2><h3 id="sizes">Sizes</h3><h4>Deep</h4>')

        assert page.title == "Button"
        assert page.headings == [
            {"level": 2, "text": "Usage", "id": "usage"},
            {"level": 3, "text": "Sizes", "id": "sizes"},
        ]

    def test_no_h1(self) -> None:
        assert extract_headings("<p>Body</p>").title is None


class TestMarkdownRenderer:
    """Test the default renderer."""

    def test_markdown_to_html(self, renderer: MarkdownRenderer, context) -> None:
        node = load_node("components/button.md", b"# Button\n\nUse the **button** component.\n\n## Usage\n")

        page = renderer.render(node, context)

        assert "<strong>button</strong>" in page.html
        assert page.title == "Button"
        assert page.headings == [{"level": 2, "text": "Usage", "id": "usage"}]

    def test_template_sees_frontmatter_and_site(self, renderer: MarkdownRenderer, context) -> None:
        node = load_node(
            "a.html",
            b"---\ntitle: A\nstatus: beta\n---\n<p>{{ status }} {{ page.title }} {{ site.hostname }}</p>",
        )

        page = renderer.render(node, context)

        assert page.html.strip() == f"<p>beta A {HOSTNAME}</p>"

    def test_partials_included(self, renderer: MarkdownRenderer, context) -> None:
        node = load_node("a.html", b'{% with text="Careful" %}{% include "note.html" %}{% endwith %}')
        assert "<aside>Careful</aside>" in renderer.render(node, context).html

    def test_asset_url_helper(self, renderer: MarkdownRenderer, context) -> None:
        context.fingerprints["styles/site.css"] = "styles/site.abc.css"
        node = load_node("a.html", b"{{ asset_url('styles/site.css') }}")
        assert renderer.render(node, context).html.strip() == "/styles/site.abc.css"

    def test_redirect_stub(self, renderer: MarkdownRenderer, context) -> None:
        node = load_node("old.md", b"---\nredirect: /components/button/\n---\nIgnored body")

        page = renderer.render(node, context)

        assert 'content="0; url=/components/button/"' in page.html
        assert "Ignored body" not in page.html
        assert page.title == "Redirecting to /components/button/"


class TestRenderStage:
    """Test RenderStage over a tree."""

    def test_renames_markdown_and_sets_title(self, renderer: MarkdownRenderer, context) -> None:
        tree = FileTree(
            [
                load_node("components/button.md", b"# Button\n\nBody"),
                load_node("about.html", b"---\ntitle: About\n---\n<h1>Other</h1>"),
                FileNode(path="styles/site.css", contents=b"body{}"),
            ]
        )

        RenderStage(renderer).run(tree, context)

        assert tree.paths() == ["about.html", "components/button.html", "styles/site.css"]
        button = tree["components/button.html"]
        assert button.title == "Button"
        assert button.source_path == "components/button.md"
        assert tree["about.html"].title == "About"
        assert tree["styles/site.css"].contents == b"body{}"

    def test_redirects_excluded_everywhere(self, renderer: MarkdownRenderer, context) -> None:
        tree = FileTree([load_node("old.md", b"---\nredirect: /new/\n---\n")])

        RenderStage(renderer).run(tree, context)

        node = tree["old.html"]
        assert node.exclude_from_navigation and node.exclude_from_search and node.exclude_from_sitemap

    def test_template_error_is_collaborator_error(self, renderer: MarkdownRenderer, context) -> None:
        tree = FileTree([load_node("broken.md", b"{% if %}")])

        with pytest.raises(CollaboratorError) as excinfo:
            RenderStage(renderer).run(tree, context)

        assert excinfo.value.path == "broken.md"
        assert isinstance(excinfo.value.cause, jinja2.TemplateError)


class TestTitleCheckStage:
    """Test title validation."""

    def test_missing_title(self, context) -> None:
        tree = FileTree([FileNode(path="untitled.html", contents=b"<p>x</p>", source_path="untitled.md")])

        with pytest.raises(ValidationError) as excinfo:
            TitleCheckStage().run(tree, context)

        assert excinfo.value.path == "untitled.md"

    def test_assets_not_checked(self, context) -> None:
        tree = FileTree([FileNode(path="site.css", contents=b"")])
        assert TitleCheckStage().run(tree, context) is tree


class TestPermalinks:
    """Test output paths and URLs."""

    @pytest.mark.parametrize(
        ("path", "permalink", "expected"),
        [
            ("components/button.html", None, "components/button/index.html"),
            ("components/index.html", None, "components/index.html"),
            ("index.html", None, "index.html"),
            ("old.html", "/legacy/page/", "legacy/page/index.html"),
            ("old.html", "/legacy.html", "legacy.html"),
            ("home.html", "/", "index.html"),
            ("404.html", False, "404.html"),
        ],
    )
    def test_permalink_path(self, path, permalink, expected) -> None:
        assert permalink_path(FileNode(path=path, contents=b"", permalink=permalink)) == expected

    def test_url_for_path(self) -> None:
        assert url_for_path("index.html") == "/"
        assert url_for_path("guide/index.html") == "/guide/"
        assert url_for_path("styles/site.css") == "/styles/site.css"

    def test_stage_assigns_urls(self, context) -> None:
        tree = FileTree(
            [
                FileNode(path="components/button.html", contents=b"", title="Button"),
                FileNode(path="styles/site.css", contents=b""),
            ]
        )

        PermalinkStage().run(tree, context)
        CanonicalStage().run(tree, context)

        page = tree["components/button/index.html"]
        assert page.url == "/components/button/"
        assert page.canonical_url == f"{HOSTNAME}/components/button/"
        assert tree["styles/site.css"].url == "/styles/site.css"

    def test_stage_moves_onto_vacated_path(self, context) -> None:
        """A page can take the path another page moves away from."""
        tree = FileTree(
            [
                FileNode(path="a.html", contents=b"a", title="A", permalink="b.html"),
                FileNode(path="b.html", contents=b"b", title="B"),
            ]
        )

        PermalinkStage().run(tree, context)

        assert tree.paths() == ["b.html", "b/index.html"]
        assert tree["b.html"].title == "A"
        assert tree["b.html"].url == "/b.html"
        assert tree["b/index.html"].url == "/b/"


class TestLayoutStage:
    """Test layout application."""

    @pytest.fixture
    def page(self) -> FileNode:
        return FileNode(
            path="components/button/index.html",
            contents=b"<h1>Button</h1>",
            title="Button",
            url="/components/button/",
            canonical_url=f"{HOSTNAME}/components/button/",
            breadcrumbs=[("Home", "/"), ("Button", "/components/button/")],
        )

    def test_default_layout(self, page: FileNode, make_config) -> None:
        config = make_config(site_title="Design System", preview=True)
        context = BuildContext(config=config, fingerprints={"search-index.json": "search-index.json?v=abc"})
        root = NavigationNode(title="Home", url="/", source_path="index.md")
        root.add_child(NavigationNode(title="Button", url="/components/button/"))
        context.navigation = root

        LayoutStage.from_config(config).run(FileTree([page]), context)

        text = page.text
        assert "<title>Button - Design System</title>" in text
        assert f'<link rel="canonical" href="{HOSTNAME}/components/button/">' in text
        assert '<meta name="robots" content="noindex, nofollow">' in text
        assert '<meta name="search-index" content="/search-index.json?v=abc">' in text
        assert 'aria-current="page"' in text
        assert "<main>\n<h1>Button</h1>" in text

    def test_project_layout_overrides(self, page: FileNode, make_config, tmp_path: Path) -> None:
        layouts = tmp_path / "views" / "layouts"
        layouts.mkdir(parents=True)
        (layouts / "bare.html").write_text("[{{ content }}|{{ page.title }}]")
        page.layout = "bare.html"
        config = make_config()

        LayoutStage.from_config(config).run(FileTree([page]), BuildContext(config=config))

        assert page.text == "[<h1>Button</h1>|Button]"

    def test_layout_disabled_and_redirects_skipped(self, page: FileNode, make_config) -> None:
        config = make_config()
        page.layout = False
        redirect = FileNode(path="old/index.html", contents=b"stub", title="Old", redirect="/new/")

        LayoutStage.from_config(config).run(FileTree([page, redirect]), BuildContext(config=config))

        assert page.text == "<h1>Button</h1>"
        assert redirect.text == "stub"

    def test_missing_layout(self, page: FileNode, make_config) -> None:
        page.layout = "nope.html"
        config = make_config()

        with pytest.raises(CollaboratorError, match="nope.html"):
            LayoutStage.from_config(config).run(FileTree([page]), BuildContext(config=config))

    def test_preview_off_has_no_robots_meta(self, page: FileNode, context) -> None:
        LayoutStage.from_config(context.config).run(FileTree([page]), context)
        assert "robots" not in page.text
