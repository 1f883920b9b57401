"""End-to-end tests for the build pipeline."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict

import pytest

from docsite.errors import ConfigurationError, LinkResolutionError, ValidationError
from docsite.pipeline.base import Stage
from docsite.pipeline.fingerprint import fingerprint
from docsite.pipeline.navigation import NavigationStage
from docsite.pipeline.orchestrator import (
    DEFAULT_STAGE_ORDER,
    Pipeline,
    build_site,
    check_stage_order,
    default_stages,
)
from docsite.pipeline.render import PermalinkStage, RenderStage
from docsite.pipeline.search_index import SearchIndexStage
from docsite.tree import FileTree

from conftest import HOSTNAME


def read_tree(root: Path) -> Dict[str, bytes]:
    return {item.relative_to(root).as_posix(): item.read_bytes() for item in sorted(root.rglob("*")) if item.is_file()}


class TestStageOrder:
    """Test the up-front ordering checks."""

    def test_default_stage_names(self, make_config) -> None:
        assert tuple(Pipeline(default_stages(make_config())).names) == DEFAULT_STAGE_ORDER

    def test_default_order_is_consistent(self, make_config) -> None:
        check_stage_order(default_stages(make_config()))

    def test_reader_before_writer_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="navigation"):
            Pipeline([NavigationStage(), PermalinkStage()])

    def test_search_index_needs_rendered_headings(self) -> None:
        with pytest.raises(ConfigurationError, match="headings"):
            check_stage_order([PermalinkStage(), SearchIndexStage()])

    def test_duplicate_names_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="Duplicate"):
            Pipeline([PermalinkStage(), PermalinkStage()])

    def test_stage_must_return_tree(self, context) -> None:
        class Broken(Stage):
            name = "broken"

            def run(self, tree, context):
                return None

        with pytest.raises(ConfigurationError, match="broken"):
            Pipeline([Broken()]).run(FileTree(), context)


class TestBuildSite:
    """Test complete builds of a sample project."""

    def test_outputs(self, sample_site: Path, make_config) -> None:
        config = make_config()

        result = build_site(config)

        output = read_tree(config.output_dir)
        digest = fingerprint(b"body{color:red}")
        assert sorted(output) == [
            "components/button/default/example/index.html",
            "components/button/index.html",
            "components/index.html",
            "index.html",
            "search-index.json",
            "sitemap.xml",
            f"styles/site.{digest}.css",
        ]
        assert result.context.fingerprints["styles/site.css"] == f"styles/site.{digest}.css"

    def test_fingerprinted_reference_in_page(self, sample_site: Path, make_config) -> None:
        config = make_config()
        build_site(config)

        html = (config.output_dir / "components" / "button" / "index.html").read_text()
        assert f'href="/styles/site.{fingerprint(b"body{color:red}")}.css"' in html
        assert 'href="/styles/site.css"' not in html

    def test_layout_navigation_and_metadata(self, sample_site: Path, make_config) -> None:
        config = make_config(site_title="Design System")
        result = build_site(config)

        navigation = result.context.navigation
        assert navigation.title == "Home"
        assert [child.title for child in navigation.children] == ["Components"]
        assert [child.title for child in navigation.children[0].children] == ["Button"]

        html = (config.output_dir / "components" / "button" / "index.html").read_text()
        assert "<title>Button - Design System</title>" in html
        assert f'href="{HOSTNAME}/components/button/"' in html
        index_digest = fingerprint((config.output_dir / "search-index.json").read_bytes())
        assert f'content="/search-index.json?v={index_digest}"' in html

    def test_sitemap(self, sample_site: Path, make_config) -> None:
        config = make_config()
        result = build_site(config)

        assert [entry.url for entry in result.context.sitemap] == [
            f"{HOSTNAME}/",
            f"{HOSTNAME}/components/",
            f"{HOSTNAME}/components/button/",
        ]
        assert b"default/example" not in (config.output_dir / "sitemap.xml").read_bytes()

    def test_search_index(self, sample_site: Path, make_config) -> None:
        config = make_config()
        build_site(config)

        index = json.loads((config.output_dir / "search-index.json").read_bytes())
        urls = {document["url"] for document in index["documents"]}
        assert f"{HOSTNAME}/components/button/" in urls
        button = [document["url"] for document in index["documents"]].index(f"{HOSTNAME}/components/button/")
        assert button in [posting[0] for posting in index["terms"]["button"]]

    def test_deterministic(self, sample_site: Path, make_config, tmp_path: Path) -> None:
        first = make_config(output_dir=tmp_path / "first")
        second = make_config(output_dir=tmp_path / "second", workers=4)

        build_site(first)
        build_site(second)

        assert read_tree(first.output_dir) == read_tree(second.output_dir)

    def test_broken_link_publishes_nothing(self, sample_site: Path, make_config, write_files) -> None:
        write_files(sample_site, {"src/components/button.md": "---\ntitle: Button\n---\n[Nope](/components/nonexistent)\n"})
        config = make_config()
        config.output_dir.mkdir()
        (config.output_dir / "previous.html").write_text("kept")

        with pytest.raises(LinkResolutionError) as excinfo:
            build_site(config)

        assert [(r.source_path, r.target_url) for r in excinfo.value.broken] == [
            ("components/button.md", "/components/nonexistent")
        ]
        assert read_tree(config.output_dir) == {"previous.html": b"kept"}

    def test_missing_title_fails(self, sample_site: Path, make_config, write_files) -> None:
        write_files(sample_site, {"src/untitled.md": "No heading here.\n"})

        with pytest.raises(ValidationError) as excinfo:
            build_site(make_config())

        assert excinfo.value.path == "untitled.md"
        assert not make_config().output_dir.exists()

    def test_missing_source_dir(self, make_config) -> None:
        with pytest.raises(ConfigurationError, match="Source directory"):
            build_site(make_config())

    def test_custom_stages_without_writing(self, sample_site: Path, make_config) -> None:
        config = make_config()
        renderer_stage = default_stages(config)[DEFAULT_STAGE_ORDER.index("render-content")]
        assert isinstance(renderer_stage, RenderStage)

        result = build_site(config, stages=[renderer_stage], write=False)

        assert "components/button.html" in result.tree
        assert not config.output_dir.exists()
