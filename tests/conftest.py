"""Shared fixtures for docsite tests."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Union

import pytest

from docsite.config import BuildConfig
from docsite.models import SearchDocument
from docsite.pipeline.base import BuildContext
from docsite.pipeline.search_index import build_inverted_index, serialize_index

HOSTNAME = "https://docs.example.com"


@pytest.fixture
def write_files() -> Callable[[Path, Dict[str, Union[str, bytes]]], Path]:
    """Write a mapping of relative path -> content under a root directory."""

    def _write(root: Path, files: Dict[str, Union[str, bytes]]) -> Path:
        for relative, content in files.items():
            target = root / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                target.write_bytes(content)
            else:
                target.write_text(content, encoding="utf-8")
        return root

    return _write


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., BuildConfig]:
    """Build a BuildConfig rooted in tmp_path."""

    def _make(**overrides) -> BuildConfig:
        values = dict(
            source_dir=tmp_path / "src",
            output_dir=tmp_path / "public",
            layouts_dir=tmp_path / "views" / "layouts",
            partials_dir=tmp_path / "views" / "partials",
            hostname=HOSTNAME,
            workers=1,
        )
        values.update(overrides)
        return BuildConfig(**values)

    return _make


@pytest.fixture
def context(make_config) -> BuildContext:
    return BuildContext(config=make_config())


SAMPLE_SITE = {
    "src/index.md": "---\ntitle: Home\n---\n# Home\n\nStart with the [button](/components/button/).\n",
    "src/components/index.md": "---\ntitle: Components\n---\nEvery component in the design system.\n",
    "src/components/button.md": (
        "---\ntitle: Button\nnavOrder: 1\n---\n"
        '<link rel="stylesheet" href="/styles/site.css">\n\n'
        "Use the button component.\n\n## Usage\n\nPress it.\n"
    ),
    "src/components/button/default/example.html": (
        "---\ntitle: Button example\nexcludeFromNavigation: true\n---\n<button>Save</button>\n"
    ),
    "src/styles/site.css": "body{color:red}",
}


@pytest.fixture
def sample_site(tmp_path: Path, write_files) -> Path:
    """A small project: home page, a component section and one stylesheet."""
    return write_files(tmp_path, SAMPLE_SITE)


@pytest.fixture
def index_file(tmp_path: Path) -> Path:
    """A serialized search index over two pages."""
    documents = [
        SearchDocument(url="/components/button/", title="Button", tokens=["use", "the", "button", "component"]),
        SearchDocument(url="/components/forms/", title="Forms", tokens=["a", "form", "with", "a", "button"]),
    ]
    path = tmp_path / "search-index.json"
    path.write_bytes(serialize_index(build_inverted_index(documents)))
    return path
