"""Build pipeline: a fixed, ordered list of stages over one FileTree."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from docsite.config import BuildConfig
from docsite.errors import ConfigurationError
from docsite.pipeline.assets import (
    BundleScriptsStage,
    CompileStylesheetsStage,
    CssImportCompiler,
    ImportBundler,
    IncludeFilesStage,
    ScriptBundler,
    StylesheetCompiler,
)
from docsite.pipeline.base import LOADER_WRITES, BuildContext, Stage
from docsite.pipeline.fingerprint import FingerprintStage
from docsite.pipeline.links import LinkCheckStage
from docsite.pipeline.navigation import NavigationStage
from docsite.pipeline.render import (
    CanonicalStage,
    LayoutStage,
    MarkdownRenderer,
    PermalinkStage,
    Renderer,
    RenderStage,
    TitleCheckStage,
)
from docsite.pipeline.search_index import SearchIndexStage
from docsite.pipeline.sitemap import SitemapStage
from docsite.tree import FileTree

LOGGER = logging.getLogger(__name__)

DEFAULT_STAGE_ORDER = (
    "compile-stylesheets",
    "bundle-scripts",
    "include-files",
    "fingerprint-assets",
    "render-content",
    "check-titles",
    "permalinks",
    "canonical-urls",
    "navigation",
    "search-index",
    "fingerprint-search-index",
    "layouts",
    "sitemap",
    "check-links",
)


def check_stage_order(stages: Sequence[Stage]) -> None:
    """Every field a stage reads must come from the loader or an earlier stage."""
    available = set(LOADER_WRITES)
    for stage in stages:
        missing = sorted(set(stage.reads) - available)
        if missing:
            raise ConfigurationError(
                f"Stage {stage.name!r} reads {', '.join(missing)} before any stage writes it"
            )
        available.update(stage.writes)


class Pipeline:
    """Run stages strictly in sequence; the first failure aborts the build."""

    def __init__(self, stages: Sequence[Stage]) -> None:
        self.stages: List[Stage] = list(stages)
        names = [stage.name for stage in self.stages]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate stage names: {', '.join(duplicates)}")
        check_stage_order(self.stages)

    @property
    def names(self) -> List[str]:
        return [stage.name for stage in self.stages]

    def run(self, tree: FileTree, context: BuildContext) -> FileTree:
        for stage in self.stages:
            LOGGER.debug("Running stage %s on %d files", stage.name, len(tree))
            started = time.perf_counter()
            result = stage.run(tree, context)
            if not isinstance(result, FileTree):
                raise ConfigurationError(f"Stage {stage.name!r} did not return a FileTree")
            tree = result
            LOGGER.debug("Stage %s finished in %.3fs", stage.name, time.perf_counter() - started)
        return tree


def default_stages(
    config: BuildConfig,
    *,
    renderer: Optional[Renderer] = None,
    compiler: Optional[StylesheetCompiler] = None,
    bundler: Optional[ScriptBundler] = None,
) -> List[Stage]:
    """The standard stage list, in DEFAULT_STAGE_ORDER."""
    stages: List[Stage] = [
        CompileStylesheetsStage(compiler or CssImportCompiler()),
        BundleScriptsStage(bundler or ImportBundler()),
        IncludeFilesStage(),
        FingerprintStage(config.fingerprint_patterns, config.fingerprint_ignore),
        RenderStage(renderer or MarkdownRenderer.from_config(config)),
        TitleCheckStage(),
        PermalinkStage(),
        CanonicalStage(),
        NavigationStage(),
        SearchIndexStage(),
        # The index only exists now, so it is hashed in place rather than renamed
        FingerprintStage(
            [config.search_index_path],
            ignore=[config.search_index_path],
            name="fingerprint-search-index",
        ),
        LayoutStage.from_config(config),
        SitemapStage(),
        LinkCheckStage(),
    ]
    return stages


@dataclass(slots=True)
class BuildResult:
    tree: FileTree
    context: BuildContext
    elapsed: float


def build_site(
    config: BuildConfig,
    *,
    stages: Optional[Sequence[Stage]] = None,
    tree: Optional[FileTree] = None,
    write: bool = True,
) -> BuildResult:
    """Load, transform and (only if every stage succeeds) publish the site."""
    started = time.perf_counter()
    if tree is None:
        if not config.source_dir.is_dir():
            raise ConfigurationError("Source directory not found", path=str(config.source_dir))
        tree = FileTree.from_directory(config.source_dir, ignore=config.ignore)

    context = BuildContext(config=config)
    pipeline = Pipeline(stages if stages is not None else default_stages(config))
    tree = pipeline.run(tree, context)

    if write:
        tree.write(config.output_dir)
    elapsed = time.perf_counter() - started
    LOGGER.info("Built %d files in %.2fs", len(tree), elapsed)
    return BuildResult(tree=tree, context=context, elapsed=elapsed)
