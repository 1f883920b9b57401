"""Stylesheet, script and static-file collaborators that run before fingerprinting."""

from __future__ import annotations

import logging
import posixpath
import re
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence, Set

from docsite.errors import CollaboratorError
from docsite.models import FileNode
from docsite.pipeline.base import BuildContext, Stage, for_each_file
from docsite.tree import FileTree

LOGGER = logging.getLogger(__name__)

_CSS_IMPORT_RE = re.compile(r"""@import\s+(?:url\(\s*)?["']([^"']+)["']\s*\)?\s*;""")
_JS_IMPORT_RE = re.compile(r"""^[ \t]*import\s+["'](\.{1,2}/[^"']+)["'][ \t]*;?[ \t]*$""", re.MULTILINE)

Resolver = Callable[[str], Optional[str]]


class StylesheetCompiler(Protocol):
    def compile(self, path: str, source: str, resolve: Resolver) -> str: ...


class ScriptBundler(Protocol):
    def bundle(self, entry: str, source: str, resolve: Resolver) -> str: ...


def _is_partial(path: str) -> bool:
    return posixpath.basename(path).startswith("_")


class CssImportCompiler:
    """Inline local ``@import`` rules; remote imports are left alone."""

    def compile(self, path: str, source: str, resolve: Resolver) -> str:
        return self._inline(path, source, resolve, stack=[path])

    def _inline(self, path: str, source: str, resolve: Resolver, stack: List[str]) -> str:
        def replace(match: re.Match[str]) -> str:
            target = match.group(1)
            if target.startswith(("http://", "https://", "//")):
                return match.group(0)
            for candidate in _css_candidates(path, target):
                text = resolve(candidate)
                if text is None:
                    continue
                if candidate in stack:
                    raise ValueError(f"Circular @import of {candidate}")
                return self._inline(candidate, text, resolve, stack + [candidate])
            raise ValueError(f"Cannot resolve @import {target!r}")

        return _CSS_IMPORT_RE.sub(replace, source)


def _css_candidates(path: str, target: str) -> List[str]:
    """Relative to the importing file first, then as written (for load paths); partials as ``_name.css``."""
    name = target if target.endswith(".css") else target + ".css"
    candidates: List[str] = []
    for base in (posixpath.normpath(posixpath.join(posixpath.dirname(path), name)), posixpath.normpath(name)):
        head, tail = posixpath.split(base)
        for option in (base, posixpath.join(head, "_" + tail)):
            if option not in candidates:
                candidates.append(option)
    return candidates


class ImportBundler:
    """Inline relative side-effect imports once each and wrap the entry in an IIFE."""

    def bundle(self, entry: str, source: str, resolve: Resolver) -> str:
        seen: Set[str] = {entry}
        body = self._inline(entry, source, resolve, seen)
        return "(function () {\n'use strict';\n" + body.rstrip("\n") + "\n})();\n"

    def _inline(self, path: str, source: str, resolve: Resolver, seen: Set[str]) -> str:
        def replace(match: re.Match[str]) -> str:
            target = posixpath.normpath(posixpath.join(posixpath.dirname(path), match.group(1)))
            if not posixpath.splitext(target)[1]:
                target += ".js"
            if target in seen:
                return ""
            text = resolve(target)
            if text is None:
                raise ValueError(f"Cannot resolve import {match.group(1)!r}")
            seen.add(target)
            return self._inline(target, text, resolve, seen).rstrip("\n")

        return _JS_IMPORT_RE.sub(replace, source)


def _tree_resolver(tree: FileTree, load_paths: Sequence[Path] = ()) -> Resolver:
    def resolve(path: str) -> Optional[str]:
        node = tree.get(path.lstrip("/"))
        if node is not None:
            return node.text
        for root in load_paths:
            candidate = Path(root) / path
            if candidate.is_file():
                return candidate.read_text(encoding="utf-8")
        return None

    return resolve


class CompileStylesheetsStage(Stage):
    """Compile every non-partial ``.css`` file and drop the partials."""

    name = "compile-stylesheets"
    reads = frozenset({"path", "contents"})
    writes = frozenset({"path", "contents"})

    def __init__(self, compiler: StylesheetCompiler) -> None:
        self.compiler = compiler

    def run(self, tree: FileTree, context: BuildContext) -> FileTree:
        stylesheets = [node for node in tree.nodes() if node.suffix == ".css"]
        resolve = _tree_resolver(tree, context.config.stylesheet_load_paths)
        entries = [node for node in stylesheets if not _is_partial(node.path)]

        compiled = for_each_file(entries, lambda node: self._compile(node, resolve), workers=context.config.workers)
        for node, css in zip(entries, compiled):
            node.text = css
        for node in stylesheets:
            if _is_partial(node.path):
                tree.remove(node.path)

        LOGGER.info("Compiled %d stylesheets", len(entries))
        return tree

    def _compile(self, node: FileNode, resolve: Resolver) -> str:
        try:
            return self.compiler.compile(node.path, node.text, resolve)
        except (ValueError, OSError) as exc:
            raise CollaboratorError(f"Stylesheet compilation failed: {exc}", path=node.source_path, cause=exc) from exc


class BundleScriptsStage(Stage):
    """Bundle each configured script entry point in place."""

    name = "bundle-scripts"
    reads = frozenset({"path", "contents"})
    writes = frozenset({"contents"})

    def __init__(self, bundler: ScriptBundler) -> None:
        self.bundler = bundler

    def run(self, tree: FileTree, context: BuildContext) -> FileTree:
        entries = list(context.config.script_entries)
        missing = [entry for entry in entries if entry not in tree]
        if missing:
            raise CollaboratorError("Script entry point not found", path=missing[0])

        resolve = _tree_resolver(tree)
        nodes = [tree[entry] for entry in entries]
        bundled = for_each_file(nodes, lambda node: self._bundle(node, resolve), workers=context.config.workers)
        for node, script in zip(nodes, bundled):
            node.text = script

        LOGGER.info("Bundled %d script entry points", len(nodes))
        return tree

    def _bundle(self, node: FileNode, resolve: Resolver) -> str:
        try:
            return self.bundler.bundle(node.path, node.text, resolve)
        except (ValueError, OSError) as exc:
            raise CollaboratorError(f"Script bundling failed: {exc}", path=node.source_path, cause=exc) from exc


class IncludeFilesStage(Stage):
    """Copy files from outside the source tree into configured directories."""

    name = "include-files"
    writes = frozenset({"path", "contents"})

    def run(self, tree: FileTree, context: BuildContext) -> FileTree:
        base_dir = Path(context.config.source_dir).parent
        count = 0
        for destination, patterns in sorted(context.config.include.items()):
            for pattern in patterns:
                for item in sorted(base_dir.glob(pattern)):
                    if not item.is_file():
                        continue
                    tree.add(FileNode(path=posixpath.join(destination, item.name), contents=item.read_bytes()))
                    count += 1
        if count:
            LOGGER.info("Included %d external files", count)
        return tree
