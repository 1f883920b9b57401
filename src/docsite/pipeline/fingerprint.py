"""Content-addressed asset filenames."""

from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Sequence, Set

from docsite.errors import StructuralError
from docsite.models import FileNode
from docsite.pipeline.base import BuildContext, Stage, for_each_file
from docsite.tree import FileTree
from docsite.utils.files import compute_sha256, matches_any

LOGGER = logging.getLogger(__name__)

FINGERPRINT_LENGTH = 16

# Files whose text may reference other files by path
TEXT_SUFFIXES = {".html", ".md", ".css", ".js", ".mjs", ".json", ".xml", ".svg", ".txt"}


def fingerprint(data: bytes) -> str:
    """Fixed-width digest of a byte payload."""
    return compute_sha256(data)[:FINGERPRINT_LENGTH]


def fingerprinted_path(path: str, digest: str) -> str:
    """Insert ``digest`` before the extension: ``a/site.css`` -> ``a/site.<digest>.css``."""
    pure = PurePosixPath(path)
    if not pure.suffix:
        return f"{path}.{digest}"
    return str(pure.with_name(f"{pure.stem}.{digest}{pure.suffix}"))


def build_reference_pattern(paths: Sequence[str]) -> re.Pattern[str]:
    """Match bare or root-relative references to any of ``paths``.

    A reference must not be preceded by a path character (so
    ``other/site.css`` is not a reference to ``site.css``) nor continue into
    a longer filename (``site.css.map``).
    """
    alternatives = "|".join(re.escape(path) for path in sorted(paths, key=lambda p: (-len(p), p)))
    return re.compile(rf"(?<![\w\-./])(/?)({alternatives})(?![\w\-]|\.\w)")


class FingerprintStage(Stage):
    """Hash matching assets, rename them, and rewrite references elsewhere.

    An asset is hashed only after its references to other matched assets
    point at their final names, so every fingerprint describes the bytes
    that get published. Assets are therefore sealed in waves: a wave holds
    every asset whose dependencies are already renamed.

    Nodes matching ``ignore`` get a fingerprint but keep their path; their
    published URL carries the fingerprint as a ``?v=`` query instead.
    """

    reads = frozenset({"path", "contents"})
    writes = frozenset({"path", "contents", "fingerprint"})

    def __init__(self, patterns: Sequence[str], ignore: Sequence[str] = (), *, name: str = "fingerprint-assets") -> None:
        self.patterns = tuple(patterns)
        self.ignore = tuple(ignore)
        self.name = name

    def run(self, tree: FileTree, context: BuildContext) -> FileTree:
        targets = [node for node in tree.nodes() if matches_any(node.path, self.patterns)]
        if not targets:
            return tree
        workers = context.config.workers

        movable = {node.path for node in targets if not (self.ignore and matches_any(node.path, self.ignore))}
        pattern = build_reference_pattern(sorted(movable)) if movable else None
        if pattern is None:
            depends_on: Dict[str, Set[str]] = {node.path: set() for node in targets}
        else:
            found = for_each_file(targets, lambda node: _referenced_paths(node, pattern), workers=workers)
            depends_on = {node.path: refs - {node.path} for node, refs in zip(targets, found)}

        renames: Dict[str, str] = {}
        remaining: List[FileNode] = targets
        while remaining:
            wave = [node for node in remaining if depends_on[node.path] <= renames.keys()]
            if not wave:
                raise StructuralError(
                    "Fingerprinted files reference each other in a cycle: "
                    + ", ".join(node.path for node in remaining),
                    path=remaining[0].path,
                )
            for_each_file(wave, lambda node: _seal(node, pattern, renames), workers=workers)
            for node in wave:
                if node.path in movable:
                    renames[node.path] = fingerprinted_path(node.path, node.fingerprint)
                else:
                    context.fingerprints[node.path] = f"{node.path}?v={node.fingerprint}"
                    LOGGER.debug("Fingerprinted %s without renaming", node.path)
            sealed_now = {id(node) for node in wave}
            remaining = [node for node in remaining if id(node) not in sealed_now]

        tree.rename_many(renames)
        for old, new in renames.items():
            context.fingerprints[old] = new
            LOGGER.debug("Fingerprinted %s -> %s", old, new)

        if pattern is not None:
            sealed = {id(node) for node in targets}
            for_each_file(
                [node for node in tree.nodes() if id(node) not in sealed and node.suffix in TEXT_SUFFIXES],
                lambda node: _rewrite_references(node, pattern, renames),
                workers=workers,
            )

        LOGGER.info("Fingerprinted %d files (%d renamed)", len(targets), len(renames))
        return tree


def _referenced_paths(node: FileNode, pattern: re.Pattern[str]) -> Set[str]:
    if node.suffix not in TEXT_SUFFIXES:
        return set()
    try:
        text = node.text
    except UnicodeDecodeError:
        return set()
    return {match.group(2) for match in pattern.finditer(text)}


def _seal(node: FileNode, pattern: Optional[re.Pattern[str]], renames: Dict[str, str]) -> None:
    """Point references at final names, then hash the final bytes."""
    if pattern is not None and node.suffix in TEXT_SUFFIXES:
        _rewrite_references(node, pattern, renames)
    node.fingerprint = fingerprint(node.contents)


def _rewrite_references(node: FileNode, pattern: re.Pattern[str], renames: Dict[str, str]) -> None:
    try:
        text = node.text
    except UnicodeDecodeError:
        return
    # A self-reference has no final name to point at and stays as written
    rewritten = pattern.sub(lambda match: match.group(1) + renames.get(match.group(2), match.group(2)), text)
    if rewritten != text:
        node.text = rewritten
