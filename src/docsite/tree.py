"""In-memory file tree shared by every pipeline stage."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, Iterator, List

from docsite.errors import StructuralError, ValidationError
from docsite.models import FRONTMATTER_FIELDS, FileNode
from docsite.utils.frontmatter import split_frontmatter
from docsite.utils.files import iter_source_paths

LOGGER = logging.getLogger(__name__)

CONTENT_SUFFIXES = {".md", ".html"}


def normalize_path(path: str) -> str:
    """Return the canonical slash-separated relative form of ``path``."""
    normalized = PurePosixPath(path.replace("\\", "/").lstrip("/")).as_posix()
    if normalized in ("", ".") or ".." in PurePosixPath(normalized).parts:
        raise StructuralError("Invalid file path", path=path)
    return normalized


class FileTree:
    """Path-keyed collection of FileNodes; iteration is in sorted path order."""

    def __init__(self, nodes: Iterable[FileNode] = ()) -> None:
        self._nodes: Dict[str, FileNode] = {}
        for node in nodes:
            self.add(node)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, path: object) -> bool:
        return path in self._nodes

    def __iter__(self) -> Iterator[FileNode]:
        return iter(self.nodes())

    def __getitem__(self, path: str) -> FileNode:
        return self._nodes[path]

    def get(self, path: str) -> FileNode | None:
        return self._nodes.get(path)

    def paths(self) -> List[str]:
        return sorted(self._nodes)

    def nodes(self) -> List[FileNode]:
        return [self._nodes[path] for path in self.paths()]

    def pages(self) -> List[FileNode]:
        return [node for node in self.nodes() if node.is_page]

    def add(self, node: FileNode) -> FileNode:
        node.path = normalize_path(node.path)
        if node.path in self._nodes:
            raise StructuralError("Duplicate file path", path=node.path)
        self._nodes[node.path] = node
        return node

    def remove(self, path: str) -> FileNode:
        try:
            return self._nodes.pop(path)
        except KeyError:
            raise StructuralError("Cannot remove missing file", path=path) from None

    def rename(self, old: str, new: str) -> FileNode:
        """Move a node to a new path, refusing to overwrite another node."""
        return self.rename_many({old: new})[0]

    def rename_many(self, mapping: Dict[str, str]) -> List[FileNode]:
        """Move several nodes in one step.

        Targets are checked as a set before anything moves: a node may take
        the path another node in ``mapping`` is leaving. Raises
        StructuralError if two nodes would share a path, leaving the tree
        unchanged.
        """
        targets = {old: normalize_path(new) for old, new in mapping.items()}
        missing = sorted(old for old in targets if old not in self._nodes)
        if missing:
            raise StructuralError("Cannot rename missing file", path=missing[0])

        claimed: Dict[str, str] = {}
        for old, new in sorted(targets.items()):
            if new in claimed:
                raise StructuralError(f"Renaming {old} and {claimed[new]} would collide", path=new)
            claimed[new] = old
            if new in self._nodes and new not in targets:
                raise StructuralError(f"Renaming {old} would collide with an existing file", path=new)

        moved = [self._nodes.pop(old) for old in targets]
        for node, new in zip(moved, targets.values()):
            node.path = new
            self._nodes[new] = node
        return moved

    @classmethod
    def from_directory(cls, root: Path, *, ignore: Iterable[str] = ()) -> "FileTree":
        """Load every source file under ``root``; content files get frontmatter parsed."""
        tree = cls()
        for item in iter_source_paths(root, ignore=ignore):
            relative = item.relative_to(root).as_posix()
            tree.add(load_node(relative, item.read_bytes()))
        LOGGER.info("Loaded %d files from %s", len(tree), root)
        return tree

    def write(self, output_dir: Path) -> None:
        """Publish the tree, replacing ``output_dir`` only once every file is written."""
        output_dir = Path(output_dir)
        output_dir.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".{output_dir.name}-", dir=output_dir.parent))
        try:
            for node in self.nodes():
                target = staging / node.path
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(node.contents)
            if output_dir.exists():
                shutil.rmtree(output_dir)
            os.replace(staging, output_dir)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        LOGGER.info("Wrote %d files to %s", len(self), output_dir)


def load_node(path: str, data: bytes) -> FileNode:
    """Create a FileNode, splitting frontmatter from content files."""
    node = FileNode(path=path, contents=data)
    if node.suffix not in CONTENT_SUFFIXES:
        return node

    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValidationError("Content file is not valid UTF-8", path=path) from exc

    metadata, body = split_frontmatter(text, path=path)
    node.text = body
    for key, value in metadata.items():
        attribute = FRONTMATTER_FIELDS.get(key)
        if attribute is None:
            node.frontmatter[key] = value
        else:
            setattr(node, attribute, _check_field(attribute, value, path))
    return node


def _check_field(attribute: str, value, path: str):
    if attribute.startswith("exclude_from_"):
        if not isinstance(value, bool):
            raise ValidationError(f"{attribute} must be true or false", path=path)
        return value
    if attribute == "nav_order":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError("navOrder must be a number", path=path)
        return value
    if attribute in ("permalink", "layout"):
        if value is not False and not isinstance(value, str):
            raise ValidationError(f"{attribute} must be a string or false", path=path)
        return value
    if value is not None and not isinstance(value, str):
        return str(value)
    return value
