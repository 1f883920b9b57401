"""YAML frontmatter parsing."""

from __future__ import annotations

from typing import Any, Dict, Tuple

import yaml

from docsite.errors import ValidationError

_DELIMITER = "---"


def split_frontmatter(content: str, *, path: str | None = None) -> Tuple[Dict[str, Any], str]:
    """Split a leading ``---`` YAML block from ``content``.

    Returns:
        (metadata dict, body string). Content without frontmatter yields an
        empty dict and the content unchanged.

    Raises:
        ValidationError: If the frontmatter is not a YAML mapping.
    """
    content = content.replace("\r\n", "\n")
    if content.startswith("\ufeff"):
        content = content[1:]
    if not content.startswith(_DELIMITER + "\n"):
        return {}, content

    end_marker = content.find("\n" + _DELIMITER, len(_DELIMITER))
    if end_marker == -1:
        return {}, content
    after = end_marker + len(_DELIMITER) + 1
    if after < len(content) and content[after] != "\n":
        return {}, content

    frontmatter_text = content[len(_DELIMITER) + 1 : end_marker]
    body = content[after + 1 :]

    try:
        metadata = yaml.safe_load(frontmatter_text) or {}
    except yaml.YAMLError as exc:
        raise ValidationError(f"Invalid YAML frontmatter: {exc}", path=path) from exc

    if not isinstance(metadata, dict):
        raise ValidationError("Frontmatter must be a mapping", path=path)
    return metadata, body
