"""Build error taxonomy."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from docsite.models import LinkRecord


class BuildError(Exception):
    """Base class for every error that aborts a build."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        self.path = path
        if path:
            message = f"{path}: {message}"
        super().__init__(message)


class ConfigurationError(BuildError):
    """Invalid configuration or an inconsistent stage list."""


class ValidationError(BuildError):
    """Required metadata is missing or malformed."""


class StructuralError(BuildError):
    """The file tree or navigation structure is inconsistent."""


class CollaboratorError(BuildError):
    """A renderer, compiler or bundler failed for a file."""

    def __init__(self, message: str, *, path: str | None = None, cause: BaseException | None = None) -> None:
        super().__init__(message, path=path)
        self.cause = cause


class LinkResolutionError(BuildError):
    """One or more internal links point to URLs the build does not produce."""

    def __init__(self, broken: Sequence["LinkRecord"]) -> None:
        self.broken = list(broken)
        lines = [f"{len(self.broken)} broken internal link(s):"]
        lines.extend(f"  {record.source_path}: {record.target_url}" for record in self.broken)
        super().__init__("\n".join(lines))
