"""Build configuration defaults and loading."""

from __future__ import annotations

import dataclasses
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

from docsite.errors import ConfigurationError

CONFIG_FILENAME = "docsite.toml"

DEFAULT_FINGERPRINT_PATTERNS = ("**/*.css", "javascripts/**/*.js")
DEFAULT_SITEMAP_EXCLUDE = ("**/default/*.html",)

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(slots=True, frozen=True)
class BuildConfig:
    """Build-wide settings, read-only once the build starts."""

    source_dir: Path = Path("src")
    output_dir: Path = Path("public")
    layouts_dir: Path = Path("views/layouts")
    partials_dir: Path = Path("views/partials")
    hostname: str = "http://localhost:8000"
    site_title: str = "Documentation"
    preview: bool = False
    default_layout: str = "layout.html"
    fingerprint_patterns: Tuple[str, ...] = DEFAULT_FINGERPRINT_PATTERNS
    fingerprint_ignore: Tuple[str, ...] = ()
    sitemap_exclude: Tuple[str, ...] = DEFAULT_SITEMAP_EXCLUDE
    navigation_exclude: Tuple[str, ...] = ()
    search_exclude: Tuple[str, ...] = ()
    search_index_path: str = "search-index.json"
    sitemap_path: str = "sitemap.xml"
    script_entries: Tuple[str, ...] = ()
    stylesheet_load_paths: Tuple[Path, ...] = ()
    ignore: Tuple[str, ...] = ()
    include: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    workers: int = 4

    def __post_init__(self) -> None:
        if not self.hostname.startswith(("http://", "https://")):
            raise ConfigurationError(f"hostname must be an absolute http(s) URL, got {self.hostname!r}")
        if self.workers < 1:
            raise ConfigurationError("workers must be at least 1")
        object.__setattr__(self, "hostname", self.hostname.rstrip("/"))

    def resolve_path(self, path: Path, base_dir: Path | None = None) -> Path:
        if Path(path).is_absolute() or base_dir is None:
            return Path(path)
        return base_dir / path

    def resolved(self, base_dir: Path) -> "BuildConfig":
        """Return a copy with every directory resolved against ``base_dir``."""
        return dataclasses.replace(
            self,
            source_dir=self.resolve_path(self.source_dir, base_dir),
            output_dir=self.resolve_path(self.output_dir, base_dir),
            layouts_dir=self.resolve_path(self.layouts_dir, base_dir),
            partials_dir=self.resolve_path(self.partials_dir, base_dir),
            stylesheet_load_paths=tuple(self.resolve_path(p, base_dir) for p in self.stylesheet_load_paths),
        )


_PATH_FIELDS = {"source_dir", "output_dir", "layouts_dir", "partials_dir"}
_TUPLE_FIELDS = {
    "fingerprint_patterns",
    "fingerprint_ignore",
    "sitemap_exclude",
    "navigation_exclude",
    "search_exclude",
    "script_entries",
    "ignore",
}


def _coerce(values: Mapping[str, Any]) -> Dict[str, Any]:
    known = {f.name for f in dataclasses.fields(BuildConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")

    result: Dict[str, Any] = {}
    for key, value in values.items():
        if key in _PATH_FIELDS:
            result[key] = Path(value)
        elif key in _TUPLE_FIELDS:
            result[key] = tuple(value)
        elif key == "stylesheet_load_paths":
            result[key] = tuple(Path(item) for item in value)
        elif key == "include":
            result[key] = {str(dest): tuple(patterns) for dest, patterns in value.items()}
        else:
            result[key] = value
    return result


def read_config_file(path: Path) -> Dict[str, Any]:
    """Read settings from ``docsite.toml`` or ``[tool.docsite]`` in pyproject.toml."""
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Invalid TOML: {exc}", path=str(path)) from exc
    if path.name == "pyproject.toml":
        return data.get("tool", {}).get("docsite", {})
    return data


def environ_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Settings taken from the process environment."""
    overrides: Dict[str, Any] = {}
    if environ.get("DOCSITE_HOSTNAME"):
        overrides["hostname"] = environ["DOCSITE_HOSTNAME"]
    if "DOCSITE_PREVIEW" in environ:
        overrides["preview"] = environ["DOCSITE_PREVIEW"].strip().lower() in _TRUTHY
    return overrides


def load_config(
    base_dir: Path,
    *,
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> BuildConfig:
    """Build the configuration once: defaults, file, environment, then overrides."""
    values: Dict[str, Any] = {}

    if config_path is None:
        for candidate in (base_dir / CONFIG_FILENAME, base_dir / "pyproject.toml"):
            if candidate.exists():
                config_path = candidate
                break
    elif not config_path.exists():
        raise ConfigurationError("Configuration file not found", path=str(config_path))

    if config_path is not None:
        values.update(read_config_file(config_path))

    values.update(environ_overrides(os.environ if environ is None else environ))
    values.update({key: value for key, value in overrides.items() if value is not None})

    return BuildConfig(**_coerce(values)).resolved(base_dir)
