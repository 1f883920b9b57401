"""Command line interface for docsite."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from docsite.config import BuildConfig, load_config
from docsite.errors import BuildError, LinkResolutionError
from docsite.index.search import Searcher
from docsite.pipeline.orchestrator import build_site
from docsite.web.app import app as web_app

console = Console()
app = typer.Typer(help="docsite - static documentation site builder")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _report_error(exc: BuildError) -> None:
    if isinstance(exc, LinkResolutionError):
        table = Table(show_header=True, header_style="bold red", title="Broken internal links")
        table.add_column("Source")
        table.add_column("Target")
        for record in exc.broken:
            table.add_row(record.source_path, record.target_url)
        console.print(table)
    else:
        console.print(f"[red]{type(exc).__name__}:[/red] {exc}")


def _default_index_path() -> Path:
    config = BuildConfig()
    return config.resolve_path(config.output_dir, Path.cwd()) / config.search_index_path


@app.command()
def build(
    project: Path = typer.Argument(Path("."), help="Project root directory.", resolve_path=True),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file"),
    source: Optional[Path] = typer.Option(None, "--source", help="Source directory", resolve_path=True),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output directory", resolve_path=True),
    hostname: Optional[str] = typer.Option(None, help="Public site URL used for canonical and sitemap URLs"),
    preview: Optional[bool] = typer.Option(None, "--preview/--production", help="Build for a preview environment"),
    workers: Optional[int] = typer.Option(None, help="Worker threads per stage"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Build the site; nothing is written unless every stage succeeds."""
    _setup_logging(verbose)
    try:
        config = load_config(
            project,
            config_path=config_file,
            source_dir=source,
            output_dir=output,
            hostname=hostname,
            preview=preview,
            workers=workers,
        )
        console.print(f"Building [bold]{config.source_dir}[/bold] -> [bold]{config.output_dir}[/bold]...")
        result = build_site(config)
    except BuildError as exc:
        _report_error(exc)
        raise typer.Exit(code=1)

    context = result.context
    console.print(
        f"Pages: {len(result.tree.pages())}, files: {len(result.tree)}, "
        f"fingerprinted: {len(context.fingerprints)}, sitemap URLs: {len(context.sitemap)}, "
        f"links checked: {len(context.links)} ({result.elapsed:.2f}s)"
    )


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    index: Optional[Path] = typer.Option(None, "--index", help="Path to a built search-index.json"),
    top_k: int = typer.Option(10, help="Number of results to display"),
) -> None:
    """Query the search index of a built site."""
    index_path = index if index is not None else _default_index_path()
    if not index_path.exists():
        raise typer.BadParameter(f"Search index not found: {index_path}")

    results = Searcher.from_path(index_path).search(query, top_k=top_k)
    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Title")
    table.add_column("URL")
    for result in results:
        table.add_row(f"{result.score:.1f}", result.title, result.url)
    console.print(table)


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    index: Optional[Path] = typer.Option(None, "--index", help="Path to a built search-index.json"),
) -> None:
    """Serve the search API for a built site."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover - defensive
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    index_path = index if index is not None else _default_index_path()
    if not index_path.exists():
        console.print("[yellow]Warning: search index not found, searches will fail.[/yellow]")
    web_app.state.index_path = index_path

    console.print(f"Starting search API on http://{host}:{port} (index: {index_path})")
    uvicorn.run(web_app, host=host, port=port, reload=False, log_level="info")
