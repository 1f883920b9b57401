"""FastAPI application exposing a built site's search index."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from docsite.config import BuildConfig
from docsite.index.search import Searcher, SearchResult

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="docsite search", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.state.index_path = None


class SearchPayload(BaseModel):
    query: str
    index: Path | None = None
    top_k: int = 10


def _resolve_index_path(index: Path | None) -> Path:
    if index is not None:
        return index
    if app.state.index_path is not None:
        return Path(app.state.index_path)
    config = BuildConfig()
    return config.resolve_path(config.output_dir, Path.cwd()) / config.search_index_path


def _load_searcher(index: Path | None) -> Searcher:
    index_path = _resolve_index_path(index)
    if not index_path.exists():
        raise HTTPException(
            status_code=404,
            detail=f"Search index not found at {index_path}. Build the site first with 'docsite build'.",
        )
    return Searcher.from_path(index_path)


@app.post("/search")
async def search_documents(payload: SearchPayload) -> dict[str, List[SearchResult]]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")

    top_k = max(1, min(payload.top_k, 50))
    searcher = _load_searcher(payload.index)
    results = searcher.search(query, top_k=top_k)
    LOGGER.debug("Query %r matched %d documents", query, len(results))
    return {"results": results}


@app.get("/documents")
async def list_documents(index: Path | None = None) -> dict[str, Any]:
    """List the pages contained in the search index."""
    index_path = _resolve_index_path(index)
    if not index_path.exists():
        return {"documents": [], "stats": {"document_count": 0, "term_count": 0}}

    searcher = Searcher.from_path(index_path)
    return {
        "documents": searcher.documents,
        "stats": {"document_count": len(searcher.documents), "term_count": len(searcher.terms)},
    }
