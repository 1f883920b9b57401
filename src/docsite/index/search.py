"""Query interface over a serialized search index."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

from docsite.pipeline.search_index import BODY_POSITIONS, DOC, HEADING_HITS, TITLE_HITS
from docsite.utils.text import tokenize

# Prefix matches on the last query term count for less than exact matches
PREFIX_FACTOR = 0.5


@dataclass(slots=True)
class SearchResult:
    url: str
    title: str
    score: float


class Searcher:
    """High-level API to query a built search index."""

    def __init__(self, index: Dict[str, Any]) -> None:
        self.index = index
        self.weights = index.get("fields", {})
        self.documents = index.get("documents", [])
        self.terms: Dict[str, list] = index.get("terms", {})

    @classmethod
    def from_path(cls, path: Path) -> "Searcher":
        with Path(path).open("r", encoding="utf-8") as handle:
            return cls(json.load(handle))

    def _posting_score(self, posting: list) -> float:
        return (
            posting[TITLE_HITS] * self.weights.get("title", 1)
            + posting[HEADING_HITS] * self.weights.get("headings", 1)
            + len(posting[BODY_POSITIONS]) * self.weights.get("body", 1)
        )

    def search(self, query: str, *, top_k: int = 10) -> List[SearchResult]:
        terms = tokenize(query)
        if not terms:
            return []

        scores: Dict[int, float] = {}
        for position, term in enumerate(terms):
            matches = [(term, 1.0)] if term in self.terms else []
            if position == len(terms) - 1:
                matches.extend(
                    (candidate, PREFIX_FACTOR)
                    for candidate in self.terms
                    if candidate != term and candidate.startswith(term)
                )
            for candidate, factor in matches:
                for posting in self.terms[candidate]:
                    doc_id = posting[DOC]
                    scores[doc_id] = scores.get(doc_id, 0.0) + factor * self._posting_score(posting)

        ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0]))[:top_k]
        return [
            SearchResult(
                url=self.documents[doc_id]["url"],
                title=self.documents[doc_id]["title"],
                score=score,
            )
            for doc_id, score in ranked
        ]
