"""Full-text search index construction."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Sequence

from docsite.models import FileNode, SearchDocument
from docsite.pipeline.base import BuildContext, Stage, for_each_file
from docsite.tree import FileTree
from docsite.utils.files import matches_any
from docsite.utils.text import strip_markup, tokenize

LOGGER = logging.getLogger(__name__)

INDEX_VERSION = 1
FIELD_WEIGHTS = {"title": 10, "headings": 5, "body": 1}

# Posting layout: [document, title hits, heading hits, body positions]
DOC, TITLE_HITS, HEADING_HITS, BODY_POSITIONS = range(4)


def build_search_document(page: FileNode) -> SearchDocument:
    """Plain-text terms for a rendered page."""
    return SearchDocument(
        url=page.canonical_url or page.url or "/" + page.path,
        title=page.title or "",
        tokens=tokenize(strip_markup(page.text)),
        headings=[token for heading in page.headings for token in tokenize(heading.get("text", ""))],
    )


def build_inverted_index(documents: Sequence[SearchDocument]) -> Dict[str, Any]:
    """Aggregate documents into a term -> postings mapping.

    Document references are positions in ``documents``, so callers control
    ordering by the order they pass documents in.
    """
    postings: Dict[str, Dict[int, list]] = {}

    def posting(term: str, doc_id: int) -> list:
        return postings.setdefault(term, {}).setdefault(doc_id, [doc_id, 0, 0, []])

    for doc_id, document in enumerate(documents):
        for term in tokenize(document.title):
            posting(term, doc_id)[TITLE_HITS] += 1
        for term in document.headings:
            posting(term, doc_id)[HEADING_HITS] += 1
        for position, term in enumerate(document.tokens):
            posting(term, doc_id)[BODY_POSITIONS].append(position)

    return {
        "version": INDEX_VERSION,
        "fields": dict(FIELD_WEIGHTS),
        "documents": [
            {"url": document.url, "title": document.title, "length": len(document.tokens)}
            for document in documents
        ],
        "terms": {
            term: [by_doc[doc_id] for doc_id in sorted(by_doc)]
            for term, by_doc in sorted(postings.items())
        },
    }


def serialize_index(index: Dict[str, Any]) -> bytes:
    return json.dumps(index, sort_keys=True, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def is_indexable(page: FileNode, exclude: Sequence[str] = ()) -> bool:
    if page.exclude_from_search or page.redirect:
        return False
    return not (exclude and (matches_any(page.source_path, exclude) or matches_any(page.path, exclude)))


class SearchIndexStage(Stage):
    """Write the serialized index into the tree at ``config.search_index_path``."""

    name = "search-index"
    reads = frozenset(
        {"path", "contents", "url", "canonical_url", "title", "headings", "exclude_from_search", "redirect", "source_path"}
    )
    writes = frozenset({"path", "contents", "url"})

    def run(self, tree: FileTree, context: BuildContext) -> FileTree:
        config = context.config
        pages: List[FileNode] = [page for page in tree.pages() if is_indexable(page, config.search_exclude)]
        documents = for_each_file(pages, build_search_document, workers=config.workers)

        index = build_inverted_index(documents)
        node = tree.add(FileNode(path=config.search_index_path, contents=serialize_index(index)))
        node.url = "/" + node.path
        context.search_index = index

        LOGGER.info("Indexed %d pages, %d terms", len(documents), len(index["terms"]))
        return tree
