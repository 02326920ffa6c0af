"""Knowledge base store: CRUD, source ingestion and retrieval entry points."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Union

from .backends import JsonFileBackend, MemoryBackend, StoreBackend
from .chunker import chunk_pages
from .config import EngineSettings
from .errors import NotFoundError
from .extractors import DEFAULT_LABELS, ExtractedText, extract_source
from .retrieval import assemble_context, rank_chunks
from .schemas import (
    Chunk,
    IngestResult,
    KnowledgeBase,
    KnowledgeBaseSummary,
    Source,
    SourceKind,
)
from .utils import new_id, utc_now

logger = logging.getLogger(__name__)

Extractor = Callable[[SourceKind, Union[bytes, str], Optional[str]], ExtractedText]


class KnowledgeBaseStore:
    """
    Owns the knowledge base collection.

    Every operation reads the target knowledge base from the backend, mutates
    it and writes it back. Writers to the same knowledge base serialize on a
    per-id lock; different knowledge bases proceed independently.
    """

    def __init__(
        self,
        backend: Optional[StoreBackend] = None,
        settings: Optional[EngineSettings] = None,
        extractor: Extractor = extract_source,
    ) -> None:
        self.backend = backend if backend is not None else MemoryBackend()
        self.settings = settings or EngineSettings()
        self.extractor = extractor
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Optional[EngineSettings] = None) -> "KnowledgeBaseStore":
        """Create a store backed by a JSON file when settings.store_path is set."""
        settings = settings or EngineSettings.from_env()
        backend = JsonFileBackend(settings.store_path) if settings.store_path else MemoryBackend()
        return cls(backend=backend, settings=settings)

    @contextmanager
    def _locked(self, kb_id: str) -> Iterator[None]:
        # Locks exist only for stored knowledge bases; delete() drops them.
        with self._locks_guard:
            lock = self._locks.get(kb_id)
            if lock is None:
                if self.backend.get(kb_id) is None:
                    raise NotFoundError(f"Knowledge base not found: {kb_id}")
                lock = self._locks[kb_id] = threading.Lock()
        with lock:
            yield

    def _load(self, kb_id: str) -> KnowledgeBase:
        kb = self.backend.get(kb_id)
        if kb is None:
            raise NotFoundError(f"Knowledge base not found: {kb_id}")
        return kb

    # CRUD

    def create(self, name: str, description: str = "") -> KnowledgeBaseSummary:
        now = utc_now()
        kb = KnowledgeBase(
            id=new_id("kb"),
            name=name,
            description=description,
            created_at=now,
            updated_at=now,
        )
        self.backend.add(kb)
        logger.info('Created KB: %s "%s"', kb.id, name)
        return kb.summary()

    def update(
        self,
        kb_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> KnowledgeBaseSummary:
        """
        Merge the provided metadata fields into a knowledge base.

        Raises:
            NotFoundError: If kb_id is unknown
        """
        with self._locked(kb_id):
            kb = self._load(kb_id)
            if name is not None:
                kb.name = name
            if description is not None:
                kb.description = description
            kb.touch()
            self.backend.replace(kb)
        return kb.summary()

    def delete(self, kb_id: str) -> None:
        with self._locked(kb_id):
            if not self.backend.remove(kb_id):
                raise NotFoundError(f"Knowledge base not found: {kb_id}")
        with self._locks_guard:
            self._locks.pop(kb_id, None)
        logger.info("Deleted KB: %s", kb_id)

    def list_summaries(self) -> List[KnowledgeBaseSummary]:
        return [kb.summary() for kb in self.backend.list_all()]

    def get_full(self, kb_id: str) -> KnowledgeBase:
        return self._load(kb_id)

    # Sources

    def add_source(
        self,
        kb_id: str,
        kind: Union[SourceKind, str],
        content: Union[bytes, str],
        label: Optional[str] = None,
        url: Optional[str] = None,
    ) -> IngestResult:
        """
        Extract, chunk and append one source.

        Args:
            kb_id: Target knowledge base
            kind: Source kind ("pdf", "docx", "txt", "url", "text")
            content: Raw document bytes or already-extracted text
            label: Filename; defaults per kind
            url: Page URL for url sources

        Returns:
            IngestResult with the new source index, chunk count and token sum

        Raises:
            NotFoundError: If kb_id is unknown
            UnsupportedSourceKindError: If kind is not recognized
            ExtractionError: If text extraction fails
        """
        self._load(kb_id)
        kind = SourceKind.parse(kind)
        if kind is SourceKind.URL:
            label = label or url or ""
        elif kind in DEFAULT_LABELS:
            label = label or DEFAULT_LABELS[kind]

        extracted = self.extractor(kind, content, label)

        with self._locked(kb_id):
            kb = self._load(kb_id)
            source_index = len(kb.sources)
            kb.sources.append(
                Source(
                    kind=kind,
                    label=label,
                    url=url if kind is SourceKind.URL else None,
                    ingested_at=utc_now(),
                    page_count=extracted.page_count if kind is SourceKind.DOCUMENT_PDF else None,
                )
            )
            new_chunks = chunk_pages(extracted.pages, source_index, self.settings.chunking)
            kb.chunks.extend(new_chunks)
            kb.touch()
            self.backend.replace(kb)

        tokens_added = sum(chunk.token_count for chunk in new_chunks)
        logger.info(
            "KB %s: +%d chunks (%d total, ~%d tokens)",
            kb_id, len(new_chunks), kb.total_chunks, kb.total_tokens,
        )
        return IngestResult(
            source_index=source_index,
            chunks_added=len(new_chunks),
            tokens_added=tokens_added,
        )

    def remove_source(self, kb_id: str, source_index: int) -> bool:
        """
        Remove a source and its chunks, renumbering later sources' chunks.

        Raises:
            NotFoundError: If kb_id is unknown or source_index is out of range
        """
        with self._locked(kb_id):
            kb = self._load(kb_id)
            if not 0 <= source_index < len(kb.sources):
                raise NotFoundError(f"Source index {source_index} out of range for KB {kb_id}")

            del kb.sources[source_index]
            kept: List[Chunk] = []
            for chunk in kb.chunks:
                if chunk.source_index == source_index:
                    continue
                if chunk.source_index > source_index:
                    chunk = chunk.model_copy(update={"source_index": chunk.source_index - 1})
                kept.append(chunk)
            removed = len(kb.chunks) - len(kept)
            kb.chunks = kept
            kb.touch()
            self.backend.replace(kb)

        logger.info("KB %s: removed source %d (-%d chunks)", kb_id, source_index, removed)
        return True

    # Retrieval

    def query(self, kb_id: str, question: str, top_k: Optional[int] = None) -> List[Chunk]:
        """
        Rank a knowledge base's chunks against a question.

        An unknown or empty knowledge base yields an empty list.

        Raises:
            InvalidQueryError: If the question is blank or top_k is not positive
        """
        top_k = self.settings.default_top_k if top_k is None else top_k
        kb = self.backend.get(kb_id)
        chunks = kb.chunks if kb is not None else []
        results = rank_chunks(chunks, question, top_k)
        logger.debug("KB %s: query matched %d of %d chunks", kb_id, len(results), len(chunks))
        return results

    def build_context(self, kb_id: str, question: str, max_tokens: Optional[int] = None) -> str:
        """
        Assemble the best matching chunks into a context block for a prompt.

        Returns "" when nothing relevant fits in max_tokens.
        """
        max_tokens = self.settings.max_context_tokens if max_tokens is None else max_tokens
        ranked = self.query(kb_id, question, self.settings.context_top_k)
        return assemble_context(ranked, max_tokens)
