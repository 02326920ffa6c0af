"""KB Retrieval - lexical knowledge base ingestion and retrieval for prompt grounding."""

from .backends import JsonFileBackend, MemoryBackend, StoreBackend
from .chunker import chunk_pages, chunk_text
from .config import ChunkingConfig, EngineSettings
from .errors import (
    ExtractionError,
    InvalidQueryError,
    KnowledgeBaseError,
    NotFoundError,
    StoreCorruptedError,
    UnsupportedSourceKindError,
)
from .extractors import ExtractedPage, ExtractedText, extract_source
from .ingest import ingest_directory, scan_sources
from .retrieval import assemble_context, rank_chunks, score_chunk, score_chunks
from .schemas import (
    Chunk,
    IngestReport,
    IngestResult,
    KnowledgeBase,
    KnowledgeBaseSummary,
    Source,
    SourceKind,
)
from .store import KnowledgeBaseStore
from .utils import estimate_tokens, split_sentences

__version__ = "0.1.0"

__all__ = [
    "KnowledgeBaseStore",
    "StoreBackend",
    "MemoryBackend",
    "JsonFileBackend",
    "ChunkingConfig",
    "EngineSettings",
    "chunk_text",
    "chunk_pages",
    "extract_source",
    "ExtractedPage",
    "ExtractedText",
    "ingest_directory",
    "scan_sources",
    "score_chunk",
    "score_chunks",
    "rank_chunks",
    "assemble_context",
    "estimate_tokens",
    "split_sentences",
    "Chunk",
    "Source",
    "SourceKind",
    "KnowledgeBase",
    "KnowledgeBaseSummary",
    "IngestResult",
    "IngestReport",
    "KnowledgeBaseError",
    "NotFoundError",
    "UnsupportedSourceKindError",
    "ExtractionError",
    "InvalidQueryError",
    "StoreCorruptedError",
]
