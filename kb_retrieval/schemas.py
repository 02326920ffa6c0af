"""Data schemas for the knowledge base engine."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .errors import UnsupportedSourceKindError
from .utils import utc_now


class SourceKind(str, Enum):
    """Recognized kinds of ingested material."""
    DOCUMENT_PDF = "pdf"
    DOCUMENT_DOCX = "docx"
    PLAIN_TEXT = "txt"
    URL = "url"
    PASTED_TEXT = "text"

    @classmethod
    def parse(cls, value: Union[str, "SourceKind"]) -> "SourceKind":
        """
        Resolve a kind from its value ("pdf") or long name ("document-pdf").

        Raises:
            UnsupportedSourceKindError: If the value is not a recognized kind
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        for kind in cls:
            if key in (kind.value, kind.name.lower().replace("_", "-")):
                return kind
        raise UnsupportedSourceKindError(f"Unsupported source kind: {value!r}")

    @property
    def is_document(self) -> bool:
        return self in (SourceKind.DOCUMENT_PDF, SourceKind.DOCUMENT_DOCX)


class Source(BaseModel):
    """One ingested unit of material."""
    model_config = ConfigDict(frozen=True)

    kind: SourceKind
    label: Optional[str] = None
    url: Optional[str] = None
    ingested_at: datetime = Field(default_factory=utc_now)
    page_count: Optional[int] = None


class Chunk(BaseModel):
    """An atomic retrievable fragment of source text."""
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    source_index: int = Field(ge=0)
    page_number: Optional[int] = None
    token_count: int = Field(ge=0)


class KnowledgeBaseSummary(BaseModel):
    """A knowledge base without its chunks, for listings."""
    id: str
    name: str
    description: str = ""
    sources: List[Source] = Field(default_factory=list)
    total_chunks: int = 0
    total_tokens: int = 0
    created_at: datetime
    updated_at: datetime


class KnowledgeBase(BaseModel):
    """A named collection of sources and the chunks derived from them."""
    id: str
    name: str
    description: str = ""
    sources: List[Source] = Field(default_factory=list)
    chunks: List[Chunk] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @computed_field
    @property
    def total_chunks(self) -> int:
        return len(self.chunks)

    @computed_field
    @property
    def total_tokens(self) -> int:
        return sum(chunk.token_count for chunk in self.chunks)

    def touch(self) -> None:
        """Bump updated_at, never moving it backwards."""
        self.updated_at = max(utc_now(), self.updated_at)

    def summary(self) -> KnowledgeBaseSummary:
        return KnowledgeBaseSummary(
            id=self.id,
            name=self.name,
            description=self.description,
            sources=list(self.sources),
            total_chunks=self.total_chunks,
            total_tokens=self.total_tokens,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class IngestResult(BaseModel):
    """Outcome of adding one source."""
    source_index: int
    chunks_added: int
    tokens_added: int


class IngestReport(BaseModel):
    """Outcome of ingesting a whole directory into one knowledge base."""
    kb_id: str
    source_dir: str
    file_count: int = 0
    chunks_added: int = 0
    tokens_added: int = 0
    skipped_files: List[str] = Field(default_factory=list)
    failed_files: List[str] = Field(default_factory=list)
