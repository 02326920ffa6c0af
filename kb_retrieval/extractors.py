"""Turn uploaded documents, pages and pasted text into plain text."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from typing import List, Optional, Union

from langchain_community.document_loaders import Docx2txtLoader, PyPDFLoader

from .errors import ExtractionError
from .schemas import SourceKind

logger = logging.getLogger(__name__)

DEFAULT_LABELS = {
    SourceKind.DOCUMENT_PDF: "uploaded.pdf",
    SourceKind.DOCUMENT_DOCX: "uploaded.docx",
    SourceKind.PLAIN_TEXT: "uploaded.txt",
}


@dataclass
class ExtractedPage:
    """Plain text of one page (or of a whole unpaginated source)."""
    text: str
    page_number: Optional[int] = None


@dataclass
class ExtractedText:
    """Extraction output handed to the chunker."""
    pages: List[ExtractedPage] = field(default_factory=list)
    page_count: Optional[int] = None

    @property
    def text(self) -> str:
        return "\n".join(page.text for page in self.pages)


def _decode(content: Union[bytes, str]) -> str:
    if isinstance(content, str):
        return content
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ExtractionError(f"Content is not valid UTF-8 text: {exc}") from exc


def _load_with(loader_cls, content: bytes, filename: str):
    """Write content to a temporary file and run a langchain loader over it."""
    temp_dir = tempfile.mkdtemp(prefix="kb_extract_")
    try:
        path = os.path.join(temp_dir, os.path.basename(filename))
        with open(path, "wb") as handle:
            handle.write(content)
        return loader_cls(path).load()
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


def _extract_pdf(content: bytes, label: str) -> ExtractedText:
    documents = _load_with(PyPDFLoader, content, label)
    pages = [
        ExtractedPage(text=doc.page_content, page_number=int(doc.metadata.get("page", idx)) + 1)
        for idx, doc in enumerate(documents)
    ]
    logger.info("PDF extracted: %d pages, %d chars", len(pages), sum(len(p.text) for p in pages))
    return ExtractedText(pages=pages, page_count=len(pages))


def _extract_docx(content: bytes, label: str) -> ExtractedText:
    documents = _load_with(Docx2txtLoader, content, label)
    text = "\n".join(doc.page_content for doc in documents)
    logger.info("DOCX extracted: %d chars", len(text))
    return ExtractedText(pages=[ExtractedPage(text=text)])


def extract_source(
    kind: SourceKind,
    content: Union[bytes, str],
    label: Optional[str] = None,
) -> ExtractedText:
    """
    Extract plain text from one source.

    PDF and DOCX bytes go through langchain-community loaders. Strings passed
    for a document kind are taken as text the caller already extracted.
    Text, URL and pasted kinds are passed through (bytes decoded as UTF-8).

    Args:
        kind: Source kind
        content: Raw bytes or already-extracted text
        label: Filename used for the temporary file

    Returns:
        ExtractedText with one page per PDF page, a single page otherwise

    Raises:
        ExtractionError: If the loader or decoding fails
    """
    kind = SourceKind.parse(kind)
    if kind.is_document and isinstance(content, (bytes, bytearray)):
        filename = label or DEFAULT_LABELS[kind]
        try:
            if kind is SourceKind.DOCUMENT_PDF:
                return _extract_pdf(bytes(content), filename)
            return _extract_docx(bytes(content), filename)
        except ExtractionError:
            raise
        except Exception as exc:
            raise ExtractionError(f"Failed to extract {kind.value} '{filename}': {exc}") from exc

    return ExtractedText(pages=[ExtractedPage(text=_decode(content))])
