"""Ingest every supported file in a directory into one knowledge base."""

from __future__ import annotations

import logging
import os
from typing import Dict, List, Tuple

from tqdm import tqdm

from .errors import ExtractionError
from .schemas import IngestReport, SourceKind

logger = logging.getLogger(__name__)

EXTENSION_KINDS = {
    ".pdf": SourceKind.DOCUMENT_PDF,
    ".docx": SourceKind.DOCUMENT_DOCX,
    ".txt": SourceKind.PLAIN_TEXT,
    ".md": SourceKind.PLAIN_TEXT,
}


def _is_word_lock(name: str) -> bool:
    """Check if filename is a Word lock file."""
    return name.startswith("~$")


def _relpath(path: str, base: str) -> str:
    try:
        return os.path.relpath(path, base)
    except ValueError:
        return path


def scan_sources(source_dir: str) -> Tuple[List[str], List[Dict[str, str]]]:
    """
    Scan a directory for files the engine can ingest.

    Returns:
        (included_files, skipped_files_with_reasons), both sorted by path
    """
    included: List[str] = []
    skipped: List[Dict[str, str]] = []

    for root, _, files in os.walk(source_dir):
        for filename in files:
            path = os.path.join(root, filename)
            if _is_word_lock(filename):
                skipped.append({"path": path, "reason": "word_lock"})
                continue

            try:
                if os.path.getsize(path) == 0:
                    skipped.append({"path": path, "reason": "empty_file"})
                    continue
            except OSError:
                skipped.append({"path": path, "reason": "stat_failed"})
                continue

            if os.path.splitext(filename)[1].lower() in EXTENSION_KINDS:
                included.append(path)
            else:
                skipped.append({"path": path, "reason": "unsupported_extension"})

    included.sort()
    skipped.sort(key=lambda item: item["path"])
    return included, skipped


def _read_content(path: str, kind: SourceKind):
    if kind.is_document:
        with open(path, "rb") as handle:
            return handle.read()
    with open(path, "r", encoding="utf-8") as handle:
        return handle.read()


def ingest_directory(store, kb_id: str, source_dir: str, show_progress: bool = True) -> IngestReport:
    """
    Add every supported file under source_dir as a source of one knowledge base.

    Files that fail to read or extract are recorded in the report and skipped;
    the run continues with the next file.

    Args:
        store: KnowledgeBaseStore to ingest into
        kb_id: Target knowledge base
        source_dir: Directory to walk
        show_progress: Display a tqdm progress bar

    Returns:
        IngestReport summarizing the run

    Raises:
        NotFoundError: If kb_id is unknown (checked before any file is read)
    """
    store.get_full(kb_id)
    included, skipped = scan_sources(source_dir)
    report = IngestReport(
        kb_id=kb_id,
        source_dir=source_dir,
        skipped_files=[item["path"] for item in skipped],
    )

    progress = tqdm(included, desc="Ingesting sources", disable=not show_progress)
    for path in progress:
        rel = _relpath(path, source_dir)
        progress.set_postfix_str(rel)
        kind = EXTENSION_KINDS[os.path.splitext(path)[1].lower()]
        try:
            content = _read_content(path, kind)
            result = store.add_source(kb_id, kind, content, label=os.path.basename(path))
        except (OSError, UnicodeDecodeError, ExtractionError) as exc:
            report.failed_files.append(path)
            logger.warning("Failed to ingest %s: %s", rel, exc)
            tqdm.write(f"[WARN] ingest failed: {rel} ({exc})")
            continue

        report.file_count += 1
        report.chunks_added += result.chunks_added
        report.tokens_added += result.tokens_added
        if not result.chunks_added:
            tqdm.write(f"[WARN] no chunks produced: {rel}")

    return report
