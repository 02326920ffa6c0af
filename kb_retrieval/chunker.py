"""Split extracted text into overlapping, sentence-aligned chunks."""

from __future__ import annotations

from typing import Iterable, List, Optional

from .config import ChunkingConfig
from .schemas import Chunk
from .utils import estimate_tokens, new_id, split_sentences


def _make_chunk(
    sentences: List[str],
    source_index: int,
    page_number: Optional[int],
    config: ChunkingConfig,
) -> Optional[Chunk]:
    """Join buffered sentences into a chunk, or None if below the minimum length."""
    text = " ".join(sentences).strip()
    if len(text) <= config.min_chunk_chars:
        return None
    return Chunk(
        id=new_id("chk"),
        text=text,
        source_index=source_index,
        page_number=page_number,
        token_count=estimate_tokens(text),
    )


def _overlap_tail(sentence_tokens: List[int], budget: int, limit: int) -> int:
    """
    Return how many trailing sentences seed the next chunk.

    Sentences are taken until the overlap budget is met, so the one crossing
    the budget is included. The tail stays below the chunk target.
    """
    used = 0
    count = 0
    for tokens in reversed(sentence_tokens):
        if used >= budget or used + tokens >= limit:
            break
        used += tokens
        count += 1
    return count


def chunk_text(
    text: str,
    source_index: int,
    page_number: Optional[int] = None,
    config: Optional[ChunkingConfig] = None,
) -> List[Chunk]:
    """
    Chunk one source's text near a target token budget.

    Sentences are accumulated greedily. Before a sentence would push the buffer
    past ``config.target_tokens`` the buffer is flushed, and the next buffer is
    seeded with trailing sentences until ``config.overlap_tokens`` is reached.
    A sentence longer than the target becomes its own chunk; sentences are
    never split.

    Args:
        text: Extracted plain text
        source_index: Position of the owning source in its knowledge base
        page_number: Page the text came from, if known
        config: Chunk sizing; defaults to 400 target / 50 overlap tokens

    Returns:
        Chunks in document order; empty for blank text
    """
    config = config or ChunkingConfig()
    if not text or not text.strip():
        return []

    chunks: List[Chunk] = []
    buf: List[str] = []
    buf_tokens: List[int] = []

    for sentence in split_sentences(text):
        tokens = estimate_tokens(sentence)
        if buf and sum(buf_tokens) + tokens > config.target_tokens:
            chunk = _make_chunk(buf, source_index, page_number, config)
            if chunk is not None:
                chunks.append(chunk)
            keep = _overlap_tail(buf_tokens, config.overlap_tokens, config.target_tokens)
            buf = buf[len(buf) - keep:]
            buf_tokens = buf_tokens[len(buf_tokens) - keep:]
        buf.append(sentence)
        buf_tokens.append(tokens)

    if buf:
        chunk = _make_chunk(buf, source_index, page_number, config)
        if chunk is not None:
            chunks.append(chunk)
    return chunks


def chunk_pages(
    pages: Iterable,
    source_index: int,
    config: Optional[ChunkingConfig] = None,
) -> List[Chunk]:
    """Chunk each extracted page separately so chunks keep their page number."""
    chunks: List[Chunk] = []
    for page in pages:
        chunks.extend(chunk_text(page.text, source_index, page.page_number, config))
    return chunks
