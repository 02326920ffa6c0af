"""Lexical relevance scoring, top-K ranking and context assembly."""

from __future__ import annotations

import math
import re
from typing import List, Sequence

import numpy as np

from .errors import InvalidQueryError
from .schemas import Chunk
from .utils import estimate_tokens


CONTEXT_HEADER = "## Relevant Knowledge Base Context"
MIN_QUERY_TERM_LEN = 3

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")


def query_terms(query: str) -> List[str]:
    """Lowercase, strip punctuation, drop terms shorter than three characters."""
    cleaned = _NON_ALNUM_RE.sub("", query.lower())
    return [word for word in cleaned.split() if len(word) >= MIN_QUERY_TERM_LEN]


def _term_patterns(terms: Sequence[str]) -> List[re.Pattern]:
    return [re.compile(r"\b" + re.escape(term)) for term in terms]


def _score_text(patterns: Sequence[re.Pattern], text: str, token_count: int) -> float:
    lowered = text.lower()
    raw = sum(len(pattern.findall(lowered)) for pattern in patterns)
    if raw and token_count > 0:
        return raw / math.sqrt(token_count)
    return float(raw)


def score_chunk(chunk: Chunk, query: str) -> float:
    """
    Score a chunk against a query; higher is more relevant.

    Each query term counts its prefix-anchored word-boundary matches ("cache"
    matches "caches" and "caching"). The summed count is divided by the square
    root of the chunk's token count, favouring dense matches over long chunks.
    A chunk with no matches scores exactly 0.
    """
    return _score_text(_term_patterns(query_terms(query)), chunk.text, chunk.token_count)


def score_chunks(chunks: Sequence[Chunk], query: str) -> np.ndarray:
    """Score every chunk against the same query."""
    patterns = _term_patterns(query_terms(query))
    if not patterns:
        return np.zeros(len(chunks), dtype=float)
    return np.array(
        [_score_text(patterns, chunk.text, chunk.token_count) for chunk in chunks],
        dtype=float,
    )


def _check_question(question: str) -> None:
    if not question or not question.strip():
        raise InvalidQueryError("Question text must not be empty")


def rank_chunks(chunks: Sequence[Chunk], question: str, top_k: int = 8) -> List[Chunk]:
    """
    Return the top_k chunks with a positive score, best first.

    Ties keep their original chunk order.

    Raises:
        InvalidQueryError: If the question is blank or top_k is not positive
    """
    _check_question(question)
    if top_k <= 0:
        raise InvalidQueryError(f"top_k must be a positive integer, got {top_k}")
    if not chunks:
        return []

    scores = score_chunks(chunks, question)
    matched = np.flatnonzero(scores > 0)
    order = matched[np.argsort(-scores[matched], kind="stable")]
    return [chunks[int(idx)] for idx in order[:top_k]]


def assemble_context(ranked_chunks: Sequence[Chunk], max_tokens: int = 4000) -> str:
    """
    Pack ranked chunks into a token-budgeted context block.

    The header's estimated cost is charged first. Chunks are appended whole,
    each followed by a blank line, until the next one would overrun the
    remaining budget.

    Returns:
        The assembled block, or "" when no chunk fits

    Raises:
        InvalidQueryError: If max_tokens is not positive
    """
    if max_tokens <= 0:
        raise InvalidQueryError(f"max_tokens must be a positive integer, got {max_tokens}")

    budget = max_tokens - estimate_tokens(CONTEXT_HEADER)
    lines: List[str] = [CONTEXT_HEADER, ""]
    packed = 0
    for chunk in ranked_chunks:
        if chunk.token_count > budget:
            break
        lines.append(chunk.text)
        lines.append("")
        budget -= chunk.token_count
        packed += 1

    if not packed:
        return ""
    return "\n".join(lines)
