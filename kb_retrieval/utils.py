"""Utility functions for the knowledge base engine."""

from __future__ import annotations

import math
import re
import uuid
from datetime import datetime, timezone
from typing import List


TOKENS_PER_WORD = 1.3

_SENTENCE_END_RE = re.compile(r"(?<=[.!?])\s+")


def estimate_tokens(text: str) -> int:
    """
    Approximate the token cost of a text span.

    Word count times 1.3, rounded up. This is a stable budget proxy, not an
    exact count for any particular tokenizer.
    """
    return math.ceil(len(text.split()) * TOKENS_PER_WORD)


def split_sentences(text: str) -> List[str]:
    """Split text on '.', '!' or '?' followed by whitespace."""
    return [part for part in _SENTENCE_END_RE.split(text) if part.strip()]


def new_id(prefix: str) -> str:
    """Generate an opaque unique identifier such as ``kb_3f2a...``."""
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
