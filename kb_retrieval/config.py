"""Configuration models for the knowledge base engine."""

from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, Field, model_validator


TARGET_CHUNK_TOKENS = 400
OVERLAP_TOKENS = 50
MIN_CHUNK_CHARS = 20


class ChunkingConfig(BaseModel):
    """Chunk sizing parameters, measured in estimated tokens."""
    target_tokens: int = Field(default=TARGET_CHUNK_TOKENS, gt=0)
    overlap_tokens: int = Field(default=OVERLAP_TOKENS, ge=0)
    min_chunk_chars: int = Field(default=MIN_CHUNK_CHARS, ge=0)

    @model_validator(mode="after")
    def _check_overlap(self) -> "ChunkingConfig":
        if self.overlap_tokens >= self.target_tokens:
            raise ValueError("overlap_tokens must be smaller than target_tokens")
        return self


class EngineSettings(BaseModel):
    """Top-level engine settings."""
    store_path: Optional[str] = None
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    default_top_k: int = Field(default=8, gt=0)
    context_top_k: int = Field(default=12, gt=0)
    max_context_tokens: int = Field(default=4000, gt=0)

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """
        Build settings from environment variables.

        Recognized variables: KB_STORE_PATH, KB_TARGET_TOKENS, KB_OVERLAP_TOKENS,
        KB_MIN_CHUNK_CHARS, KB_TOP_K, KB_CONTEXT_TOP_K, KB_MAX_CONTEXT_TOKENS.
        Unset variables keep their defaults.

        Raises:
            ValueError: If a numeric variable is not an integer or is out of range
        """
        chunking = ChunkingConfig(
            target_tokens=int(os.getenv("KB_TARGET_TOKENS", str(TARGET_CHUNK_TOKENS))),
            overlap_tokens=int(os.getenv("KB_OVERLAP_TOKENS", str(OVERLAP_TOKENS))),
            min_chunk_chars=int(os.getenv("KB_MIN_CHUNK_CHARS", str(MIN_CHUNK_CHARS))),
        )
        return cls(
            store_path=os.getenv("KB_STORE_PATH") or None,
            chunking=chunking,
            default_top_k=int(os.getenv("KB_TOP_K", "8")),
            context_top_k=int(os.getenv("KB_CONTEXT_TOP_K", "12")),
            max_context_tokens=int(os.getenv("KB_MAX_CONTEXT_TOKENS", "4000")),
        )
