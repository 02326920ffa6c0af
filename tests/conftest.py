"""Shared fixtures for KB Retrieval tests."""

import pytest

from kb_retrieval.backends import JsonFileBackend
from kb_retrieval.config import ChunkingConfig, EngineSettings
from kb_retrieval.store import KnowledgeBaseStore


def make_text(topic: str, count: int) -> str:
    """Build count sentences of 12 estimated tokens each about topic."""
    return " ".join(f"The {topic} note number {i} covers point {i} here." for i in range(count))


@pytest.fixture
def small_settings():
    return EngineSettings(chunking=ChunkingConfig(target_tokens=40, overlap_tokens=10))


@pytest.fixture
def store(small_settings):
    return KnowledgeBaseStore(settings=small_settings)


@pytest.fixture
def file_store(tmp_path, small_settings):
    return KnowledgeBaseStore(backend=JsonFileBackend(str(tmp_path / "kb.json")), settings=small_settings)
