"""Persistence backends holding the knowledge base collection."""

from __future__ import annotations

import json
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from .errors import NotFoundError, StoreCorruptedError
from .schemas import KnowledgeBase


class StoreBackend(ABC):
    """Whole-record storage for knowledge bases, keyed by id."""

    @abstractmethod
    def list_all(self) -> List[KnowledgeBase]:
        """Return every knowledge base in insertion order."""

    @abstractmethod
    def get(self, kb_id: str) -> Optional[KnowledgeBase]:
        """Return a private copy of one knowledge base, or None."""

    @abstractmethod
    def add(self, kb: KnowledgeBase) -> None:
        """Append a new knowledge base."""

    @abstractmethod
    def replace(self, kb: KnowledgeBase) -> None:
        """Overwrite an existing knowledge base; NotFoundError if it is gone."""

    @abstractmethod
    def remove(self, kb_id: str) -> bool:
        """Drop a knowledge base; False if it did not exist."""


class MemoryBackend(StoreBackend):
    """In-process backend storing serialized snapshots."""

    def __init__(self) -> None:
        self._records: Dict[str, dict] = {}
        self._lock = threading.Lock()

    def list_all(self) -> List[KnowledgeBase]:
        with self._lock:
            records = list(self._records.values())
        return [KnowledgeBase.model_validate(record) for record in records]

    def get(self, kb_id: str) -> Optional[KnowledgeBase]:
        with self._lock:
            record = self._records.get(kb_id)
        return KnowledgeBase.model_validate(record) if record is not None else None

    def add(self, kb: KnowledgeBase) -> None:
        with self._lock:
            self._records[kb.id] = kb.model_dump(mode="json")

    def replace(self, kb: KnowledgeBase) -> None:
        with self._lock:
            if kb.id not in self._records:
                raise NotFoundError(f"Knowledge base not found: {kb.id}")
            self._records[kb.id] = kb.model_dump(mode="json")

    def remove(self, kb_id: str) -> bool:
        with self._lock:
            return self._records.pop(kb_id, None) is not None


class JsonFileBackend(StoreBackend):
    """
    Backend persisting the whole collection as one JSON document.

    Layout: ``{"knowledge_bases": [<knowledge base>, ...]}``. Every write
    re-reads the file, changes one entry and switches a temporary file in
    with ``os.replace``, so the file is always a complete snapshot.
    """

    def __init__(self, path: str) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read_records(self) -> List[dict]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreCorruptedError(f"Cannot read knowledge base store {self.path}: {exc}") from exc
        if not isinstance(data, dict) or not isinstance(data.get("knowledge_bases", []), list):
            raise StoreCorruptedError(f"Unexpected store layout in {self.path}")
        return data.get("knowledge_bases", [])

    def _write_records(self, records: List[dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as handle:
            json.dump({"knowledge_bases": records}, handle, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)

    def _parse(self, record: dict) -> KnowledgeBase:
        try:
            return KnowledgeBase.model_validate(record)
        except ValidationError as exc:
            raise StoreCorruptedError(f"Invalid knowledge base record in {self.path}: {exc}") from exc

    def list_all(self) -> List[KnowledgeBase]:
        with self._lock:
            records = self._read_records()
        return [self._parse(record) for record in records]

    def get(self, kb_id: str) -> Optional[KnowledgeBase]:
        with self._lock:
            records = self._read_records()
        for record in records:
            if record.get("id") == kb_id:
                return self._parse(record)
        return None

    def add(self, kb: KnowledgeBase) -> None:
        with self._lock:
            records = self._read_records()
            records.append(kb.model_dump(mode="json"))
            self._write_records(records)

    def replace(self, kb: KnowledgeBase) -> None:
        with self._lock:
            records = self._read_records()
            for idx, record in enumerate(records):
                if record.get("id") == kb.id:
                    records[idx] = kb.model_dump(mode="json")
                    self._write_records(records)
                    return
        raise NotFoundError(f"Knowledge base not found: {kb.id}")

    def remove(self, kb_id: str) -> bool:
        with self._lock:
            records = self._read_records()
            kept = [record for record in records if record.get("id") != kb_id]
            if len(kept) == len(records):
                return False
            self._write_records(kept)
            return True
