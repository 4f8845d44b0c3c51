"""Learner document persistence (JSON + fcntl.flock + atomic write).

Each learner owns one document keyed by their code::

    {"profile": {...}, "language_progress": {"<module>-<language>": {...}}}

Every write is a read-modify-write under an exclusive lock, so one call to
``update`` is one atomic change to the document.
"""

import copy
import fcntl
import json
import os
import re
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

Document = dict[str, Any]
Mutator = Callable[[Document], None]

_DOCUMENT_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class StorageError(Exception):
    """Transient persistence failure (I/O, corrupt document, backend down)."""


class DocumentNotFoundError(StorageError):
    """The learner document to update does not exist."""


class DocumentStore(Protocol):
    def get(self, code: str) -> Document | None: ...

    def put(self, code: str, document: Document) -> None: ...

    def update(self, code: str, mutate: Mutator) -> Document: ...


class JsonFileDocumentStore:
    """One JSON file per learner under ``root``."""

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, code: str) -> Path:
        return self.root / f"{code}.json"

    def _lock_path(self, code: str) -> Path:
        return self.root / f"{code}.json.lock"

    def get(self, code: str) -> Document | None:
        if not _DOCUMENT_ID_RE.match(code):
            return None
        path = self._path(code)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                fcntl.flock(f, fcntl.LOCK_SH)
                data = json.load(f)
                fcntl.flock(f, fcntl.LOCK_UN)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read learner document: {e}") from e
        return data

    def put(self, code: str, document: Document) -> None:
        self._check_id(code)
        try:
            with open(self._lock_path(code), "w") as lock_file:
                fcntl.flock(lock_file, fcntl.LOCK_EX)
                self._write(code, document)
        except OSError as e:
            raise StorageError(f"Failed to write learner document: {e}") from e

    def update(self, code: str, mutate: Mutator) -> Document:
        self._check_id(code)
        path = self._path(code)
        try:
            with open(self._lock_path(code), "w") as lock_file:
                fcntl.flock(lock_file, fcntl.LOCK_EX)
                if not path.exists():
                    raise DocumentNotFoundError(f"No learner document for {code!r}")
                data = json.loads(path.read_text(encoding="utf-8"))
                mutate(data)
                self._write(code, data)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to update learner document: {e}") from e
        return data

    def _write(self, code: str, document: Document) -> None:
        with tempfile.NamedTemporaryFile(
            "w", dir=self.root, delete=False, suffix=".json", encoding="utf-8"
        ) as tmp:
            json.dump(document, tmp, default=str)
        os.replace(tmp.name, self._path(code))

    @staticmethod
    def _check_id(code: str) -> None:
        if not _DOCUMENT_ID_RE.match(code):
            raise StorageError(f"Invalid document id: {code!r}")


class InMemoryDocumentStore:
    """Dict-backed store; documents are copied in and out like a remote store."""

    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}

    def get(self, code: str) -> Document | None:
        document = self._documents.get(code)
        return copy.deepcopy(document) if document is not None else None

    def put(self, code: str, document: Document) -> None:
        self._documents[code] = copy.deepcopy(document)

    def update(self, code: str, mutate: Mutator) -> Document:
        if code not in self._documents:
            raise DocumentNotFoundError(f"No learner document for {code!r}")
        data = copy.deepcopy(self._documents[code])
        mutate(data)
        self._documents[code] = data
        return copy.deepcopy(data)
