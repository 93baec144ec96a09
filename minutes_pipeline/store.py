"""
Document Store Module

Upsert-by-shortId persistence for extraction documents. ``JsonFileStore`` keeps one
JSON file per document; ``MemoryStore`` is a dict-backed stand-in with the same API.
"""

import copy
import json
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Optional, Protocol

from config import STORE_DIR
from .errors import PersistFailure


_SHORT_ID = re.compile(r"^[A-Za-z0-9_-]+$")


class DocumentStore(Protocol):
    def upsert(self, document: dict) -> None: ...

    def get(self, short_id: str) -> Optional[dict]: ...

    def list_documents(self, page: int = 1, per_page: int = 20, fields: Optional[list[str]] = None) -> dict: ...

    def delete(self, short_id: str) -> bool: ...


def document_status(document: dict) -> str:
    """``error`` when the document carries errors, else ``completed``."""
    return "error" if document.get("errors") else "completed"


def _require_short_id(document: dict) -> str:
    short_id = document.get("shortId")
    if not isinstance(short_id, str) or not _SHORT_ID.match(short_id):
        raise PersistFailure(f"Invalid shortId: {short_id!r}", short_id=short_id if isinstance(short_id, str) else None)
    return short_id


def _project(document: dict, fields: Optional[list[str]]) -> dict:
    """Keep only the requested (dotted) fields; shortId is always kept."""
    if not fields:
        return copy.deepcopy(document)

    projected = {"shortId": document.get("shortId")}
    for path in fields:
        source = document
        parts = path.split(".")
        for part in parts:
            if not isinstance(source, dict) or part not in source:
                break
            source = source[part]
        else:
            target = projected
            for part in parts[:-1]:
                target = target.setdefault(part, {})
            target[parts[-1]] = copy.deepcopy(source)
    return projected


def _paginate(documents: list[dict], page: int, per_page: int, fields: Optional[list[str]]) -> dict:
    page = max(1, page)
    per_page = max(1, per_page)
    ordered = sorted(
        documents,
        key=lambda d: (d.get("meta", {}).get("uploadedAt", ""), d.get("shortId", "")),
        reverse=True,
    )
    start = (page - 1) * per_page
    return {
        "items": [_project(d, fields) for d in ordered[start:start + per_page]],
        "page": page,
        "perPage": per_page,
        "total": len(ordered),
    }


class JsonFileStore:
    """One ``<shortId>.json`` file per document, replaced atomically on upsert."""

    def __init__(self, root: Path = STORE_DIR):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, short_id: str) -> Path:
        return self.root / f"{short_id}.json"

    def upsert(self, document: dict) -> None:
        short_id = _require_short_id(document)
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.root, suffix=".tmp", delete=False
            ) as f:
                tmp_name = f.name
                json.dump(document, f, indent=2, ensure_ascii=False, allow_nan=False)
            os.replace(tmp_name, self._path(short_id))
        except (OSError, TypeError, ValueError) as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistFailure(f"Failed to save document {short_id}: {e}", short_id=short_id) from e

    def get(self, short_id: str) -> Optional[dict]:
        if not _SHORT_ID.match(short_id or ""):
            return None
        path = self._path(short_id)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def list_documents(self, page: int = 1, per_page: int = 20, fields: Optional[list[str]] = None) -> dict:
        documents = [json.loads(p.read_text(encoding="utf-8")) for p in self.root.glob("*.json")]
        return _paginate(documents, page, per_page, fields)

    def delete(self, short_id: str) -> bool:
        if not _SHORT_ID.match(short_id or ""):
            return False
        path = self._path(short_id)
        if not path.exists():
            return False
        path.unlink()
        return True


class MemoryStore:
    """Dict-backed store; documents are copied in and out."""

    def __init__(self):
        self._documents: dict[str, dict] = {}
        self._lock = threading.Lock()

    def upsert(self, document: dict) -> None:
        short_id = _require_short_id(document)
        with self._lock:
            self._documents[short_id] = copy.deepcopy(document)

    def get(self, short_id: str) -> Optional[dict]:
        with self._lock:
            document = self._documents.get(short_id)
            return copy.deepcopy(document) if document is not None else None

    def list_documents(self, page: int = 1, per_page: int = 20, fields: Optional[list[str]] = None) -> dict:
        with self._lock:
            documents = list(self._documents.values())
        return _paginate(documents, page, per_page, fields)

    def delete(self, short_id: str) -> bool:
        with self._lock:
            return self._documents.pop(short_id, None) is not None

    def __len__(self) -> int:
        return len(self._documents)
