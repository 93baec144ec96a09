"""
Local blob storage for uploaded source documents.
"""

import re
import time
from pathlib import Path

from config import BLOB_DIR, MAX_UPLOAD_BYTES


_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class LocalBlobStore:
    """Key-addressed blobs on the local filesystem. Keys look like ``pdfs/<ms>-<name>``."""

    def __init__(self, root: Path = BLOB_DIR):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Invalid blob key: {key}")
        return path

    def put(self, data: bytes, file_name: str, prefix: str = "pdfs") -> str:
        if len(data) > MAX_UPLOAD_BYTES:
            raise ValueError(f"File too large. Maximum size is {MAX_UPLOAD_BYTES // (1024 * 1024)}MB.")
        safe_name = _UNSAFE.sub("_", Path(file_name).name) or "document"
        key = f"{prefix}/{int(time.time() * 1000)}-{safe_name}"
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return key

    def get(self, key: str) -> bytes:
        path = self._path(key)
        if not path.exists():
            raise FileNotFoundError(f"Blob not found: {key}")
        return path.read_bytes()

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
