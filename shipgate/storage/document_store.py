"""Document stores for configuration, exceptions, history and reports.

Documents are addressed by slash-separated keys such as
``settings/quality-gates.json``. ``read_json`` returns ``None`` for an absent
document; anything else that goes wrong (unreadable file, corrupt JSON,
failed write) raises StorageError so callers can tell "absent" from
"broken".
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

from shipgate.error_handling import StorageError

logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    """Storage interface for persisted documents."""

    def exists(self, key: str) -> bool:
        ...

    def read_json(self, key: str) -> Optional[Any]:
        ...

    def write_json(self, key: str, payload: Any) -> None:
        ...

    def read_text(self, key: str) -> Optional[str]:
        ...

    def write_text(self, key: str, text: str) -> None:
        ...


def _write_atomic(path: Path, text: str, *, encoding: str = "utf-8") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding=encoding,
            dir=path.parent,
            delete=False,
        ) as handle:
            tmp_path = Path(handle.name)
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path and tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass


class FilesystemDocumentStore:
    """Filesystem-backed document store rooted at one directory."""

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)

    def path_for(self, key: str) -> Path:
        parts = [p for p in key.split("/") if p]
        if not parts or any(p in (".", "..") for p in parts):
            raise StorageError(f"Invalid document key: {key!r}", key=key, retryable=False)
        return self.root.joinpath(*parts)

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def read_text(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Failed to read {path}: {exc}", key=key, cause=exc) from exc

    def read_json(self, key: str) -> Optional[Any]:
        text = self.read_text(key)
        if text is None:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise StorageError(
                f"Document {key} is not valid JSON: {exc}",
                key=key,
                retryable=False,
                cause=exc,
            ) from exc

    def write_text(self, key: str, text: str) -> None:
        path = self.path_for(key)
        try:
            _write_atomic(path, text)
        except OSError as exc:
            raise StorageError(f"Failed to write {path}: {exc}", key=key, cause=exc) from exc
        logger.debug("Wrote %s", path)

    def write_json(self, key: str, payload: Any) -> None:
        self.write_text(key, json.dumps(payload, indent=2, ensure_ascii=False) + "\n")

    def __repr__(self) -> str:
        return f"FilesystemDocumentStore(root={str(self.root)!r})"


class InMemoryDocumentStore:
    """Process-local document store; documents are kept serialized."""

    def __init__(self, documents: Optional[Dict[str, Any]] = None) -> None:
        self._lock = threading.Lock()
        self._documents: Dict[str, str] = {}
        for key, payload in (documents or {}).items():
            self.write_json(key, payload)

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._documents

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in self._documents if k.startswith(prefix))

    def read_text(self, key: str) -> Optional[str]:
        with self._lock:
            return self._documents.get(key)

    def read_json(self, key: str) -> Optional[Any]:
        text = self.read_text(key)
        if text is None:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise StorageError(
                f"Document {key} is not valid JSON: {exc}",
                key=key,
                retryable=False,
                cause=exc,
            ) from exc

    def write_text(self, key: str, text: str) -> None:
        with self._lock:
            self._documents[key] = text

    def write_json(self, key: str, payload: Any) -> None:
        try:
            text = json.dumps(payload, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise StorageError(
                f"Document {key} is not JSON serializable: {exc}",
                key=key,
                retryable=False,
                cause=exc,
            ) from exc
        self.write_text(key, text)
