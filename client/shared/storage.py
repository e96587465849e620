"""Durable key/value storage for client state that must survive a restart.

Each key maps to one JSON document on disk. Documents hold session
credentials, so they are written with owner-only permissions (0o600) inside
an owner-only directory (0o700), atomically via temp-file-then-rename so a
crash mid-write never leaves a truncated credential behind.
"""

import contextlib
import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Protocol

import structlog

logger = structlog.get_logger()

_STATE_DIR_MODE = 0o700
_STATE_FILE_MODE = 0o600

_KEY_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


class StateStorage(Protocol):
    """Protocol for persisting small JSON documents under fixed keys."""

    def load(self, key: str) -> dict[str, Any] | None: ...

    def save(self, key: str, document: dict[str, Any]) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStateStorage:
    """Non-durable storage for tests and throwaway sessions."""

    def __init__(self) -> None:
        self._documents: dict[str, dict[str, Any]] = {}

    def load(self, key: str) -> dict[str, Any] | None:
        document = self._documents.get(key)
        return dict(document) if document is not None else None

    def save(self, key: str, document: dict[str, Any]) -> None:
        self._documents[key] = dict(document)

    def delete(self, key: str) -> None:
        self._documents.pop(key, None)


class LocalStateStorage:
    """Writes JSON state documents to a directory on the local filesystem."""

    def __init__(self, state_dir: str | Path) -> None:
        self._state_dir = Path(state_dir).resolve()

    def _path_for(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid state key: {key!r}")
        target = (self._state_dir / f"{key}.json").resolve()
        if not target.is_relative_to(self._state_dir):
            raise ValueError(f"Path traversal rejected: '{key}' resolves outside state directory")
        return target

    def load(self, key: str) -> dict[str, Any] | None:
        """Return the stored document, or None if missing or unreadable."""
        target = self._path_for(key)
        try:
            raw = target.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            document = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("discarding corrupt state document", key=key, path=str(target))
            return None
        if not isinstance(document, dict):
            logger.warning("discarding non-object state document", key=key, path=str(target))
            return None
        return document

    def save(self, key: str, document: dict[str, Any]) -> None:
        """Atomically replace the document stored under key.

        Creates the directory lazily on first write with owner-only
        permissions.
        """
        target = self._path_for(key)

        self._state_dir.mkdir(mode=_STATE_DIR_MODE, parents=True, exist_ok=True)
        self._state_dir.chmod(_STATE_DIR_MODE)

        payload = json.dumps(document, separators=(",", ":")).encode("utf-8")

        fd, tmp_path = tempfile.mkstemp(dir=str(self._state_dir), suffix=".tmp", prefix=".state_")
        fd_owned = True
        try:
            with os.fdopen(fd, "wb") as f:
                fd_owned = False  # os.fdopen took ownership; it will close fd
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, _STATE_FILE_MODE)  # noqa: PTH101
            Path(tmp_path).replace(target)
        except BaseException:
            if fd_owned:
                with contextlib.suppress(OSError):
                    os.close(fd)
            with contextlib.suppress(OSError):
                Path(tmp_path).unlink()
            raise
        logger.debug("saved state document", key=key, path=str(target))

    def delete(self, key: str) -> None:
        """Remove the document stored under key. No-op if missing."""
        target = self._path_for(key)
        with contextlib.suppress(FileNotFoundError):
            target.unlink()
