# Overview: Key-value mirror for stock-take progress; a resume fallback, never authoritative.

from __future__ import annotations

import copy
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any


SESSION_INDEX_KEY = "stockTakeSessions"


def session_key(session_id: int) -> str:
    """Cache key holding the progress mirror of one stock-take session."""
    return f"stockTakeSession_{session_id}"


class LocalCache:
    """
    JSON key-value store used as the local mirror of stock-take progress.

    Backed by a single JSON file when LOCAL_CACHE_PATH is configured, by a
    process-local dict otherwise. Values must be JSON serializable; reads
    return deep copies so callers never share state with the cache.

    Access is serialized with a lock because the stock-take auto-save timer
    writes from its own thread.
    """

    def __init__(self, app=None, path: str | os.PathLike | None = None):
        self._lock = threading.RLock()
        self._path: Path | None = Path(path) if path else None
        self._memory: dict[str, Any] = {}
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        path = app.config.get("LOCAL_CACHE_PATH")
        with self._lock:
            self._path = Path(path) if path else None
            self._memory = {}
        app.extensions["local_cache"] = self

    # ------------------------------------------------------------------
    # storage backend

    def _load(self) -> dict[str, Any]:
        if self._path is None:
            return self._memory
        if not self._path.exists():
            return {}
        with self._path.open("r", encoding="utf-8") as fh:
            text = fh.read()
        return json.loads(text) if text.strip() else {}

    def _dump(self, data: dict[str, Any]) -> None:
        if self._path is None:
            self._memory = data
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".cache-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
            os.replace(tmp, self._path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    # ------------------------------------------------------------------
    # public API

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            data = self._load()
            if key not in data:
                return default
            return copy.deepcopy(data[key])

    def set(self, key: str, value: Any) -> None:
        # Round-trip through JSON so the memory backend stores exactly what a file would.
        encoded = json.loads(json.dumps(value))
        with self._lock:
            data = dict(self._load())
            data[key] = encoded
            self._dump(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = dict(self._load())
            if key in data:
                del data[key]
                self._dump(data)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._load().keys())

    def clear(self) -> None:
        with self._lock:
            self._dump({})
