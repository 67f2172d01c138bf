from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any

from taskboard.domain.errors import TransientIOError

logger = logging.getLogger(__name__)


class LocalStorage:
    """Namespaced string key/value store persisted as one JSON file.

    Mirrors browser ``localStorage``: values are strings, callers
    serialize their own payloads. All access goes through ``lock`` so the
    timer writer thread and the UI thread never interleave a read-modify-write.
    """

    def __init__(self, path: str | Path, namespace: str = "monodo") -> None:
        self.path = Path(path)
        self.namespace = namespace
        self.lock = threading.RLock()

    def key(self, name: str) -> str:
        return f"{self.namespace}_{name}"

    def get_item(self, key: str) -> str | None:
        with self.lock:
            return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self.lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove_item(self, key: str) -> None:
        with self.lock:
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)

    def get_json(self, name: str, default: Any = None) -> Any:
        raw = self.get_item(self.key(name))
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.error("Corrupted local value for %s, ignoring it", self.key(name))
            return default

    def set_json(self, name: str, value: Any) -> None:
        self.set_item(self.key(name), json.dumps(value))

    def remove(self, name: str) -> None:
        self.remove_item(self.key(name))

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise TransientIOError(f"Local storage is not available: {exc}") from exc
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.error("Local storage file %s is corrupted, starting empty", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, str]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise TransientIOError(f"Local storage is not available: {exc}") from exc
