"""Durable client storage — exactly two keys: ``token`` and ``user``."""

import json
import logging
import os
import threading
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"
KEYS = (TOKEN_KEY, USER_KEY)


class Storage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


def _check_key(key: str) -> None:
    if key not in KEYS:
        raise KeyError(f"unsupported storage key: {key!r}")


class MemoryStorage:
    """Non-durable storage, used for tests and throwaway sessions."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._items: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str) -> Optional[str]:
        _check_key(key)
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        _check_key(key)
        self._items[key] = value

    def remove(self, key: str) -> None:
        _check_key(key)
        self._items.pop(key, None)


class JsonFileStorage(MemoryStorage):
    """Storage persisted to a small JSON file, rewritten on every change."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        super().__init__(self._load())

    def _load(self) -> dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Ignoring unreadable session file {self.path}: {e}")
            return {}
        return {k: v for k, v in data.items() if k in KEYS and isinstance(v, str)}

    def _flush(self) -> None:
        tmp = f"{self.path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(self._items, f)
        os.replace(tmp, self.path)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            super().set(key, value)
            self._flush()

    def remove(self, key: str) -> None:
        with self._lock:
            super().remove(key)
            self._flush()
