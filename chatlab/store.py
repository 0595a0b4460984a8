"""Key-value persistence for conversation logs and comparison history."""

import json
import logging
import re
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """In-process store; contents are lost with the process."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class FileStore:
    """One file per key under a directory."""

    def __init__(self, directory: Path) -> None:
        self._directory = directory

    def _path(self, key: str) -> Path:
        return self._directory / (re.sub(r"[^A-Za-z0-9_.-]", "_", key) + ".json")

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def set(self, key: str, value: bytes) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        self._path(key).write_bytes(value)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def dump_json(store: KeyValueStore, key: str, value: Any) -> None:
    store.set(key, json.dumps(value, ensure_ascii=False).encode("utf-8"))


def load_json(store: KeyValueStore, key: str, default: Any) -> Any:
    """Decode the JSON value stored under key.

    A missing value, or one that is not valid UTF-8 JSON of the same type as
    default, yields default. Never raises.
    """
    raw = store.get(key)
    if raw is None:
        return default
    try:
        value = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring corrupt value for %s: %s", key, exc)
        return default
    if not isinstance(value, type(default)):
        logger.warning("Ignoring %s: expected %s, got %s", key, type(default).__name__, type(value).__name__)
        return default
    return value
