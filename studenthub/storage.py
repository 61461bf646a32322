"""
Durable key-value persistence

Holds collection snapshots, the auth token, the current user profile and the
settings blobs between runs. Reads are best-effort: a missing or corrupt value
comes back as the caller's default and never raises.
"""

import copy
import json
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from studenthub.exceptions import StorageError
from studenthub.logging_config import logger

AUTH_TOKEN_KEY = "authToken"
CURRENT_USER_KEY = "currentUser"
USER_SETTINGS_KEY = "userSettings"
SYSTEM_SETTINGS_KEY = "systemSettings"

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


def collection_key(collection: str) -> str:
    """Key under which a collection snapshot is persisted"""
    return f"{collection}_updates"


class KeyValueStore(ABC):
    """Base class for JSON value stores"""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        pass

    def clear(self) -> None:
        for key in self.keys():
            self.remove(key)


class MemoryStore(KeyValueStore):
    """In-process store. Values are serialized so callers can't alias them."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"[Storage] Ignoring corrupt value for '{key}'")
            return default

    def set(self, key: str, value: Any) -> None:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value for '{key}' is not JSON serializable: {e}", key=key) from e

    def set_raw(self, key: str, raw: str) -> None:
        """Store an unparsed string as-is"""
        self._data[key] = raw

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())


class JsonFileStore(KeyValueStore):
    """
    One JSON file per key under a directory.

    Writes go to a temp file in the same directory and are moved into place,
    so a crash mid-write leaves the previous value intact.
    """

    SUFFIX = ".json"

    def __init__(self, directory: str):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise StorageError(f"Invalid storage key '{key}'", key=key)
        return self.directory / f"{key}{self.SUFFIX}"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            logger.warning(f"[Storage] Ignoring unreadable value for '{key}': {e}")
            return default

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        try:
            payload = json.dumps(value, indent=2)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value for '{key}' is not JSON serializable: {e}", key=key) from e

        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, path)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise StorageError(f"Could not write '{key}': {e}", key=key) from e

    def remove(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()

    def keys(self) -> List[str]:
        return sorted(
            p.name[: -len(self.SUFFIX)]
            for p in self.directory.glob(f"*{self.SUFFIX}")
            if not p.name.startswith(".")
        )


def load_collection_snapshot(kv_store: KeyValueStore, collection: str) -> Optional[List[Dict[str, Any]]]:
    """
    Read a persisted collection snapshot.

    Returns None when nothing usable is stored: missing key, wrong shape, or
    records without an id.
    """
    key = collection_key(collection)
    stored = kv_store.get(key)
    if stored is None:
        return None
    if not isinstance(stored, list) or not all(
        isinstance(item, dict) and item.get("id") for item in stored
    ):
        logger.warning(f"[Storage] Snapshot '{key}' has an unexpected shape, using fixture baseline")
        return None
    return copy.deepcopy(stored)
