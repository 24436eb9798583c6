"""Key-value stores backing the client's persisted state."""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union

import structlog

logger = structlog.get_logger()


class StorageQuotaExceeded(Exception):
    """Raised when a write would push the store past its capacity."""


class KeyValueStore(ABC):
    """String-keyed, string-valued store with a bounded capacity."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value under ``key`` or None."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value``; raises StorageQuotaExceeded if it does not fit or cannot be written."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        pass


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store with an optional quota counted in characters.

    The quota covers keys and values, the way browser storage does.
    """

    def __init__(self, quota: Optional[int] = None) -> None:
        self.quota = quota
        self._data: Dict[str, str] = {}

    def _size_with(self, key: str, value: str) -> int:
        size = sum(len(k) + len(v) for k, v in self._data.items() if k != key)
        return size + len(key) + len(value)

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.quota is not None and self._size_with(key, value) > self.quota:
            raise StorageQuotaExceeded(
                f"Writing {len(value)} characters to {key!r} exceeds the {self.quota} character quota"
            )
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class FileKeyValueStore(InMemoryKeyValueStore):
    """Store persisted as one JSON object on disk, rewritten on every change."""

    def __init__(self, path: Union[str, Path], quota: Optional[int] = 5_000_000) -> None:
        super().__init__(quota=quota)
        self.path = Path(path)
        if self.path.exists():
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning("kv_file_unreadable", path=str(self.path), error=str(e))
            else:
                if isinstance(data, dict):
                    self._data = {str(k): str(v) for k, v in data.items()}

    def _flush(self, key: str, previous: Optional[str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(self._data), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as e:
            # Memory must keep matching what is on disk
            if previous is None:
                self._data.pop(key, None)
            else:
                self._data[key] = previous
            logger.error("kv_file_write_failed", path=str(self.path), error=str(e))
            raise StorageQuotaExceeded(f"Could not write {self.path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        previous = self._data.get(key)
        super().set(key, value)
        self._flush(key, previous)

    def delete(self, key: str) -> None:
        previous = self._data.get(key)
        super().delete(key)
        self._flush(key, previous)
