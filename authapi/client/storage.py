"""
Client-local key/value storage for the persisted session
"""

import json
import os
from pathlib import Path
from typing import Dict, Optional, Union
import logging

logger = logging.getLogger(__name__)


class Storage:
    """String key/value store; each key can be cleared on its own"""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class MemoryStorage(Storage):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class FileStorage(Storage):
    """
    Storage persisted to a single JSON file

    The file is rewritten on every change. A missing or unreadable file is
    treated as empty storage.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)
