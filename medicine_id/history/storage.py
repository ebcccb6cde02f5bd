"""Durable key-value slots on the local device."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional

from ..errors import StorageError

logger = logging.getLogger(__name__)

DEFAULT_HOME = Path.home() / ".medicine_id"


def default_store_file() -> Path:
    home = os.getenv("MEDICINE_ID_HOME")
    return (Path(home) if home else DEFAULT_HOME) / "local_storage.json"


class LocalStore:
    """JSON file mapping slot keys to string values.

    Every write replaces the whole file atomically.
    """

    def __init__(self, store_file: Optional[Path] = None):
        self.store_file = Path(store_file) if store_file else default_store_file()
        try:
            self.store_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create local store directory {self.store_file.parent}: {e}") from e

    def _read_all(self) -> Dict[str, str]:
        if not self.store_file.exists():
            return {}
        try:
            with open(self.store_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read local store {self.store_file}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: Dict[str, str]) -> None:
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.store_file.parent, prefix=".local_storage.", suffix=".tmp")
        except OSError as e:
            raise StorageError(f"Failed to write local store {self.store_file}: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.store_file)
        except OSError as e:
            os.unlink(tmp_path)
            raise StorageError(f"Failed to write local store {self.store_file}: {e}") from e
        except BaseException:
            os.unlink(tmp_path)
            raise

    def get_item(self, key: str) -> Optional[str]:
        value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)
