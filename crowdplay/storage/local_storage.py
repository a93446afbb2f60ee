"""
A small file-backed key/value store holding named JSON entries, the desktop
counterpart of a browser profile's local storage.
"""

import json
import logging
import os
import tempfile
from contextlib import suppress
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)


class LocalStorage:
    """
    Persists named entries in a single JSON document.

    Every write replaces the whole file atomically so a crash never leaves a
    half-written document behind. Read failures degrade to an empty store.
    """

    FILE_NAME = "storage.json"

    def __init__(self, storage_dir_path: Path):
        """
        Args:
            storage_dir_path: The directory holding the storage file.
        """
        self.storage_dir = storage_dir_path
        self.path = storage_dir_path / self.FILE_NAME

    def _read_all(self) -> dict[str, Any]:
        if not self.path.is_file():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            log.warning(f"Local storage at '{self.path}' is unreadable: {e}")
            return {}
        if not isinstance(data, dict):
            log.warning(f"Local storage at '{self.path}' is not a JSON object.")
            return {}
        return data

    def _write_all(self, data: dict[str, Any]) -> bool:
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.storage_dir, prefix=".storage-", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, sort_keys=True)
                os.replace(tmp_path, self.path)
            except BaseException:
                with suppress(OSError):
                    os.unlink(tmp_path)
                raise
            return True
        except (TypeError, ValueError, OSError) as e:
            log.warning(f"Local storage write to '{self.path}' failed: {e}")
            return False

    def get_item(self, key: str) -> Any | None:
        """Returns the value stored under ``key``, or None if there is none."""
        return self._read_all().get(key)

    def set_item(self, key: str, value: Any) -> bool:
        """Stores ``value`` under ``key``. Returns False if it could not be saved."""
        data = self._read_all()
        data[key] = value
        return self._write_all(data)

    def remove_item(self, key: str) -> bool:
        data = self._read_all()
        if key not in data:
            return True
        del data[key]
        return self._write_all(data)
