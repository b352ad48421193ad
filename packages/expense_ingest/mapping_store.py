"""Small persisted key-value store for import preferences.

Holds the last column mapping (``bulkExpenseColumnMapping``) and the last
selected HTML table (``bulkExpenseTableIndex``) as one JSON document:

``<state_root>/import_settings.json``

The state root defaults to ``./.cache`` under the current working directory
and can be moved with ``EXPENSE_INGEST_STATE_DIR``. Writes target a ``.tmp``
file first and then ``os.replace`` into place.
"""

from __future__ import annotations

import contextlib
import json
import os
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from .logging_setup import get_logger
from .mapping import load_saved_mapping, serialize_mapping
from .models import ColumnMapping

_logger = get_logger("expense_ingest.mapping_store")

MAPPING_KEY = "bulkExpenseColumnMapping"
TABLE_INDEX_KEY = "bulkExpenseTableIndex"
_FILENAME = "import_settings.json"


def state_root() -> Path:
    root = os.getenv("EXPENSE_INGEST_STATE_DIR")
    if root and root.strip():
        return Path(root).expanduser().resolve()
    return (Path.cwd() / ".cache").resolve()


class SettingsStore:
    """JSON-file backed key-value store (one document, atomic rewrites)."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or state_root() / _FILENAME

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError):
            _logger.warning("settings:unreadable; ignoring path=%s", os.fspath(self.path))
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except Exception:
            with contextlib.suppress(FileNotFoundError):
                tmp.unlink()
            raise

    def get(self, key: str, default: Any = None) -> Any:
        return self._read_all().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def delete(self, key: str) -> None:
        data = self._read_all()
        if data.pop(key, None) is not None:
            self._write_all(data)


# ----------------------------------------------------------------------------
# Typed accessors
# ----------------------------------------------------------------------------


def load_column_mapping(store: SettingsStore, column_count: int) -> list[ColumnMapping] | None:
    """Return the saved mapping when it is compatible with ``column_count``."""

    mapping = load_saved_mapping(store.get(MAPPING_KEY), column_count)
    if mapping is None:
        _logger.debug("settings:no compatible mapping for columns=%d", column_count)
    return mapping


def save_column_mapping(store: SettingsStore, mappings: Sequence[ColumnMapping]) -> None:
    store.set(MAPPING_KEY, serialize_mapping(mappings))


def load_table_index(store: SettingsStore, table_count: int) -> int | None:
    """Return the remembered table index when it is still in range."""

    value = store.get(TABLE_INDEX_KEY)
    if isinstance(value, int) and not isinstance(value, bool) and 0 <= value < table_count:
        return value
    return None


def save_table_index(store: SettingsStore, index: int) -> None:
    store.set(TABLE_INDEX_KEY, index)


__all__ = [
    "MAPPING_KEY",
    "TABLE_INDEX_KEY",
    "SettingsStore",
    "load_column_mapping",
    "load_table_index",
    "save_column_mapping",
    "save_table_index",
    "state_root",
]
