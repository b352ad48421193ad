"""Pytest configuration for test isolation.

The import flow remembers the last column mapping and HTML table selection in
``./.cache/import_settings.json``. When tests run in the same working tree,
a mapping saved by one test would pre-seed the editor in the next and make
assertions about default assignments order-dependent.

To keep tests hermetic, the state root is redirected to a unique temporary
directory for each test via an autouse fixture. Cached database engines are
disposed after each test so per-test SQLite files are released.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest
from ledger_db.client import dispose_engines

from expense_ingest.logging_setup import reset_logging


@pytest.fixture(autouse=True)
def _isolate_state_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Force a per-test state root and an unset ``DATABASE_URL``."""

    state_root = tmp_path / "state"
    state_root.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("EXPENSE_INGEST_STATE_DIR", os.fspath(state_root))
    monkeypatch.delenv("DATABASE_URL", raising=False)
    yield
    dispose_engines()
    # the CLI root callback installs a package handler; drop it between tests
    reset_logging()
