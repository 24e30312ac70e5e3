from __future__ import annotations

import sys
from pathlib import Path


# Ensure repository root is importable during tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest


@pytest.fixture()
def anyio_backend():
    # Force anyio tests to run under asyncio only
    return "asyncio"


@pytest.fixture()
def journal_temp_db(tmp_path, monkeypatch):
    from app.services import journal_db

    temp_db = tmp_path / "journal.duckdb"
    monkeypatch.setattr(journal_db, "JOURNAL_DB", temp_db)
    return temp_db
