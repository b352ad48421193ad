from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

import ledger_db

ALEMBIC_INI = Path(__file__).resolve().parents[1] / "libs" / "ledger_db" / "alembic.ini"


def test_upgrade_head_creates_every_mapped_table(tmp_path, monkeypatch):
    url = f"sqlite+pysqlite:///{tmp_path / 'migrated.db'}"
    monkeypatch.setenv("DATABASE_URL", url)

    command.upgrade(Config(str(ALEMBIC_INI)), "head")

    engine = create_engine(url)
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert set(ledger_db.metadata.tables) <= tables
    assert "alembic_version" in tables
