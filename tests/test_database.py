from __future__ import annotations

import asyncio

from sqlalchemy import create_engine, inspect

from app.database import Database


def test_create_all_builds_state_table(tmp_path) -> None:
    """The key/value state table should exist after initialisation."""

    database_path = tmp_path / "state.db"
    database = Database(f"sqlite+aiosqlite:///{database_path}")
    asyncio.run(database.create_all())
    asyncio.run(database.dispose())

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        inspector = inspect(inspector_engine)
        columns = {column["name"] for column in inspector.get_columns("state_entries")}
    finally:
        inspector_engine.dispose()

    assert {"key", "value", "updated_at"} <= columns
