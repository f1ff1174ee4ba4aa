"""Tests for the async libsql connection helpers."""

from pathlib import Path

import pytest

from src.db import AsyncConnection, connection, get_connection

pytestmark = pytest.mark.usefixtures("_no_turso")

_SCHEMA = ("CREATE TABLE IF NOT EXISTS notes (id TEXT PRIMARY KEY, body TEXT)",)


async def test_get_connection_creates_parent_dirs(tmp_path: Path):
    db_path = tmp_path / "nested" / "dir" / "zenva.db"
    conn = await get_connection(local_path_override=db_path)
    assert isinstance(conn, AsyncConnection)
    assert db_path.parent.exists()
    await conn.close()


async def test_get_connection_uses_database_path_setting(tmp_path: Path, monkeypatch):
    db_path = tmp_path / "configured" / "zenva.db"
    monkeypatch.setattr("src.config.settings.database_path", db_path)
    conn = await get_connection()
    await conn.close()
    assert db_path.exists()


class TestConnectionContext:
    async def test_applies_schema(self, tmp_path: Path):
        db_path = tmp_path / "test.db"
        async with connection(schema=_SCHEMA, local_path_override=db_path) as db:
            await db.execute("INSERT INTO notes (id, body) VALUES (?, ?)", ("n1", "hello"))
            await db.commit()

        async with connection(local_path_override=db_path) as db:
            cursor = await db.execute("SELECT body FROM notes WHERE id = ?", ("n1",))
            assert await cursor.fetchone() == ("hello",)

    async def test_schema_is_idempotent(self, tmp_path: Path):
        db_path = tmp_path / "test.db"
        for _ in range(2):
            async with connection(schema=_SCHEMA, local_path_override=db_path) as db:
                cursor = await db.execute("SELECT COUNT(*) FROM notes")
                assert await cursor.fetchone() == (0,)

    async def test_rowcount_after_update(self, tmp_path: Path):
        async with connection(schema=_SCHEMA, local_path_override=tmp_path / "t.db") as db:
            await db.execute("INSERT INTO notes (id, body) VALUES ('a', 'x')")
            await db.execute("INSERT INTO notes (id, body) VALUES ('b', 'x')")
            cursor = await db.execute("UPDATE notes SET body = 'y' WHERE body = 'x'")
            assert cursor.rowcount == 2
            rows = await (await db.execute("SELECT id FROM notes ORDER BY id")).fetchall()
            assert rows == [("a",), ("b",)]

    async def test_closes_on_error(self, tmp_path: Path):
        with pytest.raises(RuntimeError):
            async with connection(schema=_SCHEMA, local_path_override=tmp_path / "t.db"):
                raise RuntimeError("boom")

    async def test_fetchall_shortcut(self, tmp_path: Path):
        async with connection(schema=_SCHEMA, local_path_override=tmp_path / "t.db") as db:
            await db.execute("INSERT INTO notes (id, body) VALUES ('a', 'x')")
            assert await db.fetchall("SELECT id, body FROM notes WHERE id = ?", ("a",)) == [
                ("a", "x")
            ]
            assert await db.fetchall("SELECT id FROM notes WHERE id = ?", ("zz",)) == []
