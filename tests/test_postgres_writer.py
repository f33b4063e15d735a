from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any
from unittest.mock import MagicMock

import psycopg2
import psycopg2.extras
import pytest
from psycopg2 import sql

from configcache.logger.postgres_writer import PostgresWriter
from configcache.logger.types import Category, Level, LogEntry

TS = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _entry(message: str = "Config updated", **kwargs: Any) -> LogEntry:
    return LogEntry(
        timestamp=TS,
        service_name="billing",
        instance_id="pod-1",
        environment="test",
        level=Level.INFO,
        message=message,
        ingestion_time=TS,
        category=Category.REFRESH,
        **kwargs,
    )


def _writer(table: str = "audit_logs") -> PostgresWriter:
    writer = PostgresWriter("dbname=test", table=table, batch_size=10)
    writer._conn = MagicMock()
    return writer


def test_to_row_matches_column_order() -> None:
    entry = _entry(context={"key": "port"}, duration_ms=12, line_number=7)

    row = PostgresWriter._to_row(entry)

    assert row == (
        TS,
        "billing",
        "pod-1",
        None,
        "test",
        "info",
        "refresh",
        None,
        None,
        7,
        "Config updated",
        None,
        None,
        '{"key": "port"}',
        12,
        TS,
    )


def test_to_row_without_category_or_context() -> None:
    entry = _entry()
    entry.category = None

    row = PostgresWriter._to_row(entry)

    assert row[6] is None
    assert row[13] is None


def test_insert_quotes_table_and_columns(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[Any, ...]] = []

    def fake_execute_values(cursor: Any, query: Any, rows: Any, page_size: int) -> None:
        calls.append((query, rows, page_size))

    monkeypatch.setattr(psycopg2.extras, "execute_values", fake_execute_values)
    writer = _writer()
    rows = [PostgresWriter._to_row(_entry())]

    writer._insert(rows)

    (query, sent_rows, page_size), = calls
    assert isinstance(query, sql.Composed)
    assert sql.Identifier("audit_logs") in query.seq
    assert sent_rows == rows
    assert page_size == 10
    writer._conn.commit.assert_called_once_with()


def test_flush_writes_buffer_and_clears_it(monkeypatch: pytest.MonkeyPatch) -> None:
    inserted: list[Any] = []
    monkeypatch.setattr(
        psycopg2.extras, "execute_values", lambda cursor, query, rows, page_size: inserted.extend(rows)
    )
    writer = _writer()

    async def scenario() -> None:
        await writer.write(_entry("first"))
        await writer.write(_entry("second"))
        await writer.flush()

    asyncio.run(scenario())

    assert [row[10] for row in inserted] == ["first", "second"]
    assert writer.buffer == []


def test_failed_insert_rolls_back_and_falls_back_to_stderr(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def broken(*args: Any, **kwargs: Any) -> None:
        raise psycopg2.OperationalError("server closed the connection")

    monkeypatch.setattr(psycopg2.extras, "execute_values", broken)
    writer = _writer()

    async def scenario() -> None:
        await writer.write(_entry("lost in db", context={"key": "port"}))
        await writer.flush()

    asyncio.run(scenario())

    writer._conn.rollback.assert_called_once_with()
    assert writer.buffer == []
    err_lines = capsys.readouterr().err.splitlines()
    assert "Failed to insert logs" in err_lines[0]
    fallback = json.loads(err_lines[1])
    assert fallback["message"] == "lost in db"
    assert fallback["category"] == "refresh"
    assert fallback["context"] == {"key": "port"}


def test_write_after_close_is_ignored() -> None:
    writer = PostgresWriter("dbname=test")

    async def scenario() -> None:
        await writer.close()
        await writer.write(_entry())

    asyncio.run(scenario())

    assert writer.buffer == []
