"""PostgreSQL writer для логов с батчингом."""

import asyncio
import contextlib
import json
import sys
from typing import Any

import psycopg2
import psycopg2.extras
from psycopg2 import sql
from psycopg2.extensions import connection as Connection

from configcache.logger.types import LogEntry

_COLUMNS = (
    "timestamp",
    "service_name",
    "instance_id",
    "node_name",
    "environment",
    "level",
    "category",
    "function_name",
    "file_path",
    "line_number",
    "message",
    "error_message",
    "stack_trace",
    "context",
    "duration_ms",
    "ingestion_time",
)


class PostgresWriter:
    """PostgresWriter записывает логи в PostgreSQL с батчингом."""

    def __init__(
        self,
        dsn: str,
        table: str = "logs",
        batch_size: int = 100,
        flush_interval: float = 5.0,
    ) -> None:
        """
        Initialize PostgresWriter.

        Args:
            dsn: PostgreSQL connection string
            table: Таблица для логов
            batch_size: Размер батча для flush
            flush_interval: Интервал автоматического flush в секундах
        """
        self.dsn = dsn
        self.table = table
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.buffer: list[LogEntry] = []
        self._lock = asyncio.Lock()
        self._conn: Connection | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._flush_task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def loop(self) -> asyncio.AbstractEventLoop | None:
        """Event loop, в котором работает writer (после connect)."""
        return self._loop

    async def connect(self) -> None:
        """Подключается к PostgreSQL и запускает фоновый flush."""
        try:
            self._conn = psycopg2.connect(self.dsn)
            self._conn.set_session(autocommit=False)
        except Exception as e:
            print(
                f"[LOGGER ERROR] Failed to connect to PostgreSQL: {e}",
                file=sys.stderr,
            )
            raise

        self._loop = asyncio.get_running_loop()
        self._flush_task = asyncio.create_task(self._background_flush())

    async def write(self, entry: LogEntry) -> None:
        """Добавляет запись в буфер."""
        if self._closed:
            return

        async with self._lock:
            self.buffer.append(entry)

            if len(self.buffer) >= self.batch_size:
                await self._flush_locked()

    async def flush(self) -> None:
        """Принудительно записывает буфер в БД."""
        async with self._lock:
            await self._flush_locked()

    async def _flush_locked(self) -> None:
        """Записывает буфер в БД (должен вызываться с захваченным lock)."""
        if not self.buffer or not self._conn:
            return

        rows = [self._to_row(entry) for entry in self.buffer]
        try:
            # psycopg2 синхронный - выполняем INSERT в отдельном потоке
            await asyncio.to_thread(self._insert, rows)
            self.buffer.clear()
        except Exception as e:
            print(
                f"[LOGGER ERROR] Failed to insert logs into PostgreSQL: {e}",
                file=sys.stderr,
            )
            if self._conn:
                self._conn.rollback()
            self._fallback_to_stderr()
            self.buffer.clear()

    def _insert(self, rows: list[tuple[Any, ...]]) -> None:
        """INSERT батча одним запросом; таблица и колонки экранируются как identifiers."""
        assert self._conn is not None
        query = sql.SQL("INSERT INTO {table} ({columns}) VALUES %s").format(
            table=sql.Identifier(self.table),
            columns=sql.SQL(", ").join(sql.Identifier(c) for c in _COLUMNS),
        )
        with self._conn.cursor() as cursor:
            psycopg2.extras.execute_values(
                cursor,
                query,
                rows,
                page_size=self.batch_size,
            )
        self._conn.commit()

    @staticmethod
    def _to_row(entry: LogEntry) -> tuple[Any, ...]:
        return (
            entry.timestamp,
            entry.service_name,
            entry.instance_id,
            entry.node_name,
            entry.environment,
            entry.level.value,
            entry.category.value if entry.category else None,
            entry.function_name,
            entry.file_path,
            entry.line_number,
            entry.message,
            entry.error_message,
            entry.stack_trace,
            json.dumps(entry.context, default=str) if entry.context is not None else None,
            entry.duration_ms,
            entry.ingestion_time,
        )

    def _fallback_to_stderr(self) -> None:
        """Записывает логи в stderr если PostgreSQL недоступен."""
        for entry in self.buffer:
            data: dict[str, Any] = {
                "timestamp": entry.timestamp.isoformat(),
                "level": entry.level.value,
                "category": entry.category.value if entry.category else None,
                "message": entry.message,
                "service_name": entry.service_name,
                "environment": entry.environment,
            }
            if entry.error_message:
                data["error"] = entry.error_message
            if entry.context:
                data["context"] = entry.context

            print(json.dumps(data, default=str), file=sys.stderr)

    async def _background_flush(self) -> None:
        """Периодически сбрасывает буфер."""
        while not self._closed:
            try:
                await asyncio.sleep(self.flush_interval)
                await self.flush()
            except asyncio.CancelledError:
                break
            except Exception as e:
                print(
                    f"[LOGGER ERROR] Background flush failed: {e}",
                    file=sys.stderr,
                )

    async def close(self) -> None:
        """Закрывает writer и сбрасывает оставшиеся логи."""
        self._closed = True

        if self._flush_task:
            self._flush_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._flush_task

        await self.flush()

        if self._conn:
            self._conn.close()
            self._conn = None

