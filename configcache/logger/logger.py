"""Основной logger для структурированного логирования."""

import asyncio
import inspect
import json
import os
import sys
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from configcache.logger.types import Category, Field, Level, LogEntry

if TYPE_CHECKING:
    from configcache.logger.postgres_writer import PostgresWriter


class Logger:
    """Logger для структурированного логирования (stdout или PostgreSQL)."""

    def __init__(
        self,
        service_name: str,
        environment: str,
        writer: "PostgresWriter | None" = None,
        level: Level = Level.INFO,
    ) -> None:
        """
        Initialize Logger.

        Args:
            service_name: Имя сервиса
            environment: Окружение (dev, stage, prod)
            writer: PostgresWriter для записи логов, None - вывод в stdout
            level: Минимальный уровень записываемых логов
        """
        self.service_name = service_name
        self.environment = environment
        self.writer = writer
        self.level = level
        self.instance_id = self._get_instance_id()
        self.node_name = self._get_node_name()

        # Контекстные поля
        self._fields: dict[str, Any] = {}
        self._category: Category | None = None

    def trace(self, msg: str, *fields: Field) -> None:
        """Log trace level message."""
        self._log(Level.TRACE, msg, None, *fields)

    def debug(self, msg: str, *fields: Field) -> None:
        """Log debug level message."""
        self._log(Level.DEBUG, msg, None, *fields)

    def info(self, msg: str, *fields: Field) -> None:
        """Log info level message."""
        self._log(Level.INFO, msg, None, *fields)

    def warn(self, msg: str, *fields: Field) -> None:
        """Log warn level message."""
        self._log(Level.WARN, msg, None, *fields)

    def error(self, msg: str, err: Exception | None = None, *fields: Field) -> None:
        """Log error level message."""
        self._log(Level.ERROR, msg, err, *fields)

    def fatal(self, msg: str, err: Exception | None = None, *fields: Field) -> None:
        """Log fatal level message and exit."""
        self._log(Level.FATAL, msg, err, *fields)
        raise SystemExit(1)

    def is_enabled(self, level: Level) -> bool:
        """Check whether messages of the level pass the threshold."""
        return level.severity >= self.level.severity

    def _log(
        self,
        level: Level,
        msg: str,
        err: Exception | None,
        *fields: Field,
    ) -> None:
        """Основной метод логирования."""
        if not self.is_enabled(level):
            return

        # Получаем информацию о caller
        frame = inspect.currentframe()
        caller_frame = frame.f_back.f_back if frame and frame.f_back else None

        function_name = None
        file_path = None
        line_number = None

        if caller_frame:
            function_name = caller_frame.f_code.co_name
            file_path = self._clean_file_path(caller_frame.f_code.co_filename)
            line_number = caller_frame.f_lineno

        # Формируем context из полей
        context: dict[str, Any] = dict(self._fields)
        category = self._category

        for field in fields:
            if field.key == "_category":
                if isinstance(field.value, Category):
                    category = field.value
                continue
            context[field.key] = field.value

        duration_ms = context.pop("duration_ms", None)
        if duration_ms is not None:
            duration_ms = int(duration_ms)

        entry = LogEntry(
            timestamp=datetime.now(timezone.utc),
            service_name=self.service_name,
            instance_id=self.instance_id,
            node_name=self.node_name,
            environment=self.environment,
            level=level,
            category=category,
            function_name=function_name,
            file_path=file_path,
            line_number=line_number,
            message=msg,
            context=context if context else None,
            duration_ms=duration_ms,
        )

        if err:
            entry.error_message = str(err)
            # Stack trace только для серьёзных ошибок
            if level in (Level.ERROR, Level.FATAL):
                entry.stack_trace = "".join(
                    traceback.format_exception(type(err), err, err.__traceback__)
                )

        if self.writer:
            self._submit(entry)
        else:
            print(self._format_line(entry), flush=True)

    def _submit(self, entry: LogEntry) -> None:
        """Передаёт запись writer'у в его event loop."""
        assert self.writer is not None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        try:
            writer_loop = self.writer.loop
            if loop is not None and (writer_loop is None or writer_loop is loop):
                loop.create_task(self.writer.write(entry))
            elif writer_loop is not None and not writer_loop.is_closed():
                # Вызов из другого потока (например, handler в to_thread)
                asyncio.run_coroutine_threadsafe(self.writer.write(entry), writer_loop)
            else:
                print(self._format_line(entry), file=sys.stderr, flush=True)
        except Exception as write_err:
            print(f"[LOGGER ERROR] Failed to write log: {write_err}", file=sys.stderr)

    @staticmethod
    def _format_line(entry: LogEntry) -> str:
        category = entry.category.value if entry.category else "-"
        line = f"[{entry.level.value}] {category}: {entry.message}"
        if entry.context:
            line += " " + json.dumps(entry.context, default=str, ensure_ascii=False)
        if entry.error_message:
            line += f" error={entry.error_message!r}"
        return line

    def with_category(self, category: Category) -> "Logger":
        """Возвращает новый logger с указанной категорией."""
        new_logger = self._copy()
        new_logger._category = category
        return new_logger

    def with_fields(self, *fields: Field) -> "Logger":
        """Возвращает новый logger с дополнительными полями."""
        new_logger = self._copy()
        for field in fields:
            new_logger._fields[field.key] = field.value
        return new_logger

    def _copy(self) -> "Logger":
        """Создаёт копию logger."""
        new_logger = Logger(self.service_name, self.environment, self.writer, self.level)
        new_logger.instance_id = self.instance_id
        new_logger.node_name = self.node_name
        new_logger._fields = dict(self._fields)
        new_logger._category = self._category
        return new_logger

    @staticmethod
    def _get_instance_id() -> str:
        """Получает уникальный ID инстанса из env или генерирует."""
        if hostname := os.getenv("HOSTNAME"):
            return hostname
        if container_id := os.getenv("CONTAINER_ID"):
            return container_id
        return str(uuid.uuid4())

    @staticmethod
    def _get_node_name() -> str | None:
        """Получает имя ноды из env (для K8s/Swarm)."""
        return os.getenv("NODE_NAME")

    @staticmethod
    def _clean_file_path(file_path: str) -> str:
        """Очищает путь к файлу от абсолютного пути."""
        path = Path(file_path)

        parts = path.parts
        if "configcache" in parts:
            idx = parts.index("configcache")
            return str(Path(*parts[idx:]))

        return path.name


def _env_level() -> Level:
    """LOG_LEVEL из env; некорректное значение не ломает библиотеку (строгая проверка в Settings)."""
    try:
        return Level.parse(os.getenv("LOG_LEVEL", "info"))
    except ValueError:
        return Level.INFO


# Глобальный logger instance
_global_logger: Logger | None = None


def get_logger() -> Logger:
    """
    Возвращает глобальный logger instance.

    Если init_logger() ещё не вызывался, создаётся stdout logger,
    чтобы библиотеку можно было использовать без wiring процесса.
    """
    global _global_logger
    if _global_logger is None:
        _global_logger = Logger(
            service_name=os.getenv("SERVICE_NAME", "configcache"),
            environment=os.getenv("ENVIRONMENT", "dev"),
            level=_env_level(),
        )
    return _global_logger


def init_logger(
    service_name: str,
    environment: str,
    writer: "PostgresWriter | None" = None,
    level: Level = Level.INFO,
) -> Logger:
    """
    Инициализирует глобальный logger.

    Args:
        service_name: Имя сервиса
        environment: Окружение (dev, stage, prod)
        writer: PostgresWriter для записи логов
        level: Минимальный уровень логов

    Returns:
        Logger instance
    """
    global _global_logger
    _global_logger = Logger(service_name, environment, writer, level)
    return _global_logger
