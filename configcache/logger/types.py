"""Types and constants for structured logging."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Level(str, Enum):
    """Log level определяет уровень важности лога."""

    TRACE = "trace"  # Детальная трассировка выполнения
    DEBUG = "debug"  # Отладочная информация
    INFO = "info"  # Информационные сообщения
    WARN = "warn"  # Предупреждения
    ERROR = "error"  # Ошибки (recoverable)
    FATAL = "fatal"  # Критические ошибки (требуют вмешательства)

    @property
    def severity(self) -> int:
        """Numeric rank used for level filtering."""
        return _SEVERITY[self]

    @classmethod
    def parse(cls, value: str) -> "Level":
        """Parse level name from env (``warning`` is accepted for ``warn``)."""
        name = value.strip().lower()
        if name == "warning":
            name = "warn"
        try:
            return cls(name)
        except ValueError as e:
            raise ValueError(f"unknown log level: {value!r}") from e


_SEVERITY = {level: rank for rank, level in enumerate(Level)}


class Category(str, Enum):
    """Category определяет категорию события для группировки логов."""

    CONFIG_SERVICE = "config_service"  # Запросы к config service
    REFRESH = "refresh"  # Цикл обновления snapshot
    HANDLER = "handler"  # Вызов update handlers
    MATERIALIZER = "materializer"  # Заполнение dataclass из snapshot


@dataclass
class LogEntry:
    """LogEntry представляет одну запись лога для вставки в PostgreSQL."""

    timestamp: datetime
    service_name: str
    instance_id: str
    environment: str
    level: Level
    message: str
    ingestion_time: datetime = field(default_factory=_utcnow)
    node_name: str | None = None
    category: Category | None = None
    function_name: str | None = None
    file_path: str | None = None
    line_number: int | None = None
    error_message: str | None = None
    stack_trace: str | None = None
    context: dict[str, Any] | None = None
    duration_ms: int | None = None


@dataclass
class Field:
    """Field для структурированных данных в логах."""

    key: str
    value: Any


def category(cat: Category) -> Field:
    """Создаёт поле для категории лога."""
    return Field(key="_category", value=cat)


def param(key: str, value: Any) -> Field:
    """Универсальная функция для добавления параметра."""
    return Field(key=key, value=value)


def duration_ms(value: int) -> Field:
    """Создаёт поле для duration в миллисекундах."""
    return Field(key="duration_ms", value=value)
