"""Logger module for the configuration cache."""

from configcache.logger.logger import Logger, get_logger, init_logger
from configcache.logger.postgres_writer import PostgresWriter
from configcache.logger.types import Category, Field, Level, LogEntry

__all__ = [
    "Logger",
    "get_logger",
    "init_logger",
    "PostgresWriter",
    "Category",
    "Level",
    "LogEntry",
    "Field",
]
