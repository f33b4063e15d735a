"""Registry of per-key update handlers."""

import inspect
import threading
from collections.abc import Awaitable, Callable
from typing import Union

from configcache.domain.setting import Setting
from configcache.logger.logger import get_logger
from configcache.logger.types import Category, param

UpdateHandler = Callable[[Setting], Union[None, Awaitable[None]]]


class HandlerRegistry:
    """
    Maps configuration keys to update handlers.

    One key has at most one handler (the last registration wins); one
    handler may serve many keys. Handlers are never removed automatically.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: dict[str, UpdateHandler] = {}
        self.logger = get_logger().with_category(Category.HANDLER)

    def register(self, handler: UpdateHandler, *keys: str) -> None:
        """Bind handler to every key, replacing previous bindings."""
        with self._lock:
            for key in keys:
                self._handlers[key] = handler

    def get(self, key: str) -> UpdateHandler | None:
        """Return handler bound to key."""
        with self._lock:
            return self._handlers.get(key)

    def keys(self) -> list[str]:
        """Keys that currently have a handler."""
        with self._lock:
            return list(self._handlers)

    def resolve(self, settings: list[Setting]) -> list[tuple[UpdateHandler, Setting]]:
        """Pair applied settings with their handlers, keeping order."""
        with self._lock:
            return [
                (self._handlers[s.key], s) for s in settings if s.key in self._handlers
            ]

    async def dispatch(self, calls: list[tuple[UpdateHandler, Setting]]) -> int:
        """
        Invoke handlers one by one in the given order.

        Coroutine handlers are awaited before the next call. A failing
        handler is logged and does not stop the rest.

        Returns:
            Number of handlers that completed without error
        """
        succeeded = 0
        for handler, setting in calls:
            try:
                result = handler(setting)
                if inspect.isawaitable(result):
                    await result
                succeeded += 1
            except Exception as e:
                self.logger.error(
                    "Update handler failed",
                    e,
                    param("key", setting.key),
                    param("handler", getattr(handler, "__qualname__", repr(handler))),
                )
        return succeeded
