"""Configuration manager: snapshot, refresh loop and update handlers."""

import asyncio
import threading
import time
from collections.abc import Mapping
from typing import Any, TypeVar

from configcache.binding import materializer
from configcache.client.fetcher import SettingsFetcher
from configcache.domain.setting import Setting
from configcache.errors import FetchError
from configcache.handlers.registry import HandlerRegistry, UpdateHandler
from configcache.logger.logger import get_logger
from configcache.logger.types import Category, category, duration_ms, param
from configcache.store.snapshot import SnapshotStore

T = TypeVar("T")

MAX_INIT_RETRY_DELAY = 30.0


class ConfigServiceManager:
    """
    Client-side cache of the remote configuration service.

    Construction performs a synchronous initial fetch and fails with
    FetchError if it does not succeed. After that:

    - ``get_param`` and friends read the current snapshot from any thread;
    - ``run_refresh_loop`` (a coroutine) refetches every ``refresh_interval``
      seconds, applies perceivable changes and calls update handlers;
    - ``populate_struct`` projects the snapshot onto a bound dataclass.
    """

    def __init__(
        self,
        service_name: str,
        url: str,
        refresh_interval: float,
        *,
        timeout: float = 10.0,
        fetcher: SettingsFetcher | None = None,
        init_attempts: int = 1,
        init_retry_delay: float = 1.0,
    ) -> None:
        """
        Initialize ConfigServiceManager.

        Args:
            service_name: Name sent to the config service in SERVICE_NAME header
            url: Config service endpoint
            refresh_interval: Seconds between refresh cycles
            timeout: Deadline for one fetch in seconds
            fetcher: Custom fetcher (defaults to HTTP SettingsFetcher)
            init_attempts: Attempts for the initial fetch
            init_retry_delay: First delay between initial attempts, doubled each retry

        Raises:
            FetchError: If the initial fetch fails
            ValueError: If refresh_interval or init_attempts is invalid
        """
        if refresh_interval <= 0:
            raise ValueError("refresh_interval must be positive")
        if init_attempts < 1:
            raise ValueError("init_attempts must be at least 1")

        self.service_name = service_name
        self.url = url
        self.refresh_interval = refresh_interval
        self.fetcher = fetcher or SettingsFetcher(url, service_name, timeout=timeout)
        self.logger = get_logger().with_category(Category.REFRESH)

        self._handlers = HandlerRegistry()
        self._stopped = threading.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._wakeup: asyncio.Event | None = None
        self._cycles = 0

        initial = self._initial_fetch(init_attempts, init_retry_delay)
        self._store = SnapshotStore(initial)

        self.logger.info(
            "Config service manager initialized",
            param("service_name", service_name),
            param("url", url),
            param("settings", len(initial)),
            param("refresh_interval", refresh_interval),
        )

    def _initial_fetch(self, attempts: int, delay: float) -> dict[str, Setting]:
        """Fetch the first snapshot, retrying with exponential backoff."""
        last_error: FetchError | None = None
        for attempt in range(1, attempts + 1):
            try:
                return self.fetcher.fetch()
            except FetchError as e:
                last_error = e
                if attempt < attempts:
                    self.logger.warn(
                        f"Initial fetch attempt {attempt}/{attempts} failed, retrying...",
                        param("url", self.url),
                        param("delay", delay),
                        param("error", str(e)),
                    )
                    time.sleep(delay)
                    delay = min(delay * 2, MAX_INIT_RETRY_DELAY)

        assert last_error is not None
        self.logger.error(
            f"Initial fetch failed after {attempts} attempt(s)",
            last_error,
            param("url", self.url),
        )
        raise last_error

    # Чтение snapshot

    def get_param(self, key: str) -> tuple[str, bool]:
        """
        Get current value of a key.

        Returns:
            (value, True) if present, ("", False) otherwise
        """
        setting = self._store.get(key)
        if setting is None:
            return "", False
        return setting.value, True

    def get_setting(self, key: str) -> Setting | None:
        """Get full Setting (with timestamps) or None."""
        return self._store.get(key)

    def get_value(self, key: str, default: str | None = None) -> str | None:
        """Get value by key or default if absent."""
        setting = self._store.get(key)
        return setting.value if setting else default

    def get_int(self, key: str, default: int | None = None) -> int | None:
        """Get value as int; absent or malformed values return default."""
        return self._get_converted(key, materializer.Kind.INT, default)

    def get_bool(self, key: str, default: bool | None = None) -> bool | None:
        """Get value as bool; absent or malformed values return default."""
        return self._get_converted(key, materializer.Kind.BOOL, default)

    def _get_converted(self, key: str, kind: materializer.Kind, default: Any) -> Any:
        value = self.get_value(key)
        if value is None:
            return default
        try:
            return materializer.convert(value, kind)
        except ValueError:
            self.logger.warn(
                f"Invalid {kind.value} value for config key {key}",
                param("key", key),
                param("value", value),
            )
            return default

    def snapshot(self) -> Mapping[str, Setting]:
        """Read-only point-in-time copy of all settings."""
        return self._store.snapshot()

    # Handlers

    def set_update_handler(self, handler: UpdateHandler, *keys: str) -> None:
        """
        Register handler for every key, replacing any previous handler.

        The handler receives the new Setting after it is stored. It may be
        a plain function or a coroutine function.
        """
        self._handlers.register(handler, *keys)
        self.logger.debug(
            "Update handler registered",
            param("keys", list(keys)),
            param("handler", getattr(handler, "__qualname__", repr(handler))),
        )

    # Materialization

    def populate_struct(self, target: Any) -> None:
        """
        Fill bound fields of a dataclass instance from the snapshot.

        Raises:
            MissingKeyError: If a bound key is absent
            ConversionError: If a value cannot be converted
            UnsupportedTypeError: If a bound field type is not int, bool or str
        """
        materializer.populate(target, self._store.snapshot())
        self.logger.debug(
            "Struct populated from snapshot",
            category(Category.MATERIALIZER),
            param("type", type(target).__qualname__),
        )

    def materialize(self, cls: type[T]) -> T:
        """Build a new instance of a bound dataclass from the snapshot."""
        instance = materializer.materialize(cls, self._store.snapshot())
        self.logger.debug(
            "Struct materialized from snapshot",
            category(Category.MATERIALIZER),
            param("type", cls.__qualname__),
        )
        return instance

    # Refresh loop

    async def refresh_once(self) -> list[Setting]:
        """
        Run one fetch-diff-apply cycle.

        Fetch errors are logged and the cycle is skipped without touching
        the snapshot.

        Returns:
            Settings applied in this cycle
        """
        self._cycles += 1
        started = time.monotonic()

        try:
            fresh = await asyncio.to_thread(self.fetcher.fetch)
        except FetchError as e:
            self.logger.error(
                "Request to config service failed",
                e,
                param("cycle", self._cycles),
            )
            return []

        applied = self._store.apply(fresh)
        calls = self._handlers.resolve(applied)

        for setting in applied:
            self.logger.info(
                "Config updated",
                param("key", setting.key),
                param("updated", setting.updated.isoformat()),
            )

        if calls:
            await self._handlers.dispatch(calls)

        self.logger.debug(
            "Refresh cycle finished",
            param("cycle", self._cycles),
            param("fetched", len(fresh)),
            param("applied", len(applied)),
            param("handlers", len(calls)),
            duration_ms(int((time.monotonic() - started) * 1000)),
        )
        return applied

    async def run_refresh_loop(self) -> None:
        """
        Refresh the snapshot every ``refresh_interval`` seconds until stop().

        Intended to run as a background task for the process lifetime.
        """
        self._loop = asyncio.get_running_loop()
        self._wakeup = asyncio.Event()

        self.logger.info(
            "Starting refresh loop",
            param("interval", self.refresh_interval),
        )

        while not self._stopped.is_set():
            try:
                if await self._sleep():
                    break
                await self.refresh_once()
            except asyncio.CancelledError:
                self.logger.info("Refresh loop cancelled, stopping...")
                break
            except Exception as e:
                # Цикл не должен падать из-за одной итерации
                self.logger.error("Error in refresh loop", e)

        self._loop = None
        self._wakeup = None
        self.logger.info("Refresh loop stopped")

    async def _sleep(self) -> bool:
        """Wait refresh_interval; returns True if stop() was called meanwhile."""
        assert self._wakeup is not None
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=self.refresh_interval)
        except asyncio.TimeoutError:
            pass
        return self._stopped.is_set()

    def stop(self) -> None:
        """
        Stop the refresh loop.

        Safe to call from any thread; interrupts the current sleep.
        A cycle already in progress completes (its fetch is bounded by the
        fetcher timeout) and the loop exits before the next one.
        """
        self._stopped.set()
        loop, wakeup = self._loop, self._wakeup
        if loop is not None and wakeup is not None and not loop.is_closed():
            loop.call_soon_threadsafe(wakeup.set)

    @property
    def stopped(self) -> bool:
        """True after stop() has been called."""
        return self._stopped.is_set()

    def close(self) -> None:
        """Stop the loop and release the HTTP session."""
        self.stop()
        self.fetcher.close()
