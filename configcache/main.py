"""
Config cache process entry point.

Keeps a local snapshot of the remote configuration service and logs
changes of the keys listed in CONFIG_SERVICE_WATCH_KEYS.
"""

import asyncio
import contextlib
import signal
from collections.abc import Callable
from functools import partial

from configcache.config.settings import Settings
from configcache.domain.setting import Setting
from configcache.errors import FetchError
from configcache.logger.logger import Logger, get_logger, init_logger
from configcache.logger.postgres_writer import PostgresWriter
from configcache.logger.types import Category, category, param
from configcache.manager import ConfigServiceManager


def make_change_logger(logger: Logger) -> Callable[[Setting], None]:
    """Build an update handler that logs every applied change."""

    def log_change(log: Logger, setting: Setting) -> None:
        log.info(
            "Watched config key changed",
            category(Category.HANDLER),
            param("key", setting.key),
            param("value", setting.value),
            param("updated", setting.updated.isoformat()),
        )

    return partial(log_change, logger)


async def shutdown(
    manager: ConfigServiceManager | None,
    log_writer: PostgresWriter | None,
) -> None:
    """Graceful shutdown."""
    logger = get_logger()
    logger.info("Shutting down config cache...")

    # 1. Остановить refresh loop и закрыть HTTP session
    if manager is not None:
        manager.close()

    # 2. Закрыть log writer (flush оставшихся логов)
    if log_writer is not None:
        await log_writer.close()

    logger.info("Shutdown complete")


async def main() -> None:
    """Main entry point."""
    settings = Settings()

    log_writer: PostgresWriter | None = None
    if settings.log_sink == "postgres":
        log_writer = PostgresWriter(
            dsn=settings.postgres.dsn,
            table=settings.postgres.log_table,
            batch_size=100,
            flush_interval=5.0,
        )
        await log_writer.connect()

    init_logger(
        service_name=settings.service_name,
        environment=settings.environment,
        writer=log_writer,
        level=settings.log_level,
    )
    logger = get_logger()

    logger.info(
        "Starting config cache",
        param("environment", settings.environment),
        param("service_name", settings.service_name),
        param("version", settings.service_version),
        param("log_sink", settings.log_sink),
    )

    cfg = settings.config_service
    manager: ConfigServiceManager | None = None
    try:
        # Первый fetch синхронный - выполняем вне event loop
        manager = await asyncio.to_thread(
            partial(
                ConfigServiceManager,
                settings.service_name,
                cfg.url,
                cfg.refresh_interval,
                timeout=cfg.timeout,
                init_attempts=cfg.init_attempts,
                init_retry_delay=cfg.init_retry_delay,
            )
        )
    except FetchError as e:
        logger.error(
            "Failed to load initial configuration",
            e,
            category(Category.CONFIG_SERVICE),
            param("url", cfg.url),
        )
        await shutdown(None, log_writer)
        raise SystemExit(1) from e

    if cfg.watch_keys:
        manager.set_update_handler(make_change_logger(logger), *cfg.watch_keys)
        logger.info("Watching config keys", param("keys", cfg.watch_keys))

    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        logger.info("Received signal", param("signal", sig))
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, partial(signal_handler, sig))

    try:
        refresh_task = asyncio.create_task(manager.run_refresh_loop())
        shutdown_task = asyncio.create_task(shutdown_event.wait())

        # Ждём либо завершения refresh loop, либо сигнала shutdown
        _, pending = await asyncio.wait(
            [refresh_task, shutdown_task],
            return_when=asyncio.FIRST_COMPLETED,
        )

        manager.stop()
        for task in pending:
            if task is refresh_task:
                # refresh loop завершается сам после stop()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            else:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    except Exception as e:
        logger.error("Fatal error in refresh loop", e, param("error", str(e)))
    finally:
        await shutdown(manager, log_writer)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
