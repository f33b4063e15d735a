"""Settings module for the configuration cache process."""

import os

from configcache.logger.types import Level


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


class PostgresConfig:
    """PostgreSQL connection configuration (sink for structured logs)."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
    ) -> None:
        self.host = host or os.getenv("DB_HOST", "localhost")
        self.port = port or _env_int("DB_PORT", 5432)
        self.database = database or os.getenv("DB_NAME", "configcache")
        self.user = user or os.getenv("DB_USER", "configcache")
        self.password = password or self._read_password()
        self.log_table = os.getenv("DB_LOG_TABLE", "logs")

    @staticmethod
    def _read_password() -> str:
        """Read password from Docker secret or env."""
        secret_file = "/run/secrets/db_password"
        if os.path.exists(secret_file):
            with open(secret_file) as f:
                return f.read().strip()
        return os.getenv("DB_PASSWORD", "configcache")

    @property
    def dsn(self) -> str:
        """Get PostgreSQL DSN."""
        return (
            f"host={self.host} "
            f"port={self.port} "
            f"dbname={self.database} "
            f"user={self.user} "
            f"password={self.password}"
        )


class ConfigServiceConfig:
    """Remote configuration service connection and refresh settings."""

    def __init__(self) -> None:
        self.url = os.getenv("CONFIG_SERVICE_URL", "http://config-service:8080/settings")
        self.refresh_interval = _env_float("CONFIG_SERVICE_REFRESH_INTERVAL", 30.0)
        self.timeout = _env_float("CONFIG_SERVICE_TIMEOUT", 10.0)
        self.init_attempts = _env_int("CONFIG_SERVICE_INIT_ATTEMPTS", 1)
        self.init_retry_delay = _env_float("CONFIG_SERVICE_INIT_RETRY_DELAY", 1.0)

        # Ключи, изменения которых entry point пишет в лог
        raw_keys = os.getenv("CONFIG_SERVICE_WATCH_KEYS", "")
        self.watch_keys: list[str] = [k.strip() for k in raw_keys.split(",") if k.strip()]

        if self.refresh_interval <= 0:
            raise ValueError("CONFIG_SERVICE_REFRESH_INTERVAL must be positive")
        if self.timeout <= 0:
            raise ValueError("CONFIG_SERVICE_TIMEOUT must be positive")
        if self.init_attempts < 1:
            raise ValueError("CONFIG_SERVICE_INIT_ATTEMPTS must be at least 1")


class Settings:
    """Application settings."""

    def __init__(self) -> None:
        # Service info
        self.environment = os.getenv("ENVIRONMENT", "dev")
        self.service_name = os.getenv("SERVICE_NAME", "configcache")
        self.service_version = os.getenv("SERVICE_VERSION", "0.1.0")
        self.log_level = Level.parse(os.getenv("LOG_LEVEL", "info"))
        self.log_sink = os.getenv("LOG_SINK", "stdout").lower()

        if self.log_sink not in ("stdout", "postgres"):
            raise ValueError(f"LOG_SINK must be 'stdout' or 'postgres', got {self.log_sink!r}")

        self.config_service = ConfigServiceConfig()

        # PostgreSQL (только для LOG_SINK=postgres)
        self.postgres = PostgresConfig()
