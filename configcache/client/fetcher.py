"""
HTTP client for the remote configuration service.

One round-trip returns the full current set of settings for the calling
service:

    GET <url>
    SERVICE_NAME: <service name>

    200 OK
    [{"key": "...", "value": "...", "created": "...", "updated": "..."}, ...]

Anything other than HTTP 200 with a JSON array of settings is a FetchError.
"""

import time
from typing import Any

import requests

from configcache.domain.setting import Setting
from configcache.errors import FetchError
from configcache.logger.logger import get_logger
from configcache.logger.types import Category, duration_ms, param

SERVICE_NAME_HEADER = "SERVICE_NAME"


class SettingsFetcher:
    """Fetches the full settings set from the config service."""

    def __init__(
        self,
        url: str,
        service_name: str,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        """
        Initialize SettingsFetcher.

        Args:
            url: Config service endpoint
            service_name: Value of the SERVICE_NAME header
            timeout: Deadline for one request in seconds
            session: Optional pre-configured requests session
        """
        self.url = url
        self.service_name = service_name
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = get_logger().with_category(Category.CONFIG_SERVICE)

    def fetch(self) -> dict[str, Setting]:
        """
        Request current settings.

        Returns:
            Mapping key -> Setting; for duplicate keys the later entry wins

        Raises:
            FetchError: On transport error, non-200 status or malformed body
        """
        started = time.monotonic()
        try:
            response = self.session.get(
                self.url,
                headers={SERVICE_NAME_HEADER: self.service_name},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise FetchError(f"request to config service failed: {e}") from e

        if response.status_code != 200:
            raise FetchError(f"unexpected status code: {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise FetchError(
                f"failed to deserialize response from config service: {e}"
            ) from e

        settings = self._parse_settings(payload)

        self.logger.debug(
            "Fetched settings from config service",
            param("url", self.url),
            param("count", len(settings)),
            duration_ms(int((time.monotonic() - started) * 1000)),
        )
        return settings

    @staticmethod
    def _parse_settings(payload: Any) -> dict[str, Setting]:
        """Convert JSON array into key -> Setting mapping."""
        if not isinstance(payload, list):
            raise FetchError(
                "failed to deserialize response from config service: "
                f"expected array, got {type(payload).__name__}"
            )

        settings: dict[str, Setting] = {}
        for index, item in enumerate(payload):
            try:
                setting = Setting.from_dict(item)
            except ValueError as e:
                raise FetchError(
                    "failed to deserialize response from config service: "
                    f"item {index}: {e}"
                ) from e
            settings[setting.key] = setting
        return settings

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()
