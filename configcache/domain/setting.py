"""Setting domain model."""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

# Дробная часть секунд приводится к микросекундам (сервис отдаёт наносекунды)
_FRACTION_RE = re.compile(r"\.(\d+)")

ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)

REQUIRED_FIELDS = ("key", "value", "created", "updated")


@dataclass(frozen=True)
class Setting:
    """
    Single configuration value served by the config service.

    ``updated`` is the version marker used for change detection.
    """

    key: str
    value: str
    created: datetime
    updated: datetime

    def get_value(self) -> str:
        """Return the raw setting value."""
        return self.value

    @classmethod
    def zero(cls, key: str) -> "Setting":
        """Placeholder for a key that is not in the snapshot yet."""
        return cls(key=key, value="", created=ZERO_TIME, updated=ZERO_TIME)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Setting":
        """
        Create Setting from a config service JSON object.

        Args:
            data: Object with key, value, created and updated fields

        Returns:
            Setting instance

        Raises:
            ValueError: If a field is missing or malformed
        """
        if not isinstance(data, dict):
            raise ValueError(f"setting must be an object, got {type(data).__name__}")

        missing = [name for name in REQUIRED_FIELDS if name not in data]
        if missing:
            raise ValueError(f"setting is missing fields: {', '.join(missing)}")

        key = data["key"]
        value = data["value"]
        if not isinstance(key, str) or not isinstance(value, str):
            raise ValueError(f"setting key and value must be strings (key={key!r})")

        return cls(
            key=key,
            value=value,
            created=parse_timestamp(data["created"]),
            updated=parse_timestamp(data["updated"]),
        )


def parse_timestamp(value: Any) -> datetime:
    """
    Parse RFC 3339 timestamp to an aware datetime.

    Naive timestamps are treated as UTC.

    Raises:
        ValueError: If value is not a valid timestamp
    """
    if not isinstance(value, str) or not value:
        raise ValueError(f"invalid timestamp: {value!r}")

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(_normalize_fraction, text, count=1)

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise ValueError(f"invalid timestamp: {value!r}") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _normalize_fraction(match: "re.Match[str]") -> str:
    digits = match.group(1)[:6]
    return "." + digits.ljust(6, "0")
