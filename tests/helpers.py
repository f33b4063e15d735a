from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Union

from configcache.domain.setting import Setting
from configcache.errors import FetchError

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_setting(key: str, value: str, updated: int = 0) -> Setting:
    """Setting whose ``updated`` is BASE_TIME plus ``updated`` seconds."""
    return Setting(
        key=key,
        value=value,
        created=BASE_TIME,
        updated=BASE_TIME + timedelta(seconds=updated),
    )


FetchResult = Union[list[Setting], Exception]


class FakeFetcher:
    """Returns queued results in order; raises FetchError once exhausted."""

    def __init__(self, *results: FetchResult) -> None:
        self.results: list[FetchResult] = list(results)
        self.calls = 0
        self.closed = False

    def push(self, *results: FetchResult) -> None:
        self.results.extend(results)

    def fetch(self) -> dict[str, Setting]:
        self.calls += 1
        if not self.results:
            raise FetchError("no more responses")
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return {s.key: s for s in result}

    def close(self) -> None:
        self.closed = True
