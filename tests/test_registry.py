from __future__ import annotations

import asyncio

from configcache.domain.setting import Setting
from configcache.handlers.registry import HandlerRegistry
from tests.helpers import make_setting


def test_register_overwrites_per_key() -> None:
    registry = HandlerRegistry()

    def first(setting: Setting) -> None: ...
    def second(setting: Setting) -> None: ...

    registry.register(first, "a", "b")
    registry.register(second, "b")

    assert registry.get("a") is first
    assert registry.get("b") is second
    assert registry.get("c") is None
    assert sorted(registry.keys()) == ["a", "b"]


def test_resolve_skips_keys_without_handler() -> None:
    registry = HandlerRegistry()
    calls: list[str] = []
    registry.register(lambda s: calls.append(s.key), "b")

    resolved = registry.resolve([make_setting("a", "1"), make_setting("b", "1")])

    assert [setting.key for _, setting in resolved] == ["b"]


def test_dispatch_counts_successful_handlers() -> None:
    registry = HandlerRegistry()
    seen: list[str] = []

    def ok(setting: Setting) -> None:
        seen.append(setting.key)

    def broken(setting: Setting) -> None:
        raise ValueError("bad value")

    calls = [(broken, make_setting("a", "1")), (ok, make_setting("b", "1"))]

    assert asyncio.run(registry.dispatch(calls)) == 1
    assert seen == ["b"]
