"""Snapshot store: last known key -> Setting mapping."""

import threading
from collections.abc import Mapping
from types import MappingProxyType

from configcache.domain.setting import Setting


def is_perceivable_change(old: Setting, new: Setting) -> bool:
    """
    Check whether ``new`` should replace ``old``.

    Both conditions are required: a strictly later ``updated`` timestamp
    and a different value. A touch (timestamp bump with the same value)
    and a clock regression are both ignored.
    """
    return new.updated > old.updated and new.value != old.value


class SnapshotStore:
    """
    Thread-safe store of the current settings snapshot.

    Writers build a new dict and publish it under the lock (copy-on-write),
    so readers only hold the lock long enough to take the reference and
    never observe a half-applied cycle.
    """

    def __init__(self, settings: Mapping[str, Setting] | None = None) -> None:
        self._lock = threading.Lock()
        self._settings: Mapping[str, Setting] = MappingProxyType(dict(settings or {}))

    def get(self, key: str) -> Setting | None:
        """Get setting by key or None if absent."""
        with self._lock:
            return self._settings.get(key)

    def snapshot(self) -> Mapping[str, Setting]:
        """Read-only point-in-time view of all settings."""
        with self._lock:
            return self._settings

    def __len__(self) -> int:
        with self._lock:
            return len(self._settings)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._settings

    def apply(self, fresh: Mapping[str, Setting]) -> list[Setting]:
        """
        Merge a freshly fetched set into the snapshot.

        Keys missing from ``fresh`` are kept as is (deletions are not
        propagated).

        Args:
            fresh: Full settings set from one fetch

        Returns:
            Applied settings in fetch order
        """
        with self._lock:
            current = self._settings
            applied: list[Setting] = []
            for key, new in fresh.items():
                old = current.get(key) or Setting.zero(key)
                if is_perceivable_change(old, new):
                    applied.append(new)

            if applied:
                updated = dict(current)
                for setting in applied:
                    updated[setting.key] = setting
                self._settings = MappingProxyType(updated)

            return applied
