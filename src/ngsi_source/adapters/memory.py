# ngsi_source/adapters/memory.py
"""
In-process host adapters.

``StaticPreferences`` and ``MemoryOutputs`` implement the host contracts
without a dashboard platform: the runtime service edits preferences over
HTTP, and tests drive connections and unload by hand.
"""
from __future__ import annotations

import logging
from collections import deque
from typing import Any, Iterable, Mapping

from ngsi_source.contracts.host import PreferencesCallback, StatusCallback, UnloadCallback
from ngsi_source.core.loader import load_preferences
from ngsi_source.core.preferences import PREFERENCE_DEFAULTS

logger = logging.getLogger(__name__)


class StaticPreferences:
    """Dict-backed preference store."""

    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        values = dict(values or {})
        unknown = set(values) - set(PREFERENCE_DEFAULTS)
        if unknown:
            raise KeyError(f"Unknown preference(s): {sorted(unknown)}")
        self._values: dict[str, Any] = {**PREFERENCE_DEFAULTS, **values}
        self._callbacks: list[PreferencesCallback] = []

    @classmethod
    def from_yaml(cls, patterns: Iterable[str]) -> "StaticPreferences":
        return cls(load_preferences(patterns))

    def get(self, name: str) -> Any:
        return self._values[name]

    def as_dict(self) -> dict[str, Any]:
        return dict(self._values)

    def register_callback(self, callback: PreferencesCallback) -> None:
        self._callbacks.append(callback)

    async def update(self, changes: Mapping[str, Any]) -> dict[str, Any]:
        """
        Apply a partial update and notify callbacks with the changed values.

        Returns:
            The preferences whose value actually changed.

        Raises:
            KeyError: If an unknown preference is given.
        """
        unknown = set(changes) - set(PREFERENCE_DEFAULTS)
        if unknown:
            raise KeyError(f"Unknown preference(s): {sorted(unknown)}")

        changed = {k: v for k, v in changes.items() if self._values.get(k) != v}
        if not changed:
            return {}

        self._values.update(changed)
        for callback in list(self._callbacks):
            await callback(changed)
        return changed


class MemoryOutputs:
    """
    Output wiring that records every push.

    Connections and unload are triggered explicitly with ``connect()``,
    ``disconnect()`` and ``unload()``.
    """

    def __init__(self, connected: Iterable[str] = (), history: int | None = None) -> None:
        self._connected: set[str] = set(connected)
        self.events: deque[tuple[str, Any]] = deque(maxlen=history)
        self._status_callbacks: list[StatusCallback] = []
        self._unload_callbacks: list[UnloadCallback] = []

    @property
    def connected(self) -> set[str]:
        return set(self._connected)

    def is_connected(self, name: str) -> bool:
        return name in self._connected

    async def push(self, name: str, payload: Any) -> None:
        self.events.append((name, payload))

    def pushed(self, name: str) -> list[Any]:
        return [payload for output, payload in self.events if output == name]

    def register_status_callback(self, callback: StatusCallback) -> None:
        self._status_callbacks.append(callback)

    def register_unload_callback(self, callback: UnloadCallback) -> None:
        self._unload_callbacks.append(callback)

    async def connect(self, *names: str) -> None:
        self._connected.update(names)
        await self._notify_status()

    async def disconnect(self, *names: str) -> None:
        self._connected.difference_update(names)
        await self._notify_status()

    async def unload(self) -> None:
        for callback in list(self._unload_callbacks):
            await callback()

    async def _notify_status(self) -> None:
        for callback in list(self._status_callbacks):
            await callback()
