# ngsi_source/contracts/host.py
"""
Host platform contracts.

The operator never talks to the hosting dashboard directly. Preferences,
output wiring and lifecycle notifications are provided through these
protocols so any host adapter (in-memory, MQTT, HTTP) can drive it.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Protocol, runtime_checkable

ENTITY_OUTPUT = "entityOutput"
NORMALIZED_OUTPUT = "normalizedOutput"
METADATA_OUTPUT = "ngsimetadata"

PreferencesCallback = Callable[[Mapping[str, Any]], Awaitable[None]]
StatusCallback = Callable[[], Awaitable[None]]
UnloadCallback = Callable[[], Awaitable[None]]


@runtime_checkable
class PreferenceStore(Protocol):
    """Key-value preference storage with change notifications."""

    def get(self, name: str) -> Any: ...

    def register_callback(self, callback: PreferencesCallback) -> None:
        """Register a coroutine invoked with the changed values."""
        ...


@runtime_checkable
class OutputWiring(Protocol):
    """Output endpoints of the operator."""

    def is_connected(self, name: str) -> bool: ...

    async def push(self, name: str, payload: Any) -> None: ...

    def register_status_callback(self, callback: StatusCallback) -> None:
        """Register a coroutine invoked when output connections change."""
        ...


@runtime_checkable
class HostLifecycle(Protocol):
    def register_unload_callback(self, callback: UnloadCallback) -> None: ...
