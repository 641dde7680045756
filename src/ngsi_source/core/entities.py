# ngsi_source/core/entities.py
"""Entity representation helpers."""
from __future__ import annotations

from typing import Any

_VERBATIM_KEYS = frozenset({"id", "type"})


def normalize_to_key_values(entity: dict[str, Any]) -> dict[str, Any]:
    """
    Flatten a normalized entity into key-value form.

    ``id`` and ``type`` are copied as they are; every other attribute is
    replaced by the ``value`` of its envelope. Only meant for broker-native
    (normalized) entities.

    Example:
        >>> normalize_to_key_values(
        ...     {"id": "urn:Room:1", "type": "Room",
        ...      "temperature": {"type": "Property", "value": 21.5}}
        ... )
        {'id': 'urn:Room:1', 'type': 'Room', 'temperature': 21.5}
    """
    result: dict[str, Any] = {}
    for key, attribute in entity.items():
        if key in _VERBATIM_KEYS:
            result[key] = attribute
        elif isinstance(attribute, dict):
            result[key] = attribute.get("value")
        else:
            result[key] = None
    return result
