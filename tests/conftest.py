# tests/conftest.py
from __future__ import annotations

from datetime import datetime
from typing import Any

import pytest

from ngsi_source.adapters.memory import MemoryOutputs, StaticPreferences
from ngsi_source.contracts.ngsi import ConnectionOptions, QueryResult, SubscriptionDescriptor


def make_entity(index: int) -> dict[str, Any]:
    return {
        "id": f"urn:ngsi-ld:Room:{index}",
        "type": "Room",
        "temperature": {"type": "Property", "value": 20 + index},
    }


class FakeNgsiClient:
    """Records every call; serves ``total`` generated entities."""

    def __init__(self, total: int = 0) -> None:
        self.total = total
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.descriptors: list[SubscriptionDescriptor] = []
        self.subscription_error: Exception | None = None
        self.query_error: Exception | None = None
        self.update_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.close_count = 0
        self._next_id = 0

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def queries(self) -> list[dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == "query"]

    async def query_entities(self, **kwargs: Any) -> QueryResult:
        self.calls.append(("query", kwargs))
        if self.query_error is not None:
            raise self.query_error
        offset, limit = kwargs["offset"], kwargs["limit"]
        size = max(0, min(limit, self.total - offset))
        return QueryResult(
            results=[make_entity(offset + i) for i in range(size)],
            count=self.total,
        )

    async def create_subscription(self, descriptor: SubscriptionDescriptor) -> str:
        self.calls.append(("create", {"descriptor": descriptor}))
        self.descriptors.append(descriptor)
        if self.subscription_error is not None:
            raise self.subscription_error
        self._next_id += 1
        return f"urn:ngsi-ld:Subscription:{self._next_id}"

    async def update_subscription(self, subscription_id: str, *, expires: datetime) -> None:
        self.calls.append(("update", {"id": subscription_id, "expires": expires}))
        if self.update_error is not None:
            raise self.update_error

    async def delete_subscription(self, subscription_id: str) -> None:
        self.calls.append(("delete", {"id": subscription_id}))
        if self.delete_error is not None:
            raise self.delete_error

    async def close(self) -> None:
        self.close_count += 1


class FakeConnectionFactory:
    def __init__(self, client: FakeNgsiClient) -> None:
        self.client = client
        self.options: list[ConnectionOptions] = []

    def __call__(self, options: ConnectionOptions) -> FakeNgsiClient:
        self.options.append(options)
        return self.client


@pytest.fixture
def ngsi_client() -> FakeNgsiClient:
    return FakeNgsiClient()


@pytest.fixture
def factory(ngsi_client: FakeNgsiClient) -> FakeConnectionFactory:
    return FakeConnectionFactory(ngsi_client)


@pytest.fixture
def preferences() -> StaticPreferences:
    return StaticPreferences({"ngsi_server": "http://orion:1026", "ngsi_proxy": "http://proxy"})


@pytest.fixture
def outputs() -> MemoryOutputs:
    return MemoryOutputs()
