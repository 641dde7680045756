# ngsi_source/contracts/ngsi.py
"""
NGSI transport contracts.

The operator depends on these types only; ``NgsiLdConnection`` is the
default implementation but tests and other hosts may inject their own
client through a ``ConnectionFactory``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

DEFAULT_SUBSCRIPTION_ID = "urn:ngsi-ld:Subscription:ngsi-ld-source-operator"

DEFAULT_CONTEXT: tuple[str, ...] = (
    "https://fiware.github.io/data-models/context.jsonld",
    "https://uri.etsi.org/ngsi-ld/v1/ngsi-ld-core-context.jsonld",
)

Entity = dict[str, Any]
NotificationCallback = Callable[[dict[str, Any]], Awaitable[None]]


@dataclass(frozen=True)
class ConnectionOptions:
    """
    Everything needed to open a connection to a context broker.

    Attributes:
        url: Context broker base URL.
        proxy_url: NGSI proxy used to receive notifications.
        request_headers: Extra headers sent on every request
            (tenant, service path, OAuth delegation).
        use_user_fiware_token: Forward the current user's token.
    """

    url: str
    proxy_url: str = ""
    request_headers: dict[str, str] = field(default_factory=dict)
    use_user_fiware_token: bool = False


@dataclass(frozen=True)
class EntityQuery:
    """Filters shared by every page of an entity query."""

    id_pattern: str = ".*"
    type: str | None = None
    q: str | None = None
    attrs: str | None = None
    metadata: str | None = None


@dataclass
class QueryResult:
    results: list[Entity] = field(default_factory=list)
    count: int = 0


@dataclass(frozen=True)
class EntitySelector:
    id_pattern: str = ".*"
    type: str | None = None

    def to_dict(self) -> dict[str, str]:
        data = {"idPattern": self.id_pattern}
        if self.type is not None:
            data["type"] = self.type
        return data


@dataclass(frozen=True)
class SubscriptionCondition:
    """
    What makes the broker send a notification.

    ``attrs`` lists the monitored attributes; an empty list means any
    attribute. ``q`` is a query expression entities must satisfy.
    """

    attrs: list[str] | None = None
    q: str | None = None


@dataclass
class SubscriptionDescriptor:
    """Transport-agnostic description of a subscription to create."""

    entities: list[EntitySelector]
    callback: NotificationCallback
    condition: SubscriptionCondition = field(default_factory=SubscriptionCondition)
    notification_attrs: list[str] | None = None
    notification_metadata: list[str] | None = None
    accept: str = "application/json"
    id: str = DEFAULT_SUBSCRIPTION_ID
    context: list[str] = field(default_factory=lambda: list(DEFAULT_CONTEXT))

    def to_payload(self, endpoint_uri: str) -> dict[str, Any]:
        """Render the NGSI-LD subscription body for the given endpoint."""
        notification: dict[str, Any] = {
            "endpoint": {"uri": endpoint_uri, "accept": self.accept},
        }
        if self.notification_attrs is not None:
            notification["attributes"] = list(self.notification_attrs)
        if self.notification_metadata is not None:
            notification["metadata"] = list(self.notification_metadata)

        payload: dict[str, Any] = {
            "id": self.id,
            "type": "Subscription",
            "entities": [e.to_dict() for e in self.entities],
            "notification": notification,
            "@context": list(self.context),
        }
        if self.condition.attrs:
            payload["watchedAttributes"] = list(self.condition.attrs)
        if self.condition.q is not None:
            payload["q"] = self.condition.q
        return payload


@runtime_checkable
class NgsiClient(Protocol):
    """Asynchronous NGSI-LD client used by the operator."""

    async def query_entities(
        self,
        *,
        id_pattern: str = ".*",
        type: str | None = None,
        count: bool = False,
        limit: int = 100,
        offset: int = 0,
        q: str | None = None,
        attrs: str | None = None,
        metadata: str | None = None,
    ) -> QueryResult: ...

    async def create_subscription(self, descriptor: SubscriptionDescriptor) -> str:
        """Create the subscription and return the broker-assigned id."""
        ...

    async def update_subscription(self, subscription_id: str, *, expires: datetime) -> None: ...

    async def delete_subscription(self, subscription_id: str) -> None: ...

    async def close(self) -> None: ...


ConnectionFactory = Callable[[ConnectionOptions], NgsiClient]
