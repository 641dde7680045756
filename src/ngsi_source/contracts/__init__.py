"""Public contracts for the NGSI source operator."""
from ngsi_source.contracts.host import (
    ENTITY_OUTPUT,
    METADATA_OUTPUT,
    NORMALIZED_OUTPUT,
    HostLifecycle,
    OutputWiring,
    PreferenceStore,
)
from ngsi_source.contracts.ngsi import (
    DEFAULT_CONTEXT,
    ConnectionFactory,
    ConnectionOptions,
    EntityQuery,
    EntitySelector,
    NgsiClient,
    QueryResult,
    SubscriptionCondition,
    SubscriptionDescriptor,
)

__all__ = [
    "ENTITY_OUTPUT", "METADATA_OUTPUT", "NORMALIZED_OUTPUT",
    "HostLifecycle", "OutputWiring", "PreferenceStore",
    "DEFAULT_CONTEXT",
    "ConnectionFactory", "ConnectionOptions",
    "EntityQuery", "EntitySelector",
    "NgsiClient", "QueryResult",
    "SubscriptionCondition", "SubscriptionDescriptor",
]
