# ngsi_source/core/operator.py
"""
NGSI source operator.

Keeps the operator outputs synchronized with a context broker:

- On start, and whenever the preferences change, a connection is opened
  and either a subscription is created (monitored attributes or a query
  filter configured) or the entities are only polled once.
- Existing entities are always fetched through a paginated query, since
  subscriptions do not replay history.
- Subscriptions are renewed periodically and deleted on teardown.

Every failure ends up in the log; nothing is raised to the host.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping

from pydantic import ValidationError

from ngsi_source.contracts.host import (
    ENTITY_OUTPUT,
    METADATA_OUTPUT,
    NORMALIZED_OUTPUT,
    HostLifecycle,
    OutputWiring,
    PreferenceStore,
)
from ngsi_source.contracts.ngsi import (
    ConnectionFactory,
    NgsiClient,
    SubscriptionCondition,
    SubscriptionDescriptor,
)
from ngsi_source.core.config import settings
from ngsi_source.core.entities import normalize_to_key_values
from ngsi_source.core.errors import ProxyConnectionError
from ngsi_source.core.preferences import SourceConfig
from ngsi_source.core.query import QueryTask

logger = logging.getLogger(__name__)


class OperatorState(str, Enum):
    UNCONFIGURED = "unconfigured"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    POLLING = "polling"
    TEARING_DOWN = "tearing_down"
    SHUTDOWN = "shutdown"


class NgsiSourceOperator:
    """
    Subscription manager bound to the host lifecycle.

    Example:
        operator = NgsiSourceOperator(
            preferences=prefs,
            outputs=wiring,
            connection_factory=lambda options: NgsiLdConnection(options),
        )
        await operator.start()
        ...
        await operator.stop()
    """

    def __init__(
        self,
        *,
        preferences: PreferenceStore,
        outputs: OutputWiring,
        connection_factory: ConnectionFactory,
        lifecycle: HostLifecycle | None = None,
        page_size: int | None = None,
        max_pages: int | None = None,
        refresh_interval: float | None = None,
        subscription_ttl: float | None = None,
    ) -> None:
        self._preferences = preferences
        self._outputs = outputs
        self._connection_factory = connection_factory
        self._lifecycle = lifecycle

        self._page_size = page_size or settings.page_size
        self._max_pages = max_pages or settings.max_pages
        self._refresh_interval = (
            refresh_interval
            if refresh_interval is not None
            else settings.refresh_interval_seconds
        )
        self._subscription_ttl = timedelta(
            seconds=subscription_ttl
            if subscription_ttl is not None
            else settings.subscription_ttl_seconds
        )

        self._connection: NgsiClient | None = None
        self._subscription_id: str | None = None
        self._refresh_task: asyncio.Task | None = None
        self._query_task: QueryTask | None = None
        self._config: SourceConfig | None = None
        self._state = OperatorState.UNCONFIGURED

        # Serializes start, preference changes, wiring changes and unload
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> OperatorState:
        return self._state

    @property
    def connection(self) -> NgsiClient | None:
        return self._connection

    @property
    def subscription_id(self) -> str | None:
        return self._subscription_id

    @property
    def query_task(self) -> QueryTask | None:
        return self._query_task

    @property
    def config(self) -> SourceConfig | None:
        return self._config

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Register host callbacks, run the first setup and publish metadata."""
        self._preferences.register_callback(self.on_preferences_changed)
        self._outputs.register_status_callback(self.on_wiring_status_changed)
        if self._lifecycle is not None:
            self._lifecycle.register_unload_callback(self.stop)

        async with self._lock:
            await self.setup()

        await self.emit_metadata()

    async def stop(self) -> None:
        """Unload: abort the query and delete the subscription. No re-setup."""
        async with self._lock:
            if self._state is OperatorState.SHUTDOWN:
                return
            await self._teardown(unloading=True)
            self._state = OperatorState.SHUTDOWN
            logger.info("NGSI source stopped")

    async def on_preferences_changed(self, new_values: Mapping[str, Any]) -> None:
        async with self._lock:
            if self._state is OperatorState.SHUTDOWN:
                return
            logger.info("Preferences changed: %s", sorted(new_values))
            await self.emit_metadata()
            await self._teardown(unloading=False)
            await self.setup()

    async def on_wiring_status_changed(self) -> None:
        async with self._lock:
            if self._state is OperatorState.SHUTDOWN:
                return
            if self._connection is None:
                await self.setup()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    async def setup(self) -> None:
        """
        Open a connection and start synchronizing entities.

        Does nothing while no entity output is connected.
        """
        self._subscription_id = None
        await self._close_connection()

        if not (
            self._outputs.is_connected(ENTITY_OUTPUT)
            or self._outputs.is_connected(NORMALIZED_OUTPUT)
        ):
            logger.debug("No entity output connected, skipping setup")
            self._state = OperatorState.UNCONFIGURED
            return

        try:
            config = SourceConfig.from_preferences(self._preferences)
        except ValidationError as exc:
            logger.error("Invalid operator preferences: %s", exc)
            self._state = OperatorState.UNCONFIGURED
            return

        self._config = config
        self._state = OperatorState.CONNECTING
        connection = self._connection_factory(config.connection_options())
        self._connection = connection

        if not config.needs_subscription:
            self._state = OperatorState.POLLING
            self._start_query(connection, config)
            return

        descriptor = self._build_descriptor(config)
        try:
            subscription_id = await connection.create_subscription(descriptor)
        except ProxyConnectionError as exc:
            logger.error("Error connecting with the NGSI Proxy: %s", exc.cause_message)
            return
        except Exception as exc:
            logger.error(
                "Error creating subscription in the context broker server: %s", exc
            )
            return

        logger.info("Subscription created successfully (id: %s)", subscription_id)
        self._subscription_id = subscription_id
        self._state = OperatorState.SUBSCRIBED
        self._refresh_task = asyncio.create_task(
            self._refresh_loop(), name="ngsi-source-refresh"
        )
        self._start_query(connection, config)

    def _build_descriptor(self, config: SourceConfig) -> SubscriptionDescriptor:
        return SubscriptionDescriptor(
            entities=config.entity_selectors(),
            callback=self._on_notification,
            condition=SubscriptionCondition(
                attrs=config.monitored_attributes,
                q=config.q,
            ),
            notification_attrs=SourceConfig.split_list(config.attrs),
            notification_metadata=SourceConfig.split_list(config.metadata_filter),
        )

    def _start_query(self, connection: NgsiClient, config: SourceConfig) -> None:
        self._query_task = QueryTask(
            connection,
            config.entity_query(),
            on_page=self.deliver,
            page_size=self._page_size,
            max_pages=self._max_pages,
        ).start()

    async def _on_notification(self, notification: dict[str, Any]) -> None:
        await self.deliver(notification.get("data") or [])

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self) -> None:
        """Extend the expiry of the current subscription. Never raises."""
        if self._subscription_id is None or self._connection is None:
            return

        expires = datetime.now(timezone.utc) + self._subscription_ttl
        try:
            await self._connection.update_subscription(
                self._subscription_id, expires=expires
            )
        except Exception as exc:
            logger.error("Error refreshing current context broker subscription: %s", exc)
            return
        logger.info("Subscription refreshed successfully")

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self._refresh_interval)
            await self.refresh()

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------

    async def deliver(self, entities: list[dict[str, Any]]) -> None:
        """Push one batch of normalized entities to the connected outputs."""
        if self._outputs.is_connected(NORMALIZED_OUTPUT):
            await self._push(NORMALIZED_OUTPUT, entities)
        if self._outputs.is_connected(ENTITY_OUTPUT):
            await self._push(
                ENTITY_OUTPUT, [normalize_to_key_values(e) for e in entities]
            )

    async def emit_metadata(self) -> None:
        """Publish the current configuration on the metadata output."""
        if not self._outputs.is_connected(METADATA_OUTPUT):
            return
        try:
            snapshot = SourceConfig.from_preferences(self._preferences).metadata_snapshot()
        except ValidationError as exc:
            logger.error("Invalid operator preferences, metadata not published: %s", exc)
            return
        await self._push(METADATA_OUTPUT, snapshot)

    async def _push(self, name: str, payload: Any) -> None:
        try:
            await self._outputs.push(name, payload)
        except Exception:
            logger.exception("Error pushing data to output '%s'", name)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def _teardown(self, *, unloading: bool) -> None:
        self._state = OperatorState.TEARING_DOWN

        if self._refresh_task is not None:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None

        if self._query_task is not None:
            self._query_task.abort()
            self._query_task = None

        subscription_id = self._subscription_id
        # Forget the id before the broker confirms the deletion
        self._subscription_id = None

        if subscription_id is not None and self._connection is not None:
            try:
                await self._connection.delete_subscription(subscription_id)
            except Exception as exc:
                if unloading:
                    logger.error(
                        "Error cancelling current context broker subscription: %s", exc
                    )
                else:
                    logger.warning("Error cancelling old subscription: %s", exc)
            else:
                if unloading:
                    logger.info("Subscription cancelled successfully")
                else:
                    logger.info("Old subscription has been cancelled successfully")

        await self._close_connection()

    async def _close_connection(self) -> None:
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            await connection.close()
        except Exception as exc:
            logger.warning("Error closing NGSI connection: %s", exc)
