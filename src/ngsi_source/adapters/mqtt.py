# ngsi_source/adapters/mqtt.py
"""
Output wiring over MQTT.

Every push is published as JSON on ``{topic_prefix}/{output}``, e.g.
``ngsi-source/entityOutput``.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable
from uuid import uuid4

import aiomqtt

from ngsi_source.adapters.memory import MemoryOutputs
from ngsi_source.contracts.host import ENTITY_OUTPUT, METADATA_OUTPUT, NORMALIZED_OUTPUT

logger = logging.getLogger(__name__)


@dataclass
class MqttConfig:
    """
    Configuration for the MQTT connection.

    Attributes:
        host: MQTT broker hostname.
        port: MQTT broker port.
        client_id: Unique client identifier. Auto-generated if not provided.
        username: Optional authentication username.
        password: Optional authentication password.
        keepalive: Keepalive interval in seconds.
        topic_prefix: Prefix for every output topic.
        qos: QoS used for publishing.
    """

    host: str = "localhost"
    port: int = 1883
    client_id: str | None = None
    username: str | None = None
    password: str | None = None
    keepalive: int = 60
    topic_prefix: str = "ngsi-source"
    qos: int = 1

    def __post_init__(self):
        if self.client_id is None:
            self.client_id = f"ngsi-source-{uuid4().hex[:8]}"


class MqttOutputs(MemoryOutputs):
    """Output wiring that also publishes pushes to an MQTT broker."""

    def __init__(
        self,
        config: MqttConfig,
        connected: Iterable[str] = (ENTITY_OUTPUT, NORMALIZED_OUTPUT, METADATA_OUTPUT),
        history: int | None = 100,
    ) -> None:
        super().__init__(connected=connected, history=history)
        self._config = config
        self._client: aiomqtt.Client | None = None
        self._lock = asyncio.Lock()
        self._publish_count = 0
        self._error_count = 0

    @property
    def is_open(self) -> bool:
        return self._client is not None

    @property
    def stats(self) -> dict[str, int]:
        return {"published": self._publish_count, "errors": self._error_count}

    def topic_for(self, name: str) -> str:
        prefix = self._config.topic_prefix.rstrip("/")
        return f"{prefix}/{name}" if prefix else name

    async def open(self) -> None:
        async with self._lock:
            if self._client is not None:
                return
            logger.info(
                "Connecting to MQTT broker at %s:%d", self._config.host, self._config.port
            )
            client = aiomqtt.Client(
                hostname=self._config.host,
                port=self._config.port,
                identifier=self._config.client_id,
                username=self._config.username,
                password=self._config.password,
                keepalive=self._config.keepalive,
            )
            try:
                await client.__aenter__()
            except Exception as exc:
                logger.error("Failed to connect to MQTT broker: %s", exc)
                raise
            self._client = client

    async def close(self) -> None:
        async with self._lock:
            if self._client is None:
                return
            try:
                await self._client.__aexit__(None, None, None)
            except Exception as exc:
                logger.warning("Error during MQTT disconnect: %s", exc)
            finally:
                self._client = None
            logger.info("Disconnected from MQTT broker")

    async def push(self, name: str, payload: Any) -> None:
        await super().push(name, payload)
        if self._client is None:
            logger.warning("MQTT not connected, dropping push to '%s'", name)
            return

        topic = self.topic_for(name)
        data = json.dumps(payload, default=str).encode("utf-8")
        try:
            await self._client.publish(topic, payload=data, qos=self._config.qos)
        except Exception as exc:
            self._error_count += 1
            logger.error("Failed to publish to %s: %s", topic, exc)
            return
        self._publish_count += 1
        logger.debug("Published to %s (size=%d bytes)", topic, len(data))
