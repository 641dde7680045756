# ngsi_source/main.py
"""
NGSI source application factory.

Hosts one ``NgsiSourceOperator`` inside a FastAPI process: the lifespan
starts the operator and unloads it on shutdown, preferences are loaded from
YAML and edited over HTTP, and outputs go to MQTT when enabled.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ngsi_source import __version__
from ngsi_source.adapters.memory import MemoryOutputs, StaticPreferences
from ngsi_source.adapters.mqtt import MqttConfig, MqttOutputs
from ngsi_source.api.routes import router
from ngsi_source.contracts.host import ENTITY_OUTPUT, METADATA_OUTPUT, NORMALIZED_OUTPUT
from ngsi_source.contracts.ngsi import ConnectionFactory, ConnectionOptions, NgsiClient
from ngsi_source.core.auth.provider import StaticTokenProvider
from ngsi_source.core.config import settings
from ngsi_source.core.logging import configure_logging
from ngsi_source.core.ngsi.connection import NgsiLdConnection
from ngsi_source.core.operator import NgsiSourceOperator

logger = logging.getLogger(__name__)


# -- Helpers -------------------------------------------------------------------


def default_connection_factory() -> ConnectionFactory:
    token_provider = (
        StaticTokenProvider(settings.fiware_token) if settings.fiware_token else None
    )

    def factory(options: ConnectionOptions) -> NgsiClient:
        return NgsiLdConnection(
            options,
            timeout=settings.http_timeout,
            token_provider=token_provider,
        )

    return factory


def _load_preferences() -> StaticPreferences:
    try:
        return StaticPreferences.from_yaml(settings.preferences_config_paths)
    except Exception:
        logger.exception("Failed to load preferences")
        raise


def _build_outputs() -> MemoryOutputs:
    if not settings.mqtt_enabled:
        return MemoryOutputs(
            connected=(ENTITY_OUTPUT, NORMALIZED_OUTPUT, METADATA_OUTPUT),
            history=100,
        )
    return MqttOutputs(
        MqttConfig(
            host=settings.mqtt_host,
            port=settings.mqtt_port,
            client_id=settings.mqtt_client_id,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
            topic_prefix=settings.mqtt_topic_prefix,
        )
    )


# -- Lifespan ------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    operator: NgsiSourceOperator = app.state.operator
    outputs = app.state.outputs

    if isinstance(outputs, MqttOutputs):
        try:
            await outputs.open()
        except Exception:
            logger.exception("MQTT output unavailable, pushes will only be kept in memory")

    await operator.start()
    logger.info("NGSI source started (state=%s)", operator.state.value)

    yield

    await operator.stop()

    if isinstance(outputs, MqttOutputs):
        await outputs.close()


# -- Application factory -------------------------------------------------------


def create_app(
    *,
    preferences: StaticPreferences | None = None,
    outputs: MemoryOutputs | None = None,
    connection_factory: ConnectionFactory | None = None,
) -> FastAPI:
    """Build and wire the NGSI source FastAPI application."""
    configure_logging(settings.log_level, json=settings.log_json)
    logger.info("Creating NGSI source application (env=%s)", settings.app_env)

    preferences = preferences if preferences is not None else _load_preferences()
    outputs = outputs if outputs is not None else _build_outputs()

    operator = NgsiSourceOperator(
        preferences=preferences,
        outputs=outputs,
        connection_factory=connection_factory or default_connection_factory(),
    )

    app = FastAPI(
        title="NGSI Source",
        version=__version__,
        description="Keeps dashboard outputs in sync with an NGSI-LD context broker",
        lifespan=lifespan,
    )
    app.state.preferences = preferences
    app.state.outputs = outputs
    app.state.operator = operator
    app.include_router(router)

    return app


def run() -> None:
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
