# ngsi_source/core/ngsi/proxy.py
"""
Client for the NGSI proxy.

The operator is not reachable from the context broker, so notifications
go through an NGSI proxy: the proxy exposes a public callback URL per
subscription and forwards every notification over a server-sent event
stream.

Proxy contract::

    POST   /eventsource              -> {connection_id}
    GET    /eventsource/{id}         -> text/event-stream
    POST   /callbacks                 body {connection_id} -> {callback_id, url}
    DELETE /callbacks/{callback_id}

Notifications arrive as ``notification`` events whose data is
``{"callback_id": ..., "payload": "<json>"}``.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator

import httpx

from ngsi_source.contracts.ngsi import NotificationCallback
from ngsi_source.core.errors import ProxyConnectionError

logger = logging.getLogger(__name__)


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[tuple[str, str]]:
    """Parse a server-sent event stream into ``(event, data)`` pairs."""
    event = "message"
    data: list[str] = []
    async for raw in lines:
        line = raw.rstrip("\r\n")
        if not line:
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)
    if data:
        yield event, "\n".join(data)


class NgsiProxy:
    """Event-source connection to an NGSI proxy."""

    def __init__(self, base_url: str, *, timeout: float = 30.0) -> None:
        self._base = base_url.rstrip("/")
        self._timeout = timeout

        self._client: httpx.AsyncClient | None = None
        self._connection_id: str | None = None
        self._listener_task: asyncio.Task | None = None
        self._callbacks: dict[str, NotificationCallback] = {}
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connection_id is not None

    @property
    def connection_id(self) -> str | None:
        return self._connection_id

    async def connect(self) -> httpx.AsyncClient:
        """Open the event-source connection if needed and return its client."""
        async with self._lock:
            if self._client is not None:
                return self._client
            if not self._base:
                raise ProxyConnectionError("NGSI proxy URL is not configured")

            client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout, read=None))
            try:
                resp = await client.post(f"{self._base}/eventsource")
                resp.raise_for_status()
                connection_id = self._parse_connection_id(resp)
            except (httpx.HTTPError, ValueError) as exc:
                await client.aclose()
                raise ProxyConnectionError(
                    "Error creating the event source connection", cause=exc
                ) from exc

            self._client = client
            self._connection_id = connection_id
            self._listener_task = asyncio.create_task(
                self._listen(client, f"{self._base}/eventsource/{connection_id}"),
                name="ngsi-proxy-eventsource",
            )
            logger.info("Connected to NGSI proxy %s (connection=%s)", self._base, connection_id)
            return client

    async def register_callback(self, callback: NotificationCallback) -> tuple[str, str]:
        """
        Allocate a callback on the proxy.

        Returns:
            ``(callback_id, url)`` where ``url`` is the public endpoint to use
            as the subscription notification URI.
        """
        client = await self.connect()

        try:
            resp = await client.post(
                f"{self._base}/callbacks",
                json={"connection_id": self._connection_id},
            )
            resp.raise_for_status()
            data = resp.json()
            callback_id = str(data["callback_id"])
            url = str(data["url"])
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            raise ProxyConnectionError("Error creating a proxy callback", cause=exc) from exc

        self._callbacks[callback_id] = callback
        logger.debug("Registered proxy callback %s -> %s", callback_id, url)
        return callback_id, url

    async def unregister_callback(self, callback_id: str) -> None:
        self._callbacks.pop(callback_id, None)
        if not self._base:
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                resp = await client.delete(f"{self._base}/callbacks/{callback_id}")
                resp.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning("Error removing proxy callback %s: %s", callback_id, exc)

    async def close(self) -> None:
        if self._listener_task is not None:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None

        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

        self._connection_id = None
        self._callbacks.clear()

    # ------------------------------------------------------------------
    # Event stream
    # ------------------------------------------------------------------

    async def _listen(self, client: httpx.AsyncClient, url: str) -> None:
        try:
            async with client.stream(
                "GET", url, headers={"Accept": "text/event-stream"}
            ) as resp:
                resp.raise_for_status()
                async for event, data in iter_sse_events(resp.aiter_lines()):
                    await self.dispatch(event, data)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("NGSI proxy event source failed: %s", exc)
        else:
            logger.warning("NGSI proxy event source closed by the server")

        # Forget the dead stream so the next registration reconnects
        await self._drop(client)

    async def _drop(self, client: httpx.AsyncClient) -> None:
        if self._client is client:
            self._client = None
            self._connection_id = None
            self._listener_task = None
        await client.aclose()

    async def dispatch(self, event: str, data: str) -> None:
        """Route one event-source message to its registered callback."""
        if event != "notification":
            logger.debug("Ignoring NGSI proxy event '%s'", event)
            return

        try:
            message = json.loads(data)
            payload: Any = message.get("payload")
            if isinstance(payload, str):
                payload = json.loads(payload)
        except (ValueError, AttributeError) as exc:
            logger.warning("Malformed NGSI proxy notification: %s", exc)
            return

        callback = self._callbacks.get(str(message.get("callback_id")))
        if callback is None:
            logger.debug("Notification for unknown callback %s", message.get("callback_id"))
            return

        try:
            await callback(payload if isinstance(payload, dict) else {})
        except Exception:
            logger.exception("Notification handler failed")

    @staticmethod
    def _parse_connection_id(resp: httpx.Response) -> str:
        if resp.content:
            data = resp.json()
            if isinstance(data, dict) and data.get("connection_id"):
                return str(data["connection_id"])
        location = resp.headers.get("Location", "")
        if location:
            return location.rstrip("/").rsplit("/", 1)[-1]
        raise ValueError("NGSI proxy did not return a connection id")
