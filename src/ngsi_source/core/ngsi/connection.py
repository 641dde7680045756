# ngsi_source/core/ngsi/connection.py
"""
Thin async NGSI-LD client for a context broker.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx

from ngsi_source.contracts.ngsi import (
    DEFAULT_CONTEXT,
    ConnectionOptions,
    QueryResult,
    SubscriptionDescriptor,
)
from ngsi_source.core.auth.provider import TokenProvider
from ngsi_source.core.errors import NgsiError
from ngsi_source.core.ngsi.proxy import NgsiProxy

logger = logging.getLogger(__name__)

ENTITIES_PATH = "/ngsi-ld/v1/entities"
SUBSCRIPTIONS_PATH = "/ngsi-ld/v1/subscriptions"
RESULTS_COUNT_HEADER = "NGSILD-Results-Count"

CONTEXT_LINK = (
    f'<{DEFAULT_CONTEXT[0]}>; rel="http://www.w3.org/ns/json-ld#context"; '
    'type="application/ld+json"'
)


def format_expiry(value: datetime) -> str:
    """ISO 8601 UTC timestamp with millisecond precision, e.g. ``2024-01-01T10:00:00.000Z``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (
        value.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("detail", "title", "description", "error"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {resp.status_code}"


class NgsiLdConnection:
    """HTTP client for the NGSI-LD API of a context broker.

    Contract::

        GET    /ngsi-ld/v1/entities?idPattern=&type=&q=&attrs=&limit=&offset=&options=count
        POST   /ngsi-ld/v1/subscriptions/
        PATCH  /ngsi-ld/v1/subscriptions/{id}   body: {expiresAt}
        DELETE /ngsi-ld/v1/subscriptions/{id}

    Notifications are received through an ``NgsiProxy``.
    """

    def __init__(
        self,
        options: ConnectionOptions,
        *,
        timeout: float = 30.0,
        token_provider: TokenProvider | None = None,
        proxy: NgsiProxy | None = None,
    ) -> None:
        self._options = options
        self._base = options.url.rstrip("/")
        self._timeout = timeout
        self._token_provider = token_provider
        self._proxy = proxy if proxy is not None else NgsiProxy(options.proxy_url, timeout=timeout)
        # subscription id -> proxy callback id
        self._callbacks: dict[str, str] = {}

    @property
    def options(self) -> ConnectionOptions:
        return self._options

    @property
    def proxy(self) -> NgsiProxy:
        return self._proxy

    async def _headers(self) -> dict[str, str]:
        headers = dict(self._options.request_headers)
        if self._options.use_user_fiware_token and self._token_provider is not None:
            token = await self._token_provider.get_token()
            headers["X-Auth-Token"] = token.access_token
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        content_type: str = "application/json",
        link: bool = True,
    ) -> httpx.Response:
        headers = await self._headers()
        headers["Accept"] = "application/json"
        if link:
            headers["Link"] = CONTEXT_LINK

        content = None
        if body is not None:
            content = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = content_type

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                resp = await client.request(
                    method,
                    f"{self._base}{path}",
                    params=params,
                    content=content,
                    headers=headers,
                )
                resp.raise_for_status()
            except httpx.HTTPStatusError as ex:
                logger.warning(
                    "Request failed status=%s reason=%s",
                    ex.response.status_code,
                    ex.response.text,
                )
                raise NgsiError(
                    _error_message(ex.response), status_code=ex.response.status_code
                ) from ex
            except httpx.HTTPError as ex:
                logger.warning("Request %s %s failed: %s", method, path, ex)
                raise NgsiError(str(ex) or type(ex).__name__) from ex

        return resp

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
    ) -> QueryResult:
        params: dict[str, Any] = {"idPattern": id_pattern, "limit": limit, "offset": offset}
        if type is not None:
            params["type"] = type
        if q is not None:
            params["q"] = q
        if attrs is not None:
            params["attrs"] = attrs
        if count:
            params["options"] = "count"
        # NGSI-LD has no metadata projection; ``metadata`` only applies to notifications

        resp = await self._request("GET", ENTITIES_PATH, params=params)
        results = resp.json()
        if not isinstance(results, list):
            raise NgsiError("Unexpected entities response", status_code=resp.status_code)

        total = resp.headers.get(RESULTS_COUNT_HEADER)
        try:
            total_count = int(total) if total is not None else len(results)
        except ValueError:
            total_count = len(results)

        return QueryResult(results=results, count=total_count)

    async def create_subscription(self, descriptor: SubscriptionDescriptor) -> str:
        callback_id, endpoint = await self._proxy.register_callback(descriptor.callback)

        try:
            resp = await self._request(
                "POST",
                f"{SUBSCRIPTIONS_PATH}/",
                body=descriptor.to_payload(endpoint),
                content_type="application/ld+json",
                link=False,
            )
        except NgsiError:
            await self._proxy.unregister_callback(callback_id)
            raise

        location = resp.headers.get("Location", "")
        subscription_id = location.rstrip("/").rsplit("/", 1)[-1] if location else descriptor.id
        self._callbacks[subscription_id] = callback_id
        return subscription_id

    async def update_subscription(self, subscription_id: str, *, expires: datetime) -> None:
        await self._request(
            "PATCH",
            f"{SUBSCRIPTIONS_PATH}/{quote(subscription_id, safe='')}",
            body={"expiresAt": format_expiry(expires)},
        )

    async def delete_subscription(self, subscription_id: str) -> None:
        try:
            await self._request(
                "DELETE", f"{SUBSCRIPTIONS_PATH}/{quote(subscription_id, safe='')}"
            )
        finally:
            callback_id = self._callbacks.pop(subscription_id, None)
            if callback_id is not None:
                await self._proxy.unregister_callback(callback_id)

    async def close(self) -> None:
        await self._proxy.close()
