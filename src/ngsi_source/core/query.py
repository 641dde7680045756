# ngsi_source/core/query.py
"""
Paginated retrieval of the entities currently stored in the broker.

Subscriptions only notify future changes, so every cycle starts by paging
through the existing entities. The fetch runs as an ``asyncio.Task`` owned
by a ``QueryTask`` so the operator can abort it when its configuration
changes.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from ngsi_source.contracts.ngsi import EntityQuery, NgsiClient

logger = logging.getLogger(__name__)

PageHandler = Callable[[list[dict[str, Any]]], Awaitable[None]]

DEFAULT_PAGE_SIZE = 100
DEFAULT_MAX_PAGES = 100


class QueryTask:
    """
    Cancellable paginated entity query.

    Pages are handed to ``on_page`` as soon as they arrive. The next page is
    requested only while fewer than ``max_pages`` pages have been fetched and
    the broker reports more entities than those already covered.

    Example:
        task = QueryTask(client, EntityQuery(type="Room"), on_page=deliver).start()
        ...
        task.abort()  # no further pages are delivered
    """

    def __init__(
        self,
        client: NgsiClient,
        query: EntityQuery,
        *,
        on_page: PageHandler,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
    ) -> None:
        self._client = client
        self._query = query
        self._on_page = on_page
        self._page_size = page_size
        self._max_pages = max_pages

        self._task: asyncio.Task | None = None
        self._aborted = False
        self._requests = 0

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def requests(self) -> int:
        """Number of page requests issued so far."""
        return self._requests

    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def start(self) -> "QueryTask":
        if self._task is not None:
            raise RuntimeError("Query task already started")
        self._task = asyncio.create_task(self._run(), name="ngsi-source-query")
        return self

    def abort(self) -> None:
        """
        Stop the pagination.

        Takes effect immediately for delivery: once this returns no more pages
        reach ``on_page``. A request already sent to the broker is not
        awaited.
        """
        self._aborted = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> None:
        """Wait until the task finishes, fails or is aborted."""
        if self._task is None:
            return
        await asyncio.wait({self._task})

    async def _run(self) -> None:
        page = 0
        while not self._aborted:
            self._requests += 1
            try:
                response = await self._client.query_entities(
                    id_pattern=self._query.id_pattern,
                    type=self._query.type,
                    count=True,
                    limit=self._page_size,
                    offset=page * self._page_size,
                    q=self._query.q,
                    attrs=self._query.attrs,
                    metadata=self._query.metadata,
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("Error retrieving initial values: %s", exc)
                return

            if self._aborted:
                return

            try:
                await self._on_page(response.results)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error delivering initial values")
                return

            page += 1
            if page >= self._max_pages or page * self._page_size >= response.count:
                logger.debug(
                    "Initial query finished after %d page(s) (count=%s)",
                    page,
                    response.count,
                )
                return
