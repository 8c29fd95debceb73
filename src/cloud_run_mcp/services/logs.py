"""Logs-related services.

Cloud Logging returns a service's logs one bounded page at a time; these
services follow the continuation token until the source is exhausted.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger as log

from cloud_run_mcp.client import Client, get_client
from cloud_run_mcp.types import LogPage


class PageFetchError(Exception):
    """Raised when fetching one page of logs fails."""

    def __init__(self, page: int, cause: BaseException):
        self.page = page
        self.cause = cause
        super().__init__(str(cause) or type(cause).__name__)


PageFetcher = Callable[[str, str, str, Any], Awaitable[LogPage]]


class LogAggregator:
    """Concatenate every page of a service's logs into a single text."""

    def __init__(self, fetch_page: PageFetcher) -> None:
        self.fetch_page = fetch_page

    async def fetch_all(self, project: str, region: str, service: str) -> str:
        """Fetch pages in order until no continuation token is returned.

        Raises:
            PageFetchError: If any page fails; nothing fetched so far is returned
        """
        blocks: list[str] = []
        request_options: dict[str, Any] | None = None
        page = 0

        while True:
            page += 1
            try:
                response = await self.fetch_page(project, region, service, request_options)
            except Exception as e:
                log.error(f"Fetching log page {page} for service '{service}' failed: {e}")
                raise PageFetchError(page, e) from e

            if response.logs:
                blocks.append(response.logs)

            request_options = response.request_options
            if request_options is None:
                break

        log.debug(f"Fetched {page} log page(s) for service '{service}'")
        return "\n".join(blocks)


def client_page_fetcher(client: Client) -> PageFetcher:
    """Adapt the blocking client to the aggregator's async page fetcher."""

    async def fetch_page(
        project: str,
        region: str,
        service: str,
        request_options: dict[str, Any] | None,
    ) -> LogPage:
        return await asyncio.to_thread(client.get_service_logs, project, region, service, request_options)

    return fetch_page


async def get_logs(
    project: str,
    region: str,
    service: str,
    client: Client | None = None,
) -> str:
    """Get every log line of a Cloud Run service.

    Args:
        project: Project ID
        region: Region of the service
        service: Name of the service
        client: Optional client instance

    Returns:
        The service's logs, one entry per line
    """
    client = client or get_client()
    return await LogAggregator(client_page_fetcher(client)).fetch_all(project, region, service)
