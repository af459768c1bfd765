"""
HTTP transport protocol for the lookup services.

Federation, directory, price feed, ticker and Horizon order-book clients
depend on this protocol, not on httpx directly, so tests can plug in a
fake that returns canned payloads.

Concrete implementations:
    - HttpxTransport (default, uses httpx.AsyncClient)
    - FakeTransport (tests)

Contract:
    - Any response with status >= 400 raises BadResponseError carrying the
      status and the originating server name.
    - JSON numbers with a fractional part are decoded as Decimal, never
      float.
    - Connection-level failures (DNS, TLS, timeouts) propagate as
      httpx.HTTPError. Callers map them to their own error category.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any, Protocol, Union, runtime_checkable

import httpx

from nexus_pay.errors import BadResponseError

QueryParams = Union[Mapping[str, str], Sequence[tuple[str, str]], None]


def server_name(url: str) -> str:
    """Host part of url, used to label BadResponseError."""
    return httpx.URL(url).host or url


@runtime_checkable
class HttpTransport(Protocol):
    """Async transport for GET requests."""

    async def get_json(
        self, url: str, params: QueryParams = None, *, server: str | None = None
    ) -> Any:
        """GET url and return the decoded JSON body.

        Args:
            url: Endpoint URL.
            params: Query parameters. A sequence of pairs allows repeated
                keys such as ``address[]``.
            server: Label for errors. Defaults to the URL host.

        Raises:
            BadResponseError: On status >= 400.
            httpx.HTTPError: On transport-level failures.
            ValueError: If the body is not valid JSON.
        """
        ...

    async def get_text(
        self, url: str, params: QueryParams = None, *, server: str | None = None
    ) -> str:
        """GET url and return the body as text. Same errors as get_json."""
        ...


class HttpxTransport:
    """Default transport using httpx.AsyncClient.

    Args:
        timeout: Request timeout in seconds.
        client: Optional shared client. If None, a client is opened per
            request. A shared client is owned by the caller and is not
            closed here.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout
        self._client = client

    async def _get(self, url: str, params: QueryParams, server: str | None) -> httpx.Response:
        headers = {"Accept": "application/json, text/plain, */*"}
        if self._client is not None:
            response = await self._client.get(url, params=params, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(url, params=params, headers=headers)

        if response.status_code >= 400:
            raise BadResponseError(
                response.status_code,
                server or server_name(url),
                url=str(response.request.url),
            )
        return response

    async def get_json(
        self, url: str, params: QueryParams = None, *, server: str | None = None
    ) -> Any:
        response = await self._get(url, params, server)
        return response.json(parse_float=Decimal)

    async def get_text(
        self, url: str, params: QueryParams = None, *, server: str | None = None
    ) -> str:
        response = await self._get(url, params, server)
        return response.text
