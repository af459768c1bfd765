"""
Well-known account directory lookup.

Maps an account id to its directory listing (display name, tags such as
"memo-required"). Unlisted accounts are not an error: lookup() returns
None.

Failures are soft. An unreachable or erroring directory is reported to
the observability callback and logged, and the lookup returns None so
the payment flow carries on as if the account were unlisted. Failures
are not cached, so the next lookup tries again.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import structlog

from nexus_pay.cache import ResolutionCache
from nexus_pay.config import NetworkConfig
from nexus_pay.errors import BadResponseError, DirectoryLookupFailure
from nexus_pay.models import DirectoryRecord
from nexus_pay.stellar.transport import HttpTransport

logger = structlog.get_logger(__name__)

DIRECTORY_SERVER = "stellar.expert"

# (testnet, account_id)
DirectoryKey = tuple[bool, str]


class MalformedDirectoryResponse(ValueError):
    """Directory answered 2xx with a body we cannot read."""


def parse_directory_response(account_id: str, payload: Any) -> DirectoryRecord | None:
    """Extract the first record of a directory response.

    Raises:
        MalformedDirectoryResponse: If the payload lacks ``_embedded.records``
            or the first record has fields of the wrong type.
    """
    try:
        records = payload["_embedded"]["records"]
    except (KeyError, TypeError) as exc:
        raise MalformedDirectoryResponse("missing _embedded.records") from exc
    if not isinstance(records, list):
        raise MalformedDirectoryResponse("_embedded.records is not a list")
    if not records:
        return None

    record = records[0]
    if not isinstance(record, dict):
        raise MalformedDirectoryResponse("directory record is not an object")
    tags = record.get("tags")
    if tags is None:
        tags = []
    if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
        raise MalformedDirectoryResponse("directory record tags are not a list of strings")
    return DirectoryRecord(
        account_id=_optional_str(record, "address") or account_id,
        tags=frozenset(tags),
        display_name=_optional_str(record, "name"),
    )


def _optional_str(record: dict[str, Any], key: str) -> str:
    value = record.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise MalformedDirectoryResponse(f"directory record {key} is not a string")
    return value


class DirectoryLookup:
    """Cached, soft-failing directory client.

    Args:
        transport: HTTP transport.
        cache: Cache keyed by (testnet, account_id). Owned by the caller.
        network: Network config supplying the directory URL.
        on_error: Observability callback receiving DirectoryLookupFailure.
    """

    def __init__(
        self,
        transport: HttpTransport,
        cache: ResolutionCache[DirectoryKey, DirectoryRecord | None],
        network: NetworkConfig,
        on_error: Callable[[DirectoryLookupFailure], None] | None = None,
    ) -> None:
        self._transport = transport
        self._cache = cache
        self._network = network
        self._on_error = on_error

    def cached(self, account_id: str) -> DirectoryRecord | None:
        return self._cache.get((self._network.testnet, account_id))

    async def lookup(self, account_id: str) -> DirectoryRecord | None:
        """Directory record for account_id, or None if unlisted/unavailable."""
        key = (self._network.testnet, account_id)
        try:
            return await self._cache.resolve(key, lambda: self._fetch(account_id))
        except (BadResponseError, httpx.HTTPError, ValueError) as exc:
            failure = DirectoryLookupFailure(account_id, str(exc))
            failure.__cause__ = exc
            logger.warning(
                "directory_lookup_failed",
                account_id=account_id,
                network=self._network.name,
                error=str(exc),
            )
            if self._on_error is not None:
                self._on_error(failure)
            return None

    async def _fetch(self, account_id: str) -> DirectoryRecord | None:
        payload = await self._transport.get_json(
            self._network.directory_url,
            [("address[]", account_id)],
            server=DIRECTORY_SERVER,
        )
        return parse_directory_response(account_id, payload)
