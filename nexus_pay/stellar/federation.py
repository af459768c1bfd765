"""
Destination resolution: raw account ids and federation addresses.

Two accepted shapes:
    - A raw account id ("G..."), validated by StrKey checksum. Resolved
      locally, no I/O.
    - A federation address ``name*domain``. Resolved by reading
      ``https://<domain>/.well-known/stellar.toml``, taking its
      FEDERATION_SERVER, and querying it with ``q=<address>&type=name``.

Federation records are not cached: they can change upstream, so every
resolve() call asks again. Callers that fire a resolve per keystroke use
DestinationTracker, which drops results for superseded inputs.

Memo mapping (federation record → MandatedMemo):
    - Only when both ``memo`` and ``memo_type`` are present.
    - ``memo_type`` containing "text" (any case) → "text", else "id".
"""

from __future__ import annotations

import re
import tomllib
from typing import Any
from urllib.parse import parse_qs

import httpx
import structlog

from nexus_pay.errors import (
    BadResponseError,
    FederationLookupError,
    InvalidDestinationError,
)
from nexus_pay.models import DestinationResolution, MandatedMemo
from nexus_pay.sequencer import RequestSequencer, RequestTicket
from nexus_pay.stellar.strkey import is_public_key
from nexus_pay.stellar.transport import HttpTransport

logger = structlog.get_logger(__name__)

_STELLAR_ADDRESS_RE = re.compile(r"^[^*> \t\n\r]+\*[^*.> \t\n\r]+\.[^*> \t\n\r]+$")

STELLAR_TOML_PATH = "/.well-known/stellar.toml"

DESTINATION_SLOT = "destination"


def is_stellar_address(value: str) -> bool:
    """True if value has the federation ``name*domain`` shape."""
    return bool(_STELLAR_ADDRESS_RE.match(value))


def split_stellar_address(address: str) -> tuple[str, str]:
    """Split ``name*domain`` into (name, domain).

    Raises:
        InvalidDestinationError: If address is not a federation address.
    """
    if not is_stellar_address(address):
        raise InvalidDestinationError(address)
    name, _, domain = address.rpartition("*")
    return name, domain


def parse_scanned_destination(scanned: str) -> tuple[str, MandatedMemo | None]:
    """Split a scanned QR payload ``destination?dt=<memo>``.

    A ``dt`` parameter carries a destination tag, which maps to an id memo.
    """
    destination, _, query = scanned.strip().partition("?")
    if not query:
        return destination, None
    values = parse_qs(query).get("dt")
    if values and values[0]:
        return destination, MandatedMemo(type="id", value=values[0])
    return destination, None


# =========================================================================
# stellar.toml
# =========================================================================


async def fetch_stellar_toml(transport: HttpTransport, domain: str) -> dict[str, Any]:
    """Fetch and parse a domain's stellar.toml.

    Raises:
        FederationLookupError: If unreachable, erroring or not valid TOML.
    """
    url = f"https://{domain}{STELLAR_TOML_PATH}"
    try:
        text = await transport.get_text(url, server=domain)
    except BadResponseError as exc:
        raise FederationLookupError(
            f"stellar.toml of {domain} returned status {exc.status}",
            address=domain,
            details={"status": exc.status},
        ) from exc
    except httpx.HTTPError as exc:
        raise FederationLookupError(
            f"stellar.toml of {domain} is unreachable: {exc}", address=domain
        ) from exc

    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise FederationLookupError(
            f"stellar.toml of {domain} is malformed: {exc}", address=domain
        ) from exc


async def try_fetch_stellar_toml(transport: HttpTransport, domain: str) -> dict[str, Any] | None:
    """Like fetch_stellar_toml, but logs and returns None on failure."""
    try:
        return await fetch_stellar_toml(transport, domain)
    except FederationLookupError as exc:
        logger.warning("stellar_toml_unavailable", domain=domain, error=str(exc))
        return None


# =========================================================================
# Resolver
# =========================================================================


def _mandated_memo(record: dict[str, Any]) -> MandatedMemo | None:
    memo = record.get("memo")
    memo_type = record.get("memo_type")
    if memo is None or memo == "" or not memo_type:
        return None
    kind = "text" if "text" in str(memo_type).lower() else "id"
    return MandatedMemo(type=kind, value=str(memo))


class FederationResolver:
    """Resolves destination strings to account ids.

    Args:
        transport: HTTP transport for stellar.toml and federation queries.
    """

    def __init__(self, transport: HttpTransport) -> None:
        self._transport = transport

    async def resolve(self, destination: str) -> DestinationResolution:
        """Resolve a destination string.

        Raises:
            InvalidDestinationError: Neither a public key nor ``name*domain``.
            FederationLookupError: Descriptor or federation server failed,
                or the name is unknown at the domain.
        """
        destination = destination.strip()
        if is_public_key(destination):
            return DestinationResolution(destination=destination, account_id=destination)
        if not is_stellar_address(destination):
            raise InvalidDestinationError(destination)
        return await self._resolve_federated(destination)

    async def _resolve_federated(self, address: str) -> DestinationResolution:
        _, domain = split_stellar_address(address)
        toml = await fetch_stellar_toml(self._transport, domain)

        federation_server = toml.get("FEDERATION_SERVER")
        if not isinstance(federation_server, str) or not federation_server:
            raise FederationLookupError(
                f"stellar.toml of {domain} has no FEDERATION_SERVER", address=address
            )

        try:
            record = await self._transport.get_json(
                federation_server,
                {"q": address, "type": "name"},
                server=domain,
            )
        except BadResponseError as exc:
            if exc.status == 404:
                raise FederationLookupError(
                    f"{address} not found", address=address, details={"status": 404}
                ) from exc
            raise FederationLookupError(
                f"federation server of {domain} returned status {exc.status}",
                address=address,
                details={"status": exc.status},
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise FederationLookupError(
                f"federation server of {domain} failed: {exc}", address=address
            ) from exc

        account_id = record.get("account_id") if isinstance(record, dict) else None
        if not account_id:
            raise FederationLookupError(f"{address} not found", address=address)
        if not is_public_key(account_id):
            raise FederationLookupError(
                f"federation record for {address} has invalid account_id",
                address=address,
                details={"account_id": account_id},
            )

        resolution = DestinationResolution(
            destination=address,
            account_id=account_id,
            mandated_memo=_mandated_memo(record),
            federated=True,
        )
        logger.debug(
            "federation_resolved",
            address=address,
            account_id=account_id,
            memo_mandated=resolution.mandated_memo is not None,
        )
        return resolution


# =========================================================================
# Latest-wins tracking
# =========================================================================


class DestinationTracker:
    """Applies only the result for the most recently requested destination.

    Each call to resolve_latest() takes a new generation ticket. When the
    lookup finishes, the result (or error) is discarded if another call
    began in the meantime.

    Args:
        resolver: The resolver doing the actual work.
        sequencer: Shared sequencer. A private one is created if omitted.
    """

    def __init__(
        self,
        resolver: FederationResolver,
        sequencer: RequestSequencer | None = None,
    ) -> None:
        self._resolver = resolver
        self._sequencer = sequencer or RequestSequencer()
        self._current: DestinationResolution | None = None

    @property
    def current(self) -> DestinationResolution | None:
        """Resolution for the latest destination, once it has arrived."""
        return self._current

    def begin(self, destination: str) -> RequestTicket:
        return self._sequencer.begin(DESTINATION_SLOT, destination.strip())

    def is_current(self, ticket: RequestTicket) -> bool:
        return self._sequencer.is_current(ticket)

    def apply(self, ticket: RequestTicket, resolution: DestinationResolution | None) -> bool:
        """Store resolution if ticket is still the latest. False if discarded."""
        if not self.is_current(ticket):
            logger.debug("destination_result_discarded", destination=ticket.key)
            return False
        self._current = resolution
        return True

    async def resolve_latest(self, destination: str) -> DestinationResolution | None:
        """Resolve destination; None if superseded before completion.

        Errors of superseded requests are discarded too. Errors of the
        current request propagate and clear ``current``.
        """
        ticket = self.begin(destination)
        try:
            resolution = await self._resolver.resolve(destination)
        except (InvalidDestinationError, FederationLookupError):
            if self.apply(ticket, None):
                raise
            return None
        return resolution if self.apply(ticket, resolution) else None

    def clear(self) -> None:
        self._sequencer.reset(DESTINATION_SLOT)
        self._current = None
