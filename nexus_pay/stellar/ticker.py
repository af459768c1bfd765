"""
Ticker asset list.

Fetches ``<ticker_url>/assets.json``, sorts assets by holder count
(descending) and trims each record to the fields the wallet shows.
One list per network, cached for the lifetime of the injected cache.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from nexus_pay.cache import ResolutionCache
from nexus_pay.config import NetworkConfig
from nexus_pay.stellar.transport import HttpTransport

TICKER_SERVER = "stellar.expert"


@dataclass(frozen=True)
class AssetRecord:
    code: str
    issuer: str
    name: str = ""
    desc: str = ""
    num_accounts: int = 0
    status: str = ""
    type: str = ""
    issuer_name: str = ""
    issuer_url: str = ""


def _trim(record: dict[str, Any]) -> AssetRecord:
    issuer_detail = record.get("issuer_detail") or {}
    return AssetRecord(
        code=record.get("code", ""),
        issuer=record.get("issuer", ""),
        name=record.get("name") or "",
        desc=record.get("desc") or "",
        num_accounts=int(record.get("num_accounts") or 0),
        status=record.get("status") or "",
        type=record.get("type") or "",
        issuer_name=issuer_detail.get("name") or "",
        issuer_url=issuer_detail.get("url") or "",
    )


def parse_ticker_assets(payload: Any) -> list[AssetRecord]:
    """Trimmed records from an assets.json payload, most-held first.

    Raises:
        ValueError: If the payload has no ``assets`` list.
    """
    assets = payload.get("assets") if isinstance(payload, dict) else None
    if not isinstance(assets, list):
        raise ValueError("ticker response has no assets list")
    records = [_trim(record) for record in assets if isinstance(record, dict)]
    return sorted(records, key=lambda record: record.num_accounts, reverse=True)


class TickerAssets:
    """Per-network asset list backed by a ResolutionCache."""

    def __init__(
        self,
        transport: HttpTransport,
        cache: ResolutionCache[bool, list[AssetRecord]],
        network: NetworkConfig,
    ) -> None:
        self._transport = transport
        self._cache = cache
        self._network = network

    async def all_assets(self) -> list[AssetRecord]:
        return await self._cache.resolve(self._network.testnet, self._fetch)

    async def _fetch(self) -> list[AssetRecord]:
        url = self._network.ticker_url.rstrip("/") + "/assets.json"
        payload = await self._transport.get_json(url, server=TICKER_SERVER)
        return parse_ticker_assets(payload)
