"""
Price sources: the XLM reference price feed and order-book snapshots.

PriceFeed:
    GET <price_feed_url>?symbol=XLM&convert=<CCY>
    → {"data": {"XLM": {"quote": {"<CCY>": {"price": <number>}}}}}
    The price is decoded straight into Decimal.

OrderBookSource:
    Protocol yielding best-bid snapshots for an asset pair. HorizonOrderBook
    is the concrete implementation against Horizon's /order_book endpoint,
    whose bid prices and amounts are decimal strings.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol, runtime_checkable

from nexus_pay.config import BASE_ASSET_CODE, NetworkConfig
from nexus_pay.models import Asset, CurrencyCode, OrderBookBid, OrderBookSnapshot, PriceQuote
from nexus_pay.stellar.transport import HttpTransport

PRICE_FEED_SERVER = "price feed"
HORIZON_SERVER = "horizon"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_quote_price(payload: Any, currency: CurrencyCode) -> Decimal:
    """Pull ``data.XLM.quote.<CCY>.price`` out of a quotes payload.

    Raises:
        ValueError: If the path is missing or the price is not numeric.
    """
    try:
        price = payload["data"][BASE_ASSET_CODE]["quote"][currency]["price"]
    except (KeyError, TypeError) as exc:
        raise ValueError(f"quote response has no {currency} price") from exc
    try:
        return Decimal(str(price))
    except InvalidOperation as exc:
        raise ValueError(f"quote price is not a number: {price!r}") from exc


class PriceFeed:
    """Fetches the XLM reference price for a fiat currency.

    Args:
        transport: HTTP transport.
        network: Selects the mainnet or testnet quote endpoint.
        now_fn: Clock for ``observed_at``. Inject for tests.
    """

    def __init__(
        self,
        transport: HttpTransport,
        network: NetworkConfig,
        now_fn: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._transport = transport
        self._network = network
        self._now_fn = now_fn

    @property
    def testnet(self) -> bool:
        return self._network.testnet

    async def fetch_quote(self, currency: CurrencyCode) -> PriceQuote:
        payload = await self._transport.get_json(
            self._network.price_feed_url,
            {"symbol": BASE_ASSET_CODE, "convert": currency},
            server=PRICE_FEED_SERVER,
        )
        return PriceQuote(
            currency=currency,
            price=parse_quote_price(payload, currency),
            testnet=self._network.testnet,
            observed_at=self._now_fn(),
        )


# =========================================================================
# Order books
# =========================================================================


@runtime_checkable
class OrderBookSource(Protocol):
    """Interface for order-book snapshots, keyed by asset pair and network."""

    async def fetch_order_book(self, selling: Asset, buying: Asset) -> OrderBookSnapshot:
        """Current bids for offers buying ``selling`` with ``buying``."""
        ...


def _asset_params(prefix: str, asset: Asset) -> dict[str, str]:
    params = {f"{prefix}_asset_type": asset.asset_type}
    if not asset.is_native:
        params[f"{prefix}_asset_code"] = asset.code
        params[f"{prefix}_asset_issuer"] = str(asset.issuer)
    return params


def parse_order_book(selling: Asset, buying: Asset, payload: Any) -> OrderBookSnapshot:
    """Build a snapshot from a Horizon order_book response.

    Bids are re-sorted best price first.

    Raises:
        ValueError: If bids are missing or not decimal strings.
    """
    raw_bids = payload.get("bids") if isinstance(payload, dict) else None
    if not isinstance(raw_bids, list):
        raise ValueError("order book response has no bids list")
    try:
        bids = [
            OrderBookBid(price=Decimal(bid["price"]), volume=Decimal(bid["amount"]))
            for bid in raw_bids
        ]
    except (KeyError, TypeError, InvalidOperation) as exc:
        raise ValueError(f"malformed order book bid: {exc}") from exc
    bids.sort(key=lambda bid: bid.price, reverse=True)
    return OrderBookSnapshot(selling=selling, buying=buying, bids=tuple(bids))


class HorizonOrderBook:
    """OrderBookSource backed by Horizon's /order_book endpoint."""

    def __init__(self, transport: HttpTransport, network: NetworkConfig, limit: int = 20) -> None:
        self._transport = transport
        self._network = network
        self._limit = limit

    async def fetch_order_book(self, selling: Asset, buying: Asset) -> OrderBookSnapshot:
        params = {
            **_asset_params("selling", selling),
            **_asset_params("buying", buying),
            "limit": str(self._limit),
        }
        payload = await self._transport.get_json(
            self._network.horizon_url.rstrip("/") + "/order_book",
            params,
            server=HORIZON_SERVER,
        )
        return parse_order_book(selling, buying, payload)
