"""
Valuation: XLM, issued assets and fiat currencies.

Pure layer (no I/O):
    - ``fiat_estimate()`` — asset → fiat. XLM uses the reference price;
      other assets use the best bid of the (asset, XLM) book times the
      reference price.
    - ``asset_estimate()`` — fiat → asset. Inverse reference price, times
      the best bid of the (XLM, asset) book for issued assets.

Impure layer:
    - ``ValuationEngine`` — keeps the reference price fresh on a recurring
      task and fetches order books on demand.

Rules:
    - Decimal everywhere. No float ever enters a conversion.
    - Missing data degrades to a zero estimate, never an exception. Zero
      means "unknown", not a valid price.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from decimal import Decimal

import httpx
import structlog

from nexus_pay.errors import PaymentError
from nexus_pay.models import Asset, CurrencyCode, OrderBookSnapshot, PriceQuote
from nexus_pay.sequencer import RequestSequencer
from nexus_pay.stellar.prices import OrderBookSource, PriceFeed

logger = structlog.get_logger(__name__)

ZERO = Decimal(0)

_QUOTE_SLOT = "quote"


def to_decimal(amount: Decimal | int | str) -> Decimal:
    """Coerce an amount to Decimal. Floats are rejected."""
    if isinstance(amount, float):
        raise TypeError("amounts must be Decimal, int or str, not float")
    if isinstance(amount, Decimal):
        return amount
    return Decimal(amount)


@dataclass(frozen=True)
class Estimate:
    """A conversion rate. ``price`` is target units per source unit."""

    price: Decimal

    @property
    def known(self) -> bool:
        return self.price > 0

    def convert(self, amount: Decimal | int | str) -> Decimal:
        return self.price * to_decimal(amount)


def _best_bid_price(book: OrderBookSnapshot | None) -> Decimal:
    if book is None or book.best_bid is None:
        return ZERO
    return book.best_bid.price


def fiat_estimate(
    asset: Asset,
    reference_price: Decimal,
    book: OrderBookSnapshot | None = None,
) -> Estimate:
    """Fiat value of one unit of asset.

    Args:
        asset: Asset being valued.
        reference_price: Fiat per XLM. Zero if unknown.
        book: (asset, XLM) order book. Ignored for XLM itself.
    """
    if asset.is_native:
        return Estimate(reference_price)
    return Estimate(reference_price * _best_bid_price(book))


def asset_estimate(
    asset: Asset,
    reference_price: Decimal,
    book: OrderBookSnapshot | None = None,
) -> Estimate:
    """Units of asset per one unit of fiat.

    Args:
        asset: Target asset.
        reference_price: Fiat per XLM. Zero if unknown.
        book: (XLM, asset) order book. Ignored for XLM itself.
    """
    inverse = Decimal(1) / reference_price if reference_price > 0 else ZERO
    if asset.is_native:
        return Estimate(inverse)
    return Estimate(inverse * _best_bid_price(book))


class ValuationEngine:
    """Reference price holder with periodic refresh.

    The engine is scoped to one (currency, network) pair. ``start()``
    fetches the price immediately and then every ``refresh_interval``
    seconds until ``aclose()``. A newer quote replaces the older one.
    Quotes are never merged.

    Args:
        price_feed: Reference price source.
        order_books: Order-book source for the same network.
        currency: Fiat currency code.
        refresh_interval: Seconds between refreshes.
    """

    def __init__(
        self,
        price_feed: PriceFeed,
        order_books: OrderBookSource,
        currency: CurrencyCode,
        *,
        refresh_interval: float = 60.0,
    ) -> None:
        self._price_feed = price_feed
        self._order_books = order_books
        self._currency = currency
        self._refresh_interval = refresh_interval
        self._quote: PriceQuote | None = None
        self._sequencer = RequestSequencer()
        self._task: asyncio.Task[None] | None = None
        self._first_fetch: asyncio.Future[PriceQuote | None] | None = None

    @property
    def currency(self) -> CurrencyCode:
        return self._currency

    @property
    def quote(self) -> PriceQuote | None:
        return self._quote

    @property
    def reference_price(self) -> Decimal:
        """Fiat per XLM, or zero while unknown."""
        return self._quote.price if self._quote is not None else ZERO

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # -----------------------------------------------------------------
    # Reference price
    # -----------------------------------------------------------------

    async def refresh(self) -> PriceQuote | None:
        """Fetch the reference price once.

        Returns the stored quote, or None if the fetch failed or a newer
        refresh finished first. Failures keep the previous quote.
        """
        ticket = self._sequencer.begin(_QUOTE_SLOT, self._currency)
        try:
            quote = await self._price_feed.fetch_quote(self._currency)
        except (PaymentError, httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "price_refresh_failed",
                currency=self._currency,
                testnet=self._price_feed.testnet,
                error=str(exc),
            )
            return None

        if not self._sequencer.is_current(ticket):
            return None
        self._quote = quote
        return quote

    async def ensure_quote(self) -> PriceQuote | None:
        """Fetch once if no quote is held yet. None while still unknown.

        Concurrent callers (the refresh task included) share one fetch.
        """
        if self._quote is None:
            if self._first_fetch is None or self._first_fetch.done():
                self._first_fetch = asyncio.ensure_future(self.refresh())
            await asyncio.shield(self._first_fetch)
        return self._quote

    async def _run(self) -> None:
        await self.ensure_quote()
        while True:
            await asyncio.sleep(self._refresh_interval)
            await self.refresh()

    def start(self) -> None:
        """Begin periodic refresh. No-op if already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def aclose(self) -> None:
        """Cancel the refresh task."""
        if self._first_fetch is not None and not self._first_fetch.done():
            self._first_fetch.cancel()
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def __aenter__(self) -> ValuationEngine:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # -----------------------------------------------------------------
    # Estimates
    # -----------------------------------------------------------------

    async def order_book(self, selling: Asset, buying: Asset) -> OrderBookSnapshot:
        """Fetch a book. Failures degrade to an empty snapshot."""
        try:
            return await self._order_books.fetch_order_book(selling, buying)
        except (PaymentError, httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "order_book_unavailable",
                selling=selling.canonical(),
                buying=buying.canonical(),
                error=str(exc),
            )
            return OrderBookSnapshot(selling=selling, buying=buying)

    async def fiat_estimate(self, asset: Asset) -> Estimate:
        if asset.is_native:
            return fiat_estimate(asset, self.reference_price)
        book = await self.order_book(asset, Asset.native())
        return fiat_estimate(asset, self.reference_price, book)

    async def asset_estimate(self, asset: Asset) -> Estimate:
        if asset.is_native:
            return asset_estimate(asset, self.reference_price)
        book = await self.order_book(Asset.native(), asset)
        return asset_estimate(asset, self.reference_price, book)
