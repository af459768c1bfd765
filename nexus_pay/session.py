"""
Payment session — the seam the UI layer drives.

A PaymentSession owns everything scoped to one payment form: the
destination tracker, the memo policy, one valuation engine per fiat
currency in use, and (when opened with ``open_session``) the caches and
HTTP client. The caller owns the PaymentIntent and calls back into the
session whenever a field changes. The session never subscribes to
caller state.

Flow:
    update_destination()  → resolve + directory lookup (parallel for raw
                            keys), latest-wins, memo policy transitions.
    spendable()           → spendable balance in the amount's unit.
    eventual_amount()     → currency amount converted to asset units.
    validate()            → amount/memo checks without building.
    build_transaction()   → fresh resolution + network state → assembled
                            unsigned transaction.
    aclose()              → stops price refresh, closes owned resources.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

import httpx
import structlog

from nexus_pay.balance import spendable_for
from nexus_pay.cache import ResolutionCache
from nexus_pay.config import AMOUNT_PRECISION, NetworkConfig, PaymentSettings
from nexus_pay.errors import DirectoryLookupFailure, FederationLookupError, InvalidDestinationError, ValidationError
from nexus_pay.memo import MemoPolicyEngine, MemoRequirement, decide_memo_requirement, validate_memo
from nexus_pay.models import (
    AccountData,
    Asset,
    CurrencyCode,
    DestinationResolution,
    DirectoryRecord,
    PaymentIntent,
)
from nexus_pay.sequencer import RequestSequencer
from nexus_pay.stellar.client import NetworkClient
from nexus_pay.stellar.directory import DirectoryLookup
from nexus_pay.stellar.federation import DestinationTracker, FederationResolver
from nexus_pay.stellar.prices import HorizonOrderBook, OrderBookSource, PriceFeed
from nexus_pay.stellar.strkey import is_public_key
from nexus_pay.stellar.transport import HttpxTransport
from nexus_pay.tx import AssembledTransaction, assemble_payment, format_amount, parse_amount
from nexus_pay.valuation import ValuationEngine

logger = structlog.get_logger(__name__)

_ASSET_QUANTUM = Decimal(1).scaleb(-AMOUNT_PRECISION)
_FIAT_QUANTUM = Decimal("0.01")


@dataclass(frozen=True)
class DestinationState:
    """What the session knows about the latest destination."""

    destination: str
    resolution: DestinationResolution | None
    record: DirectoryRecord | None
    memo: MemoRequirement


class PaymentSession:
    """Per-form payment state.

    Args:
        account: Source account snapshot.
        resolver: Destination resolver.
        directory: Directory lookup (soft-failing, cached).
        price_feed: Reference price source for valuation engines.
        order_books: Order-book source for valuation engines.
        preferred_currency: Fiat currency for display estimates.
        settings: Engine settings.
    """

    def __init__(
        self,
        account: AccountData,
        resolver: FederationResolver,
        directory: DirectoryLookup,
        *,
        price_feed: PriceFeed,
        order_books: OrderBookSource,
        preferred_currency: CurrencyCode = "EUR",
        settings: PaymentSettings | None = None,
    ) -> None:
        self._account = account
        self._resolver = resolver
        self._directory = directory
        self._price_feed = price_feed
        self._order_books = order_books
        self._preferred_currency = preferred_currency
        self._settings = settings or PaymentSettings()
        self._tracker = DestinationTracker(resolver, RequestSequencer())
        self._memo_policy = MemoPolicyEngine()
        self._record: DirectoryRecord | None = None
        self._engines: dict[CurrencyCode, ValuationEngine] = {}
        self._on_close: list[Callable[[], object]] = []

    @property
    def account(self) -> AccountData:
        return self._account

    @property
    def resolution(self) -> DestinationResolution | None:
        return self._tracker.current

    @property
    def directory_record(self) -> DirectoryRecord | None:
        return self._record

    @property
    def memo_requirement(self) -> MemoRequirement:
        return self._memo_policy.requirement

    @property
    def preferred_currency(self) -> CurrencyCode:
        return self._preferred_currency

    # -----------------------------------------------------------------
    # Destination
    # -----------------------------------------------------------------

    async def update_destination(self, destination: str) -> DestinationState | None:
        """React to a destination edit.

        Returns the new DestinationState, or None if another edit arrived
        before this one finished (its results are discarded).

        Raises:
            InvalidDestinationError: Malformed destination (current edit only).
            FederationLookupError: Federation failed (current edit only).
        """
        destination = destination.strip()
        ticket = self._tracker.begin(destination)

        if not destination:
            self._tracker.apply(ticket, None)
            self._record = None
            return DestinationState(destination, None, None, self._memo_policy.reset())

        try:
            if is_public_key(destination):
                resolution, record = await asyncio.gather(
                    self._resolver.resolve(destination),
                    self._directory.lookup(destination),
                )
            else:
                resolution = await self._resolver.resolve(destination)
                if not self._tracker.is_current(ticket):
                    return None
                record = await self._directory.lookup(resolution.account_id)
        except (InvalidDestinationError, FederationLookupError):
            if self._tracker.apply(ticket, None):
                self._record = None
                self._memo_policy.reset()
                raise
            return None

        if not self._tracker.apply(ticket, resolution):
            return None
        self._record = record
        self._memo_policy.on_destination_resolved(resolution)
        requirement = self._memo_policy.on_directory_record(record)
        return DestinationState(destination, resolution, record, requirement)

    # -----------------------------------------------------------------
    # Valuation
    # -----------------------------------------------------------------

    def valuation(self, currency: CurrencyCode) -> ValuationEngine:
        """Valuation engine for currency, started on first use."""
        engine = self._engines.get(currency)
        if engine is None:
            engine = ValuationEngine(
                self._price_feed,
                self._order_books,
                currency,
                refresh_interval=self._settings.price_refresh_interval,
            )
            engine.start()
            self._engines[currency] = engine
        return engine

    async def _priced(self, currency: CurrencyCode) -> ValuationEngine:
        """Engine for currency, holding a quote if the feed can supply one."""
        engine = self.valuation(currency)
        await engine.ensure_quote()
        return engine

    async def spendable(self, asset: Asset, amount_type: Asset | CurrencyCode | None = None) -> Decimal:
        """Spendable balance of asset, expressed in amount_type.

        In asset units when amount_type is an asset (or None), else the
        fiat value of the spendable balance (zero while the price is
        unknown).
        """
        spendable = spendable_for(self._account, asset, self._settings.base_reserve)
        if amount_type is None or isinstance(amount_type, Asset):
            return spendable
        engine = await self._priced(amount_type)
        estimate = await engine.fiat_estimate(asset)
        return estimate.convert(spendable)

    async def eventual_amount(self, intent: PaymentIntent) -> Decimal:
        """Amount of intent.asset that will actually be sent.

        Raises:
            ValidationError: If a currency amount cannot be converted
                because the price is unknown.
        """
        amount = parse_amount(intent.amount)
        if not intent.in_currency:
            return amount
        currency = str(intent.denomination)
        engine = await self._priced(currency)
        estimate = await engine.asset_estimate(intent.asset)
        if not estimate.known:
            raise ValidationError(
                f"Price of {intent.asset.code} in {currency} is unknown",
                field="amount",
                details={"currency": currency, "asset": intent.asset.canonical()},
            )
        return estimate.convert(amount).quantize(_ASSET_QUANTUM, rounding=ROUND_DOWN)

    async def estimate_in_currency(
        self, intent: PaymentIntent, currency: CurrencyCode | None = None
    ) -> Decimal:
        """Fiat value of the payment, rounded to cents.

        Zero if the asset price is unknown. A currency-denominated intent
        with no price raises as in eventual_amount().
        """
        asset_amount = await self.eventual_amount(intent)
        engine = await self._priced(currency or self._preferred_currency)
        estimate = await engine.fiat_estimate(intent.asset)
        return estimate.convert(asset_amount).quantize(_FIAT_QUANTUM, rounding=ROUND_HALF_UP)

    # -----------------------------------------------------------------
    # Validation and assembly
    # -----------------------------------------------------------------

    async def validate(self, intent: PaymentIntent) -> None:
        """Check amount and memo against the current state.

        Raises:
            ValidationError: On the first violated constraint.
        """
        amount = parse_amount(intent.amount)
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero", field="amount")
        spendable = await self.spendable(intent.asset, intent.denomination)
        if amount > spendable:
            raise ValidationError(
                "Not enough funds",
                field="amount",
                details={"amount": format(amount, "f"), "spendable": format(spendable, "f")},
            )
        if not intent.in_currency:
            format_amount(amount)
        validate_memo(intent.memo_type, intent.memo_value, self.memo_requirement)

    async def build_transaction(
        self, intent: PaymentIntent, network_client: NetworkClient
    ) -> AssembledTransaction:
        """Assemble the unsigned payment for intent.

        The destination is resolved again so a changed federation record
        is never missed.

        Raises:
            InvalidDestinationError, FederationLookupError: From resolution.
            ValidationError: From amount, asset or memo checks.
        """
        resolution = await self._resolver.resolve(intent.destination)
        record = await self._directory.lookup(resolution.account_id)
        requirement = decide_memo_requirement(resolution, record)

        self._account = await network_client.fetch_account(self._account.account_id)
        spendable = spendable_for(self._account, intent.asset, self._settings.base_reserve)
        eventual_amount = await self.eventual_amount(intent)
        network = await network_client.fetch_network_state(
            self._account.account_id, resolution.account_id
        )

        transaction = assemble_payment(
            self._account,
            intent,
            resolution,
            network,
            spendable=spendable,
            memo_requirement=requirement,
            eventual_amount=eventual_amount,
            valid_for=self._settings.transaction_valid_for,
        )
        logger.info(
            "payment_assembled",
            source=transaction.source_account,
            destination=resolution.account_id,
            fee=transaction.fee,
            operations=len(transaction.operations),
            digest=transaction.digest(),
        )
        return transaction

    # -----------------------------------------------------------------
    # Teardown
    # -----------------------------------------------------------------

    def add_close_callback(self, callback: Callable[[], object]) -> None:
        """Run callback (sync, or returning an awaitable) on aclose()."""
        self._on_close.append(callback)

    async def aclose(self) -> None:
        for engine in self._engines.values():
            await engine.aclose()
        self._engines.clear()
        for callback in reversed(self._on_close):
            result = callback()
            if asyncio.iscoroutine(result):
                await result
        self._on_close.clear()

    async def __aenter__(self) -> PaymentSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def open_session(
    account: AccountData,
    network: NetworkConfig,
    *,
    preferred_currency: CurrencyCode = "EUR",
    settings: PaymentSettings | None = None,
    on_directory_error: Callable[[DirectoryLookupFailure], None] | None = None,
) -> PaymentSession:
    """Wire a PaymentSession against the live services of network.

    The session owns the shared httpx client and the directory cache and
    closes them in aclose().
    """
    settings = settings or PaymentSettings()
    client = httpx.AsyncClient(timeout=settings.http_timeout)
    transport = HttpxTransport(timeout=settings.http_timeout, client=client)
    directory_cache: ResolutionCache[tuple[bool, str], DirectoryRecord | None] = ResolutionCache(
        name="directory", ttl=settings.directory_cache_ttl
    )

    session = PaymentSession(
        account,
        FederationResolver(transport),
        DirectoryLookup(transport, directory_cache, network, on_error=on_directory_error),
        price_feed=PriceFeed(transport, network),
        order_books=HorizonOrderBook(transport, network),
        preferred_currency=preferred_currency,
        settings=settings,
    )
    session.add_close_callback(client.aclose)
    session.add_close_callback(directory_cache.aclose)
    return session
