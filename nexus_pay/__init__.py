"""
nexus-pay: payment intent → unsigned Stellar transaction.

Public API:

    Pure layer (no I/O):
        - ``spendable_balance()``, ``account_minimum_balance()`` — reserve math.
        - ``fiat_estimate()``, ``asset_estimate()`` — price conversion.
        - ``decide_memo_requirement()``, ``MemoPolicyEngine`` — memo policy.
        - ``assemble_payment()`` — build the unsigned transaction.

    Async layer:
        - ``ResolutionCache`` — single-flight keyed cache.
        - ``FederationResolver``, ``DestinationTracker`` — destinations.
        - ``DirectoryLookup`` — well-known accounts.
        - ``ValuationEngine`` — periodically refreshed reference price.
        - ``PaymentSession``, ``open_session()`` — per-form orchestration.

    Protocols (for dependency injection):
        - ``HttpTransport`` — HTTP GET boundary.
        - ``OrderBookSource`` — order-book snapshots.
        - ``NetworkClient`` — sequence numbers, fees, account data.
"""

from nexus_pay.balance import (
    account_minimum_balance,
    find_matching_balance_line,
    spendable_balance,
    spendable_for,
)
from nexus_pay.cache import CacheLookup, CacheStatus, ResolutionCache
from nexus_pay.config import NetworkConfig, PaymentSettings
from nexus_pay.errors import (
    BadResponseError,
    DirectoryLookupFailure,
    FederationLookupError,
    InvalidDestinationError,
    PaymentError,
    ResolutionError,
    ValidationError,
)
from nexus_pay.memo import (
    Memo,
    MemoPolicyEngine,
    MemoRequirement,
    MemoState,
    build_memo,
    decide_memo_requirement,
    validate_memo,
)
from nexus_pay.models import (
    AccountData,
    Asset,
    BalanceLine,
    DestinationResolution,
    DirectoryRecord,
    MandatedMemo,
    NetworkState,
    OrderBookBid,
    OrderBookSnapshot,
    PaymentIntent,
    PriceQuote,
)
from nexus_pay.sequencer import RequestSequencer, RequestTicket
from nexus_pay.session import DestinationState, PaymentSession, open_session
from nexus_pay.stellar.client import NetworkClient
from nexus_pay.stellar.directory import DirectoryLookup
from nexus_pay.stellar.federation import DestinationTracker, FederationResolver
from nexus_pay.stellar.prices import HorizonOrderBook, OrderBookSource, PriceFeed
from nexus_pay.stellar.transport import HttpTransport, HttpxTransport
from nexus_pay.tx import AssembledTransaction, Operation, assemble_payment
from nexus_pay.valuation import Estimate, ValuationEngine, asset_estimate, fiat_estimate

__all__ = [
    "AccountData",
    "AssembledTransaction",
    "Asset",
    "BadResponseError",
    "BalanceLine",
    "CacheLookup",
    "CacheStatus",
    "DestinationResolution",
    "DestinationState",
    "DestinationTracker",
    "DirectoryLookup",
    "DirectoryLookupFailure",
    "DirectoryRecord",
    "Estimate",
    "FederationLookupError",
    "FederationResolver",
    "HorizonOrderBook",
    "HttpTransport",
    "HttpxTransport",
    "InvalidDestinationError",
    "MandatedMemo",
    "Memo",
    "MemoPolicyEngine",
    "MemoRequirement",
    "MemoState",
    "NetworkClient",
    "NetworkConfig",
    "NetworkState",
    "Operation",
    "OrderBookBid",
    "OrderBookSnapshot",
    "OrderBookSource",
    "PaymentError",
    "PaymentIntent",
    "PaymentSession",
    "PaymentSettings",
    "PriceFeed",
    "PriceQuote",
    "RequestSequencer",
    "RequestTicket",
    "ResolutionCache",
    "ResolutionError",
    "ValidationError",
    "ValuationEngine",
    "account_minimum_balance",
    "assemble_payment",
    "asset_estimate",
    "build_memo",
    "decide_memo_requirement",
    "fiat_estimate",
    "find_matching_balance_line",
    "open_session",
    "spendable_balance",
    "spendable_for",
    "validate_memo",
]
