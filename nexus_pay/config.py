"""
Network endpoints and payment settings.

Two frozen dataclasses:
    - ``NetworkConfig`` — per-network endpoints (Horizon, price feed,
      directory, ticker) and the network passphrase.
    - ``PaymentSettings`` — timeouts, refresh cadence, cache TTL, reserve.

Protocol constants live at module level so pure modules can import them
without constructing a config.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

# Native asset code on the Stellar network.
BASE_ASSET_CODE = "XLM"

# Minimum fee per operation, in stroops.
BASE_FEE = 100

# Per-operation fee multiplier for accounts with more than one signer.
MULTISIG_FEE_FACTOR = 2

# Decimal places supported by ledger amounts (1 stroop = 10^-7).
AMOUNT_PRECISION = 7

# Max UTF-8 byte length of a text memo.
MAX_TEXT_MEMO_BYTES = 28

# Reserve per ledger entry, in XLM.
BASE_RESERVE = Decimal("0.5")

MAINNET_PASSPHRASE = "Public Global Stellar Network ; September 2015"
TESTNET_PASSPHRASE = "Test SDF Network ; September 2015"


@dataclass(frozen=True)
class NetworkConfig:
    """Endpoints for one Stellar network.

    Attributes:
        testnet: Whether this is the test network.
        horizon_url: Horizon REST base URL (order books).
        network_passphrase: Passphrase the envelope is bound to.
        price_feed_url: Latest-quotes endpoint for the XLM reference price.
        directory_url: Well-known account directory endpoint.
        ticker_url: Base URL of the asset ticker (serves /assets.json).
    """

    testnet: bool
    horizon_url: str
    network_passphrase: str
    price_feed_url: str
    directory_url: str
    ticker_url: str

    @property
    def name(self) -> str:
        return "testnet" if self.testnet else "mainnet"

    @classmethod
    def mainnet(cls) -> NetworkConfig:
        return cls(
            testnet=False,
            horizon_url="https://horizon.stellar.org",
            network_passphrase=MAINNET_PASSPHRASE,
            price_feed_url=(
                "https://api.satoshipay.io/mainnet/coinmarketcap/v1/cryptocurrency/quotes/latest"
            ),
            directory_url="https://api.stellar.expert/api/explorer/directory",
            ticker_url="https://ticker.stellar.org",
        )

    @classmethod
    def testnet_config(cls) -> NetworkConfig:
        return cls(
            testnet=True,
            horizon_url="https://horizon-testnet.stellar.org",
            network_passphrase=TESTNET_PASSPHRASE,
            price_feed_url=(
                "https://api.satoshipay.io/testnet/coinmarketcap/v1/cryptocurrency/quotes/latest"
            ),
            directory_url="https://api.stellar.expert/api/explorer/directory",
            ticker_url="https://ticker-testnet.stellar.org",
        )

    @classmethod
    def for_network(cls, testnet: bool) -> NetworkConfig:
        return cls.testnet_config() if testnet else cls.mainnet()


@dataclass(frozen=True)
class PaymentSettings:
    """Tunables for the payment engine.

    Attributes:
        http_timeout: Per-request timeout in seconds.
        price_refresh_interval: Seconds between reference price refreshes.
        directory_cache_ttl: Seconds a directory record stays fresh.
            None keeps records for the lifetime of the cache.
        base_reserve: Reserve per ledger entry, in XLM.
        transaction_valid_for: Seconds until an assembled envelope expires.
    """

    http_timeout: float = 30.0
    price_refresh_interval: float = 60.0
    directory_cache_ttl: float | None = 3600.0
    base_reserve: Decimal = BASE_RESERVE
    transaction_valid_for: int = 300

    def __post_init__(self) -> None:
        if self.price_refresh_interval <= 0:
            raise ValueError("price_refresh_interval must be positive")
        if self.directory_cache_ttl is not None and self.directory_cache_ttl <= 0:
            raise ValueError("directory_cache_ttl must be positive or None")
        if self.transaction_valid_for <= 0:
            raise ValueError("transaction_valid_for must be positive")
