"""
Value types shared across the payment engine.

All types are frozen dataclasses. Monetary values are ``decimal.Decimal``
throughout — never float.

Ownership:
    - Resolution results (DestinationResolution, DirectoryRecord) are
      immutable once produced.
    - PaymentIntent belongs to the caller; the core never retains it
      beyond a single resolve/build call.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Literal, Union

from nexus_pay.config import BASE_ASSET_CODE
from nexus_pay.stellar.strkey import is_public_key

_ASSET_CODE_RE = re.compile(r"^[a-zA-Z0-9]{1,12}$")

MemoType = Literal["none", "id", "text"]

# Fiat currency code, e.g. "EUR".
CurrencyCode = str


# =========================================================================
# Assets and balances
# =========================================================================


@dataclass(frozen=True)
class Asset:
    """A Stellar asset: the native base asset or an issued asset.

    The base asset has ``issuer=None``. Issued assets need a 1-12 char
    alphanumeric code and a valid issuer account id.
    """

    code: str
    issuer: str | None = None

    def __post_init__(self) -> None:
        if self.issuer is None:
            if self.code != BASE_ASSET_CODE:
                raise ValueError(f"asset {self.code!r} needs an issuer")
            return
        if not _ASSET_CODE_RE.match(self.code):
            raise ValueError(f"asset code must be 1-12 alphanumeric chars, got: {self.code!r}")
        if not is_public_key(self.issuer):
            raise ValueError(f"asset issuer is not a valid account id: {self.issuer!r}")

    @classmethod
    def native(cls) -> Asset:
        return cls(BASE_ASSET_CODE)

    @property
    def is_native(self) -> bool:
        return self.issuer is None

    @property
    def asset_type(self) -> str:
        if self.is_native:
            return "native"
        return "credit_alphanum4" if len(self.code) <= 4 else "credit_alphanum12"

    def canonical(self) -> str:
        """"native" or "CODE:ISSUER"."""
        return "native" if self.is_native else f"{self.code}:{self.issuer}"

    def to_dict(self) -> dict[str, str]:
        if self.is_native:
            return {"type": "native"}
        return {"type": self.asset_type, "code": self.code, "issuer": str(self.issuer)}


# An amount is denominated either in an asset or in a fiat currency.
AmountType = Union[Asset, CurrencyCode]


@dataclass(frozen=True)
class BalanceLine:
    """An account's holding of one asset."""

    asset: Asset
    balance: Decimal


@dataclass(frozen=True)
class AccountData:
    """Snapshot of the source account, as loaded by the network client.

    Attributes:
        account_id: The account's "G..." id.
        balances: One line per held asset (native included).
        signers: Public keys of all signers, master key included.
        subentry_count: Trustlines, offers, data entries and extra signers.
    """

    account_id: str
    balances: tuple[BalanceLine, ...] = ()
    signers: tuple[str, ...] = ()
    subentry_count: int = 0

    @property
    def is_multisig(self) -> bool:
        return len(self.signers) > 1


# =========================================================================
# Resolution results
# =========================================================================


@dataclass(frozen=True)
class MandatedMemo:
    """Memo a federation server requires for its account."""

    type: Literal["id", "text"]
    value: str


@dataclass(frozen=True)
class DestinationResolution:
    """Result of resolving a destination string.

    Attributes:
        destination: The exact input string this result was produced for.
        account_id: Resolved "G..." account id.
        mandated_memo: Memo forced by the federation record, if any.
        federated: True if resolved through a federation server.
    """

    destination: str
    account_id: str
    mandated_memo: MandatedMemo | None = None
    federated: bool = False


@dataclass(frozen=True)
class DirectoryRecord:
    """A well-known account listing from the directory service."""

    account_id: str
    tags: frozenset[str] = field(default_factory=frozenset)
    display_name: str = ""

    @property
    def memo_required(self) -> bool:
        return "memo-required" in self.tags


# =========================================================================
# Prices
# =========================================================================


@dataclass(frozen=True)
class PriceQuote:
    """Reference price of one XLM in a fiat currency."""

    currency: CurrencyCode
    price: Decimal
    testnet: bool
    observed_at: datetime


@dataclass(frozen=True)
class OrderBookBid:
    price: Decimal
    volume: Decimal


@dataclass(frozen=True)
class OrderBookSnapshot:
    """Bids for a (selling, buying) pair, best price first."""

    selling: Asset
    buying: Asset
    bids: tuple[OrderBookBid, ...] = ()

    @property
    def best_bid(self) -> OrderBookBid | None:
        return self.bids[0] if self.bids else None


# =========================================================================
# Intent and network state
# =========================================================================


@dataclass(frozen=True)
class PaymentIntent:
    """What the user wants to send.

    ``amount`` is denominated in ``amount_type``: the transfer asset
    itself, or a fiat currency code that gets converted to the asset.
    """

    destination: str
    asset: Asset
    amount: Decimal | str
    amount_type: AmountType | None = None
    memo_type: MemoType = "none"
    memo_value: str = ""

    @property
    def denomination(self) -> AmountType:
        return self.asset if self.amount_type is None else self.amount_type

    @property
    def in_currency(self) -> bool:
        return not isinstance(self.denomination, Asset)


@dataclass(frozen=True)
class NetworkState:
    """Network facts the assembler needs, supplied by the network client.

    Attributes:
        sequence: Current sequence number of the source account.
        base_fee: Network minimum fee per operation, in stroops.
        network_passphrase: Passphrase the envelope is bound to.
        destination_exists: Whether the destination account is funded.
            None if the client did not check.
        now: Ledger or wall-clock time used for time bounds.
    """

    sequence: int
    base_fee: int
    network_passphrase: str
    destination_exists: bool | None = None
    now: datetime | None = None
