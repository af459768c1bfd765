"""
Transaction assembler for payments.

Builds an unsigned transaction envelope from a validated payment intent.
The assembler is pure: it signs nothing and makes no network calls.
Network facts (sequence, base fee, passphrase, whether the
destination exists) arrive as a NetworkState from the network client.

The assembler enforces:
    - Exactly one operation: payment, or create_account when the
      destination is unfunded and the asset is XLM.
    - The transfer asset is the intent's asset, never the amount's
      currency. It must be XLM or held by the source account.
    - Amount > 0, not above the spendable balance (compared before any
      formatting), at most 7 decimal places. Extra digits are rejected,
      never dropped.
    - Memo: federation-mandated memo forced; otherwise the intent's memo,
      validated against the memo requirement.
    - Fee >= base fee × operation count × (2 if multisig else 1).
    - The resolution must belong to the intent's destination string.

Failures raise. A partially built transaction is never returned.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Any, Literal

from nexus_pay.balance import find_matching_balance_line
from nexus_pay.canonical_json import content_digest
from nexus_pay.config import AMOUNT_PRECISION, BASE_FEE, BASE_RESERVE, MULTISIG_FEE_FACTOR
from nexus_pay.errors import ValidationError
from nexus_pay.memo import DEFAULT_REQUIREMENT, Memo, MemoRequirement, MemoState, build_memo
from nexus_pay.models import AccountData, Asset, DestinationResolution, NetworkState, PaymentIntent

_AMOUNT_QUANTUM = Decimal(1).scaleb(-AMOUNT_PRECISION)

# Largest amount representable on the ledger (int64 stroops).
MAX_AMOUNT = Decimal(2**63 - 1).scaleb(-AMOUNT_PRECISION)

# create_account must fund at least the two base reserves.
MIN_STARTING_BALANCE = 2 * BASE_RESERVE

DEFAULT_VALID_FOR = 300


def parse_amount(amount: Decimal | int | str) -> Decimal:
    """Decimal from user input. Accepts "," as decimal separator.

    Raises:
        ValidationError: If the value is not a finite number.
    """
    if isinstance(amount, float):
        raise ValidationError("Amount must not be a float", field="amount")
    if isinstance(amount, str):
        amount = amount.strip().replace(",", ".")
    try:
        value = Decimal(amount)
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Invalid amount: {amount!r}", field="amount") from exc
    if not value.is_finite():
        raise ValidationError(f"Invalid amount: {amount!r}", field="amount")
    return value


def format_amount(amount: Decimal | int | str) -> str:
    """Ledger amount string with at most 7 decimals.

    Raises:
        ValidationError: If the amount is not positive, exceeds MAX_AMOUNT,
            or has more decimal places than the ledger supports.
    """
    value = parse_amount(amount)
    if value <= 0:
        raise ValidationError("Amount must be greater than zero", field="amount")
    if value > MAX_AMOUNT:
        raise ValidationError("Amount exceeds the ledger maximum", field="amount")
    if value.quantize(_AMOUNT_QUANTUM, rounding=ROUND_DOWN) != value:
        raise ValidationError(
            f"Amount has more than {AMOUNT_PRECISION} decimal places",
            field="amount",
            details={"amount": format(value, "f")},
        )
    return format(value.normalize(), "f")


def transaction_fee(base_fee: int, operation_count: int, multisig: bool) -> int:
    """Total fee in stroops. The per-operation floor is BASE_FEE."""
    if operation_count < 1:
        raise ValueError("a transaction needs at least one operation")
    per_operation = max(base_fee, BASE_FEE)
    if multisig:
        per_operation *= MULTISIG_FEE_FACTOR
    return per_operation * operation_count


# =========================================================================
# Operations
# =========================================================================


@dataclass(frozen=True)
class Operation:
    """A single ledger operation.

    ``amount`` is the starting balance for create_account.
    """

    type: Literal["payment", "create_account"]
    destination: str
    asset: Asset
    amount: str

    def to_dict(self) -> dict[str, Any]:
        if self.type == "create_account":
            return {
                "type": "create_account",
                "destination": self.destination,
                "starting_balance": self.amount,
            }
        return {
            "type": "payment",
            "destination": self.destination,
            "asset": self.asset.to_dict(),
            "amount": self.amount,
        }


def plan_payment_operation(
    destination: str,
    asset: Asset,
    amount: str,
    destination_exists: bool | None = None,
) -> Operation:
    """Payment, or create_account for an unfunded destination.

    Raises:
        ValidationError: Non-XLM payment to an unfunded account, or a
            create_account below the minimum starting balance.
    """
    if destination_exists is False:
        if not asset.is_native:
            raise ValidationError(
                "Destination account does not exist and can only be created with XLM",
                field="destination",
                details={"destination": destination},
            )
        if Decimal(amount) < MIN_STARTING_BALANCE:
            raise ValidationError(
                f"Creating an account requires at least {MIN_STARTING_BALANCE} XLM",
                field="amount",
            )
        return Operation("create_account", destination, asset, amount)
    return Operation("payment", destination, asset, amount)


# =========================================================================
# AssembledTransaction
# =========================================================================


@dataclass(frozen=True)
class AssembledTransaction:
    """Unsigned transaction ready for the signing collaborator.

    Attributes:
        source_account: Paying account id.
        sequence: Sequence number of this transaction (account seq + 1).
        fee: Total fee in stroops.
        memo: Final memo.
        operations: Ordered operations, at least one.
        min_time: Lower time bound (0 = none).
        max_time: Upper time bound, unix seconds.
        network_passphrase: Network the envelope is bound to.
        multisig: Whether the multisig surcharge was applied.
    """

    source_account: str
    sequence: int
    fee: int
    memo: Memo
    operations: tuple[Operation, ...]
    min_time: int
    max_time: int
    network_passphrase: str
    multisig: bool = False

    def __post_init__(self) -> None:
        if not self.operations:
            raise ValueError("operations must be non-empty")
        minimum = transaction_fee(BASE_FEE, len(self.operations), self.multisig)
        if self.fee < minimum:
            raise ValueError(f"fee {self.fee} below minimum {minimum}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_account": self.source_account,
            "sequence": str(self.sequence),
            "fee": self.fee,
            "memo": self.memo.to_dict(),
            "operations": [operation.to_dict() for operation in self.operations],
            "time_bounds": {"min_time": self.min_time, "max_time": self.max_time},
            "network_passphrase": self.network_passphrase,
        }

    def digest(self) -> str:
        """Content digest of the unsigned envelope ("sha256:...")."""
        return content_digest(self.to_dict())


# =========================================================================
# assemble_payment()
# =========================================================================


def _final_memo(intent: PaymentIntent, requirement: MemoRequirement) -> Memo:
    if requirement.state is MemoState.MANDATED_BY_FEDERATION:
        return build_memo(requirement.memo_type or "none", requirement.memo_value or "", requirement)
    return build_memo(intent.memo_type, intent.memo_value, requirement)


def assemble_payment(
    source: AccountData,
    intent: PaymentIntent,
    resolution: DestinationResolution,
    network: NetworkState,
    *,
    spendable: Decimal,
    memo_requirement: MemoRequirement = DEFAULT_REQUIREMENT,
    eventual_amount: Decimal | str | None = None,
    valid_for: int = DEFAULT_VALID_FOR,
) -> AssembledTransaction:
    """Build the unsigned payment transaction.

    Args:
        source: Paying account.
        intent: What the user asked for.
        resolution: Resolution of ``intent.destination``.
        network: Sequence, base fee, passphrase, destination existence.
        spendable: Spendable balance of ``intent.asset``, in asset units.
        memo_requirement: Final memo decision for the destination.
        eventual_amount: Amount in asset units. Required when the intent
            is denominated in a fiat currency; defaults to intent.amount.
        valid_for: Seconds until the envelope expires.

    Returns:
        AssembledTransaction.

    Raises:
        ValidationError: Stale resolution, untrusted asset, invalid or
            excessive amount, or invalid memo.
    """
    if resolution.destination != intent.destination.strip():
        raise ValidationError(
            "Destination changed since it was resolved",
            field="destination",
            details={"resolved": resolution.destination, "requested": intent.destination},
        )

    # 1. Transfer asset
    asset = intent.asset
    if not asset.is_native and find_matching_balance_line(source.balances, asset) is None:
        raise ValidationError(
            f"Asset {asset.canonical()} is not trusted by the source account", field="asset"
        )

    # 2. Amount (in asset units)
    if eventual_amount is None:
        if intent.in_currency:
            raise ValidationError(
                "A currency-denominated payment needs the converted asset amount",
                field="amount",
            )
        eventual_amount = intent.amount
    requested = parse_amount(eventual_amount)
    if requested > spendable:
        raise ValidationError(
            "Not enough funds",
            field="amount",
            details={"amount": format(requested, "f"), "spendable": format(spendable, "f")},
        )
    amount = format_amount(requested)

    # 3. Operation
    operation = plan_payment_operation(
        resolution.account_id, asset, amount, network.destination_exists
    )
    operations = (operation,)

    # 4. Memo
    memo = _final_memo(intent, memo_requirement)

    # 5. Fee
    multisig = source.is_multisig
    fee = transaction_fee(network.base_fee, len(operations), multisig)

    # 6. Envelope
    now = network.now or datetime.now(timezone.utc)
    return AssembledTransaction(
        source_account=source.account_id,
        sequence=network.sequence + 1,
        fee=fee,
        memo=memo,
        operations=operations,
        min_time=0,
        max_time=int(now.timestamp()) + valid_for,
        network_passphrase=network.network_passphrase,
        multisig=multisig,
    )
