"""
Tests for payment transaction assembly.

Test plan:
- Amount parsing and formatting: comma separator, more than 7 decimals,
  non-positive and over-maximum amounts rejected, floats rejected
- Fee: base fee floor, multisig doubling, per-operation scaling
- Operation planning: payment vs create_account for unfunded accounts
- assemble_payment happy path: envelope fields, sequence + 1, time
  bounds, federation memo forced (memo id 42)
- Guards: stale resolution, untrusted asset, over-spendable amount,
  currency intent without converted amount, missing required memo
- AssembledTransaction invariants and deterministic digest
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from nexus_pay.config import MAINNET_PASSPHRASE
from nexus_pay.errors import ValidationError
from nexus_pay.memo import Memo, decide_memo_requirement
from nexus_pay.models import (
    AccountData,
    Asset,
    BalanceLine,
    DestinationResolution,
    DirectoryRecord,
    MandatedMemo,
    NetworkState,
    PaymentIntent,
)
from nexus_pay.stellar.strkey import encode_public_key
from nexus_pay.tx import (
    AssembledTransaction,
    Operation,
    assemble_payment,
    format_amount,
    parse_amount,
    plan_payment_operation,
    transaction_fee,
)

SOURCE = encode_public_key(bytes([10]) * 32)
COSIGNER = encode_public_key(bytes([11]) * 32)
DESTINATION = encode_public_key(bytes([12]) * 32)
ISSUER = encode_public_key(bytes([13]) * 32)

XLM = Asset.native()
USD = Asset("USD", ISSUER)
NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def make_account(*signers: str) -> AccountData:
    return AccountData(
        SOURCE,
        balances=(BalanceLine(XLM, Decimal("100")), BalanceLine(USD, Decimal("50"))),
        signers=signers or (SOURCE,),
        subentry_count=1,
    )


def make_network(**overrides: object) -> NetworkState:
    fields: dict[str, object] = {
        "sequence": 1000,
        "base_fee": 100,
        "network_passphrase": MAINNET_PASSPHRASE,
        "destination_exists": True,
        "now": NOW,
    }
    fields.update(overrides)
    return NetworkState(**fields)  # type: ignore[arg-type]


RAW = DestinationResolution(destination=DESTINATION, account_id=DESTINATION)
ALICE = DestinationResolution(
    destination="alice*example.com",
    account_id=DESTINATION,
    mandated_memo=MandatedMemo(type="id", value="42"),
    federated=True,
)


# ---------------------------------------------------------------------------
# Amounts and fees
# ---------------------------------------------------------------------------


class TestAmounts:
    def test_parse_comma(self) -> None:
        assert parse_amount("1,5") == Decimal("1.5")
        assert parse_amount(" 2 ") == Decimal(2)

    @pytest.mark.parametrize("value", ["", "abc", "1.2.3", "NaN", "Infinity"])
    def test_parse_invalid(self, value: str) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse_amount(value)
        assert exc_info.value.field == "amount"

    def test_parse_float_rejected(self) -> None:
        with pytest.raises(ValidationError, match="float"):
            parse_amount(1.5)  # type: ignore[arg-type]

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("10", "10"),
            ("1.2345678", "1.2345678"),
            ("0.0000001", "0.0000001"),
            ("5.5000000", "5.5"),
            (Decimal("100"), "100"),
        ],
    )
    def test_format_normalizes(self, value: object, expected: str) -> None:
        assert format_amount(value) == expected  # type: ignore[arg-type]

    @pytest.mark.parametrize("value", ["0", "-1"])
    def test_format_non_positive(self, value: str) -> None:
        with pytest.raises(ValidationError, match="greater than zero"):
            format_amount(value)

    @pytest.mark.parametrize("value", ["1.23456789", "0.00000001", "98.50000009"])
    def test_format_rejects_extra_decimals(self, value: str) -> None:
        with pytest.raises(ValidationError, match="more than 7 decimal places") as exc_info:
            format_amount(value)
        assert exc_info.value.field == "amount"

    def test_format_over_maximum(self) -> None:
        with pytest.raises(ValidationError, match="maximum"):
            format_amount("922337203686.4775808")


class TestFee:
    def test_single_signer(self) -> None:
        assert transaction_fee(100, 1, multisig=False) == 100

    def test_multisig_doubles(self) -> None:
        assert transaction_fee(100, 1, multisig=True) == 200

    def test_base_fee_floor(self) -> None:
        assert transaction_fee(50, 1, multisig=False) == 100
        assert transaction_fee(300, 2, multisig=True) == 1200

    def test_no_operations(self) -> None:
        with pytest.raises(ValueError):
            transaction_fee(100, 0, multisig=False)


class TestPlanOperation:
    def test_payment(self) -> None:
        op = plan_payment_operation(DESTINATION, USD, "5", destination_exists=True)
        assert op.type == "payment"
        assert op.to_dict()["asset"] == {
            "type": "credit_alphanum4",
            "code": "USD",
            "issuer": ISSUER,
        }

    def test_unknown_existence_is_payment(self) -> None:
        assert plan_payment_operation(DESTINATION, XLM, "5").type == "payment"

    def test_create_account(self) -> None:
        op = plan_payment_operation(DESTINATION, XLM, "5", destination_exists=False)
        assert op.to_dict() == {
            "type": "create_account",
            "destination": DESTINATION,
            "starting_balance": "5",
        }

    def test_create_account_below_minimum(self) -> None:
        with pytest.raises(ValidationError, match="at least"):
            plan_payment_operation(DESTINATION, XLM, "0.5", destination_exists=False)

    def test_unfunded_non_native(self) -> None:
        with pytest.raises(ValidationError, match="does not exist"):
            plan_payment_operation(DESTINATION, USD, "5", destination_exists=False)


# ---------------------------------------------------------------------------
# assemble_payment
# ---------------------------------------------------------------------------


class TestAssemble:
    def test_federated_payment_forces_memo(self) -> None:
        intent = PaymentIntent(destination="alice*example.com", asset=XLM, amount="10")
        requirement = decide_memo_requirement(ALICE, None)

        tx = assemble_payment(
            make_account(),
            intent,
            ALICE,
            make_network(),
            spendable=Decimal("98.5"),
            memo_requirement=requirement,
        )

        assert tx.memo == Memo(type="id", value="42")
        assert tx.operations == (Operation("payment", DESTINATION, XLM, "10"),)
        assert tx.source_account == SOURCE
        assert tx.sequence == 1001
        assert tx.fee == 100
        assert tx.min_time == 0
        assert tx.max_time == int(NOW.timestamp()) + 300
        assert tx.network_passphrase == MAINNET_PASSPHRASE

    def test_multisig_fee(self) -> None:
        intent = PaymentIntent(destination=DESTINATION, asset=XLM, amount="10")
        tx = assemble_payment(
            make_account(SOURCE, COSIGNER), intent, RAW, make_network(), spendable=Decimal("98.5")
        )
        assert tx.fee == 200
        assert tx.multisig

    def test_issued_asset_payment(self) -> None:
        intent = PaymentIntent(
            destination=DESTINATION, asset=USD, amount="12,5", memo_type="text", memo_value="rent"
        )
        tx = assemble_payment(make_account(), intent, RAW, make_network(), spendable=Decimal("50"))
        assert tx.operations[0].asset == USD
        assert tx.operations[0].amount == "12.5"
        assert tx.memo == Memo(type="text", value="rent")

    def test_currency_intent_uses_eventual_amount(self) -> None:
        intent = PaymentIntent(destination=DESTINATION, asset=XLM, amount="5", amount_type="EUR")
        tx = assemble_payment(
            make_account(),
            intent,
            RAW,
            make_network(),
            spendable=Decimal("98.5"),
            eventual_amount=Decimal("54.8245614"),
        )
        assert tx.operations[0].asset == XLM
        assert tx.operations[0].amount == "54.8245614"

    def test_currency_intent_without_eventual_amount(self) -> None:
        intent = PaymentIntent(destination=DESTINATION, asset=XLM, amount="5", amount_type="EUR")
        with pytest.raises(ValidationError, match="converted"):
            assemble_payment(make_account(), intent, RAW, make_network(), spendable=Decimal("98.5"))

    def test_create_account_for_unfunded_destination(self) -> None:
        intent = PaymentIntent(destination=DESTINATION, asset=XLM, amount="20")
        tx = assemble_payment(
            make_account(),
            intent,
            RAW,
            make_network(destination_exists=False),
            spendable=Decimal("98.5"),
        )
        assert tx.operations[0].type == "create_account"

    def test_over_spendable(self) -> None:
        intent = PaymentIntent(destination=DESTINATION, asset=XLM, amount="98.5000001")
        with pytest.raises(ValidationError, match="Not enough funds") as exc_info:
            assemble_payment(make_account(), intent, RAW, make_network(), spendable=Decimal("98.5"))
        assert exc_info.value.details["spendable"] == "98.5"

    def test_sub_stroop_excess_is_not_enough_funds(self) -> None:
        intent = PaymentIntent(destination=DESTINATION, asset=XLM, amount="98.50000009")
        with pytest.raises(ValidationError, match="Not enough funds") as exc_info:
            assemble_payment(make_account(), intent, RAW, make_network(), spendable=Decimal("98.5"))
        assert exc_info.value.details["amount"] == "98.50000009"

    def test_extra_decimals_within_spendable_rejected(self) -> None:
        intent = PaymentIntent(destination=DESTINATION, asset=XLM, amount="10.00000001")
        with pytest.raises(ValidationError, match="decimal places"):
            assemble_payment(make_account(), intent, RAW, make_network(), spendable=Decimal("98.5"))


    def test_exactly_spendable(self) -> None:
        intent = PaymentIntent(destination=DESTINATION, asset=XLM, amount="98.5")
        tx = assemble_payment(make_account(), intent, RAW, make_network(), spendable=Decimal("98.5"))
        assert tx.operations[0].amount == "98.5"

    def test_untrusted_asset(self) -> None:
        eurt = Asset("EURT", ISSUER)
        intent = PaymentIntent(destination=DESTINATION, asset=eurt, amount="1")
        with pytest.raises(ValidationError, match="not trusted") as exc_info:
            assemble_payment(make_account(), intent, RAW, make_network(), spendable=Decimal("0"))
        assert exc_info.value.field == "asset"

    def test_stale_resolution(self) -> None:
        intent = PaymentIntent(destination="bob*example.com", asset=XLM, amount="1")
        with pytest.raises(ValidationError, match="changed"):
            assemble_payment(make_account(), intent, ALICE, make_network(), spendable=Decimal("98.5"))

    def test_required_memo_missing(self) -> None:
        record = DirectoryRecord(
            account_id=DESTINATION, tags=frozenset({"memo-required"}), display_name="Big Exchange"
        )
        intent = PaymentIntent(destination=DESTINATION, asset=XLM, amount="1")
        with pytest.raises(ValidationError, match="Big Exchange"):
            assemble_payment(
                make_account(),
                intent,
                RAW,
                make_network(),
                spendable=Decimal("98.5"),
                memo_requirement=decide_memo_requirement(RAW, record),
            )


# ---------------------------------------------------------------------------
# AssembledTransaction
# ---------------------------------------------------------------------------


def make_tx(**overrides: object) -> AssembledTransaction:
    fields: dict[str, object] = {
        "source_account": SOURCE,
        "sequence": 1001,
        "fee": 100,
        "memo": Memo(),
        "operations": (Operation("payment", DESTINATION, XLM, "1"),),
        "min_time": 0,
        "max_time": 1714565100,
        "network_passphrase": MAINNET_PASSPHRASE,
    }
    fields.update(overrides)
    return AssembledTransaction(**fields)  # type: ignore[arg-type]


class TestAssembledTransaction:
    def test_requires_operations(self) -> None:
        with pytest.raises(ValueError, match="non-empty"):
            make_tx(operations=())

    def test_fee_floor(self) -> None:
        with pytest.raises(ValueError, match="below minimum"):
            make_tx(fee=99)
        with pytest.raises(ValueError, match="below minimum"):
            make_tx(fee=100, multisig=True)

    def test_to_dict(self) -> None:
        payload = make_tx().to_dict()
        assert payload["sequence"] == "1001"
        assert payload["memo"] == {"type": "none"}
        assert payload["time_bounds"] == {"min_time": 0, "max_time": 1714565100}
        assert payload["operations"][0]["asset"] == {"type": "native"}

    def test_digest_is_deterministic(self) -> None:
        assert make_tx().digest() == make_tx().digest()
        assert make_tx().digest().startswith("sha256:")
        assert make_tx().digest() != make_tx(sequence=1002).digest()
