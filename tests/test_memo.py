"""
Tests for memo policy and memo construction.

Test plan:
- decide_memo_requirement: federation beats directory beats default
- MemoPolicyEngine: transitions on resolution/record events, a record
  for another account is ignored, reset returns to DEFAULT
- validate_memo: text byte limit (UTF-8), id format and range, required
  memo missing, federation mismatch, unsupported type
- build_memo / infer_memo_type / Memo.to_dict
"""

import pytest

from nexus_pay.errors import ValidationError
from nexus_pay.memo import (
    DEFAULT_REQUIREMENT,
    MAX_ID_MEMO,
    Memo,
    MemoPolicyEngine,
    MemoState,
    build_memo,
    decide_memo_requirement,
    infer_memo_type,
    validate_memo,
)
from nexus_pay.models import DestinationResolution, DirectoryRecord, MandatedMemo
from nexus_pay.stellar.strkey import encode_public_key

EXCHANGE = encode_public_key(bytes([5]) * 32)
OTHER = encode_public_key(bytes([6]) * 32)

PLAIN = DestinationResolution(destination=EXCHANGE, account_id=EXCHANGE)
FEDERATED = DestinationResolution(
    destination="deposit*exchange.com",
    account_id=EXCHANGE,
    mandated_memo=MandatedMemo(type="id", value="42"),
    federated=True,
)
MEMO_REQUIRED = DirectoryRecord(
    account_id=EXCHANGE, tags=frozenset({"exchange", "memo-required"}), display_name="Big Exchange"
)
LISTED = DirectoryRecord(account_id=EXCHANGE, tags=frozenset({"exchange"}))


# ---------------------------------------------------------------------------
# Policy decision
# ---------------------------------------------------------------------------


class TestDecide:
    def test_default(self) -> None:
        assert decide_memo_requirement(PLAIN, None) == DEFAULT_REQUIREMENT
        assert decide_memo_requirement(PLAIN, LISTED) == DEFAULT_REQUIREMENT
        assert decide_memo_requirement(None, None) == DEFAULT_REQUIREMENT

    def test_directory(self) -> None:
        requirement = decide_memo_requirement(PLAIN, MEMO_REQUIRED)
        assert requirement.state is MemoState.MANDATED_BY_DIRECTORY
        assert requirement.required
        assert requirement.editable
        assert requirement.memo_type is None
        assert requirement.recipient_name == "Big Exchange"
        assert requirement.placeholder == "memo.placeholder.mandatory"

    def test_federation_beats_directory(self) -> None:
        requirement = decide_memo_requirement(FEDERATED, MEMO_REQUIRED)
        assert requirement.state is MemoState.MANDATED_BY_FEDERATION
        assert requirement.required
        assert not requirement.editable
        assert (requirement.memo_type, requirement.memo_value) == ("id", "42")
        assert requirement.label == "memo.label.id"


class TestPolicyEngine:
    def test_transitions(self) -> None:
        engine = MemoPolicyEngine()
        assert engine.state is MemoState.DEFAULT

        engine.on_destination_resolved(PLAIN)
        assert engine.state is MemoState.DEFAULT
        engine.on_directory_record(MEMO_REQUIRED)
        assert engine.state is MemoState.MANDATED_BY_DIRECTORY

        engine.on_destination_resolved(FEDERATED)
        assert engine.state is MemoState.MANDATED_BY_FEDERATION

        engine.reset()
        assert engine.requirement == DEFAULT_REQUIREMENT

    def test_record_for_other_account_ignored(self) -> None:
        engine = MemoPolicyEngine()
        engine.on_destination_resolved(DestinationResolution(OTHER, OTHER))
        engine.on_directory_record(MEMO_REQUIRED)
        assert engine.state is MemoState.DEFAULT

    def test_new_account_drops_old_record(self) -> None:
        engine = MemoPolicyEngine()
        engine.on_destination_resolved(PLAIN)
        engine.on_directory_record(MEMO_REQUIRED)
        engine.on_destination_resolved(DestinationResolution(OTHER, OTHER))
        assert engine.state is MemoState.DEFAULT

    def test_cleared_destination(self) -> None:
        engine = MemoPolicyEngine()
        engine.on_destination_resolved(FEDERATED)
        engine.on_destination_resolved(None)
        assert engine.state is MemoState.DEFAULT


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidate:
    def test_text_limit_is_bytes(self) -> None:
        validate_memo("text", "x" * 28)
        with pytest.raises(ValidationError, match="28 bytes"):
            validate_memo("text", "x" * 29)
        # 10 × 3-byte characters
        with pytest.raises(ValidationError) as exc_info:
            validate_memo("text", "€" * 10)
        assert exc_info.value.field == "memo"
        assert exc_info.value.details["length"] == 30

    @pytest.mark.parametrize("value", ["0", "42", str(MAX_ID_MEMO)])
    def test_valid_id(self, value: str) -> None:
        validate_memo("id", value)

    @pytest.mark.parametrize("value", ["abc", "-1", "1.5", "", " 1", str(MAX_ID_MEMO + 1)])
    def test_invalid_id(self, value: str) -> None:
        with pytest.raises(ValidationError, match="64-bit"):
            validate_memo("id", value)

    def test_required_memo_missing(self) -> None:
        requirement = decide_memo_requirement(PLAIN, MEMO_REQUIRED)
        with pytest.raises(ValidationError, match="Set a memo when sending funds to Big Exchange"):
            validate_memo("none", "", requirement)
        validate_memo("text", "user 1234", requirement)

    def test_required_without_name(self) -> None:
        record = DirectoryRecord(account_id=EXCHANGE, tags=frozenset({"memo-required"}))
        requirement = decide_memo_requirement(PLAIN, record)
        with pytest.raises(ValidationError, match="this destination"):
            validate_memo("none", "", requirement)

    def test_federation_mismatch(self) -> None:
        requirement = decide_memo_requirement(FEDERATED, None)
        validate_memo("id", "42", requirement)
        with pytest.raises(ValidationError, match="federation"):
            validate_memo("id", "43", requirement)
        with pytest.raises(ValidationError, match="federation"):
            validate_memo("text", "42", requirement)

    def test_unsupported_type(self) -> None:
        with pytest.raises(ValidationError, match="Unsupported"):
            validate_memo("hash", "00")  # type: ignore[arg-type]


class TestBuild:
    def test_none(self) -> None:
        assert build_memo("none", "") == Memo()
        assert Memo().to_dict() == {"type": "none"}

    def test_text(self) -> None:
        memo = build_memo("text", "thanks")
        assert memo.to_dict() == {"type": "text", "value": "thanks"}

    def test_invalid_raises(self) -> None:
        with pytest.raises(ValidationError):
            build_memo("id", "x")

    @pytest.mark.parametrize(
        ("value", "current", "expected"),
        [("", "text", "none"), ("hi", "none", "text"), ("7", "id", "id"), ("", "id", "none")],
    )
    def test_infer_type(self, value: str, current: str, expected: str) -> None:
        assert infer_memo_type(value, current) == expected  # type: ignore[arg-type]
