"""
Memo policy and memo construction.

Policy states:
    DEFAULT                   memo optional, generic placeholder.
    MANDATED_BY_DIRECTORY     destination's directory record carries the
                              "memo-required" tag. Memo mandatory, value
                              left to the user.
    MANDATED_BY_FEDERATION    the federation record supplied memo and
                              memo_type. Both are forced and not editable.
                              Wins over MANDATED_BY_DIRECTORY.

Transitions are synchronous reactions to resolution events. There are no
timers.

Memo format (Stellar):
    - none
    - id:   strictly numeric, fits an unsigned 64-bit integer
    - text: at most 28 bytes UTF-8
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

import structlog

from nexus_pay.config import MAX_TEXT_MEMO_BYTES
from nexus_pay.errors import ValidationError
from nexus_pay.models import DestinationResolution, DirectoryRecord, MemoType

logger = structlog.get_logger(__name__)

MAX_ID_MEMO = 2**64 - 1

_ID_MEMO_RE = re.compile(r"^[0-9]+$")


class MemoState(str, Enum):
    DEFAULT = "default"
    MANDATED_BY_DIRECTORY = "mandated_by_directory"
    MANDATED_BY_FEDERATION = "mandated_by_federation"


@dataclass(frozen=True)
class MemoRequirement:
    """What the memo field must look like for the current destination.

    Attributes:
        state: Policy state.
        required: Whether an empty memo blocks the payment.
        editable: False when the federation record fixes the memo.
        memo_type: Forced type (federation only), else None.
        memo_value: Forced value (federation only), else None.
        label: Copy key for the field label.
        placeholder: Copy key for the field placeholder.
        recipient_name: Directory display name, for messages.
    """

    state: MemoState = MemoState.DEFAULT
    required: bool = False
    editable: bool = True
    memo_type: MemoType | None = None
    memo_value: str | None = None
    label: str = "memo.label.default"
    placeholder: str = "memo.placeholder.optional"
    recipient_name: str | None = None


DEFAULT_REQUIREMENT = MemoRequirement()


def decide_memo_requirement(
    resolution: DestinationResolution | None,
    record: DirectoryRecord | None,
) -> MemoRequirement:
    """Pure policy decision. Federation beats directory beats default."""
    recipient_name = (record.display_name or None) if record is not None else None

    if resolution is not None and resolution.mandated_memo is not None:
        mandated = resolution.mandated_memo
        return MemoRequirement(
            state=MemoState.MANDATED_BY_FEDERATION,
            required=True,
            editable=False,
            memo_type=mandated.type,
            memo_value=mandated.value,
            label=f"memo.label.{mandated.type}",
            placeholder="memo.placeholder.optional",
            recipient_name=recipient_name,
        )

    if record is not None and record.memo_required:
        return MemoRequirement(
            state=MemoState.MANDATED_BY_DIRECTORY,
            required=True,
            label="memo.label.required",
            placeholder="memo.placeholder.mandatory",
            recipient_name=recipient_name,
        )

    return DEFAULT_REQUIREMENT


class MemoPolicyEngine:
    """Holds the latest resolution and directory record, and the resulting state.

    The directory record is matched against the resolved account id; a
    record for another account is ignored.
    """

    def __init__(self) -> None:
        self._resolution: DestinationResolution | None = None
        self._record: DirectoryRecord | None = None
        self._requirement = DEFAULT_REQUIREMENT

    @property
    def requirement(self) -> MemoRequirement:
        return self._requirement

    @property
    def state(self) -> MemoState:
        return self._requirement.state

    def _recompute(self) -> MemoRequirement:
        record = self._record
        if (
            record is not None
            and self._resolution is not None
            and record.account_id != self._resolution.account_id
        ):
            record = None
        requirement = decide_memo_requirement(self._resolution, record)
        if requirement.state != self._requirement.state:
            logger.debug(
                "memo_policy_transition",
                previous=self._requirement.state.value,
                current=requirement.state.value,
            )
        self._requirement = requirement
        return requirement

    def on_destination_resolved(self, resolution: DestinationResolution | None) -> MemoRequirement:
        if resolution is None or (
            self._resolution is not None
            and resolution.account_id != self._resolution.account_id
        ):
            self._record = None
        self._resolution = resolution
        return self._recompute()

    def on_directory_record(self, record: DirectoryRecord | None) -> MemoRequirement:
        self._record = record
        return self._recompute()

    def reset(self) -> MemoRequirement:
        self._resolution = None
        self._record = None
        return self._recompute()


# =========================================================================
# Memo values
# =========================================================================


@dataclass(frozen=True)
class Memo:
    type: MemoType = "none"
    value: str = ""

    def to_dict(self) -> dict[str, str]:
        if self.type == "none":
            return {"type": "none"}
        return {"type": self.type, "value": self.value}


def infer_memo_type(value: str, current: MemoType) -> MemoType:
    """Memo type after the user typed ``value``.

    Empty clears the memo; typing into a "none" memo makes it text;
    otherwise the chosen type is kept.
    """
    if not value:
        return "none"
    if current == "none":
        return "text"
    return current


def validate_memo(
    memo_type: MemoType,
    value: str,
    requirement: MemoRequirement = DEFAULT_REQUIREMENT,
) -> None:
    """Raise ValidationError if the memo breaks format or policy."""
    if memo_type not in ("none", "id", "text"):
        raise ValidationError(f"Unsupported memo type {memo_type!r}", field="memo")
    if memo_type == "text" and len(value.encode("utf-8")) > MAX_TEXT_MEMO_BYTES:
        raise ValidationError(
            f"Text memo exceeds {MAX_TEXT_MEMO_BYTES} bytes",
            field="memo",
            details={"length": len(value.encode("utf-8"))},
        )
    if memo_type == "id":
        if not _ID_MEMO_RE.match(value) or int(value) > MAX_ID_MEMO:
            raise ValidationError(
                "ID memo must be an unsigned 64-bit integer", field="memo", details={"value": value}
            )
    if requirement.required and (memo_type == "none" or not value):
        recipient = requirement.recipient_name or "this destination"
        raise ValidationError(f"Set a memo when sending funds to {recipient}", field="memo")

    if requirement.state is MemoState.MANDATED_BY_FEDERATION and (
        memo_type != requirement.memo_type or value != requirement.memo_value
    ):
        raise ValidationError(
            "Memo must match the one required by the federation server",
            field="memo",
            details={"expected_type": requirement.memo_type, "expected_value": requirement.memo_value},
        )


def build_memo(
    memo_type: MemoType,
    value: str,
    requirement: MemoRequirement = DEFAULT_REQUIREMENT,
) -> Memo:
    """Validated Memo for the transaction.

    Raises:
        ValidationError: See validate_memo().
    """
    validate_memo(memo_type, value, requirement)
    if memo_type == "none":
        return Memo()
    return Memo(type=memo_type, value=value)
