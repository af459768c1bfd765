"""
Canonical JSON serialization for deterministic transaction digests.

Sorted keys, no whitespace, UTF-8. Decimal values are written as their
plain string form so amounts never pass through float.
"""

import hashlib
import json
from decimal import Decimal
from typing import Any


def _encode_default(value: Any) -> str:
    if isinstance(value, Decimal):
        return format(value, "f")
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def canonical_json(obj: Any) -> str:
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
        default=_encode_default,
    )


def canonical_json_bytes(obj: Any) -> bytes:
    return canonical_json(obj).encode("utf-8")


def content_digest(obj: Any) -> str:
    """Prefixed SHA256 of the canonical JSON form: "sha256:<64 hex>"."""
    return f"sha256:{hashlib.sha256(canonical_json_bytes(obj)).hexdigest()}"
