"""
Error taxonomy for payment resolution and assembly.

Every error carries a machine-readable ``error_code`` and a ``details``
dict for diagnostics. Categories:

    - InvalidDestinationError: malformed input. Never retried — the user
      must correct the destination.
    - ResolutionError: transient network failures. Safe to retry on the
      next user-triggered resolution, never auto-retried in a loop.
        - FederationLookupError: federation descriptor or record failures.
        - BadResponseError: any HTTP response with status >= 400.
    - ValidationError: amount/memo/asset constraint violations. The
      transaction is never built.
    - DirectoryLookupFailure: soft. Reported to observability, treated as
      "no record", never blocks a payment.
"""

from __future__ import annotations

from typing import Any


class PaymentError(Exception):
    """Base exception for all nexus-pay errors."""

    def __init__(
        self,
        message: str,
        *,
        error_code: str = "PAYMENT_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class InvalidDestinationError(PaymentError):
    """Destination is neither a public key nor a federation address."""

    def __init__(self, destination: str) -> None:
        super().__init__(
            f"Invalid destination: {destination!r}",
            error_code="INVALID_DESTINATION",
            details={"destination": destination},
        )
        self.destination = destination


class ResolutionError(PaymentError):
    """Transient failure while resolving something over the network."""


class FederationLookupError(ResolutionError):
    """Federation descriptor unreachable/malformed, or name not found."""

    def __init__(
        self,
        message: str,
        *,
        address: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            error_code="FEDERATION_LOOKUP_FAILED",
            details={"address": address, **(details or {})},
        )
        self.address = address


class BadResponseError(ResolutionError):
    """HTTP response with status >= 400 from an upstream server."""

    def __init__(self, status: int, server: str, *, url: str | None = None) -> None:
        super().__init__(
            f"Bad response ({status}) from {server} server",
            error_code="BAD_RESPONSE",
            details={"status": status, "server": server, "url": url},
        )
        self.status = status
        self.server = server


class ValidationError(PaymentError):
    """An amount, memo, asset or destination constraint was violated."""

    def __init__(
        self,
        message: str,
        *,
        field: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            error_code="VALIDATION_FAILED",
            details={"field": field, **(details or {})},
        )
        self.field = field


class DirectoryLookupFailure(PaymentError):
    """The well-known account directory could not be consulted.

    Soft failure: never raised to callers of DirectoryLookup, only passed
    to the observability callback.
    """

    def __init__(self, account_id: str, reason: str) -> None:
        super().__init__(
            f"Directory lookup failed for {account_id}: {reason}",
            error_code="DIRECTORY_UNAVAILABLE",
            details={"account_id": account_id, "reason": reason},
        )
        self.account_id = account_id
