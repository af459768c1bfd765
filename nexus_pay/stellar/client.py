"""
Network client protocol — the ledger boundary.

The engine never talks to Horizon for submission, sequence numbers or
signing. It asks an injected NetworkClient for the network facts the
assembler needs and hands the unsigned envelope back to the caller,
which owns signing and submission.

Concrete implementations live with the caller; tests use a fake.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from nexus_pay.models import AccountData, NetworkState


@runtime_checkable
class NetworkClient(Protocol):
    """Interface for the network facts a payment depends on."""

    async def fetch_account(self, account_id: str) -> AccountData:
        """Balances, signers and subentry count of the source account."""
        ...

    async def fetch_network_state(
        self, source_account_id: str, destination_account_id: str
    ) -> NetworkState:
        """Sequence number, base fee, passphrase and destination existence."""
        ...
