"""
Request-generation tagging for stale-result rejection.

Each logical slot (e.g. "destination") holds its latest request ticket.
Starting a new request bumps the slot's generation; a result is applied
only if its ticket is still the latest for the slot when it arrives.
A slow earlier lookup can therefore never overwrite a faster later one.
"""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass


@dataclass(frozen=True)
class RequestTicket:
    """Tag carried by one request.

    Attributes:
        slot: Logical slot the request writes to.
        generation: Monotonically increasing per slot, starting at 1.
        key: The request's input (e.g. the destination string).
    """

    slot: str
    generation: int
    key: Hashable = None


class RequestSequencer:
    """Tracks the latest request per slot."""

    def __init__(self) -> None:
        self._latest: dict[str, RequestTicket] = {}

    def begin(self, slot: str, key: Hashable = None) -> RequestTicket:
        """Start a request for slot, superseding any earlier one."""
        previous = self._latest.get(slot)
        generation = previous.generation + 1 if previous is not None else 1
        ticket = RequestTicket(slot=slot, generation=generation, key=key)
        self._latest[slot] = ticket
        return ticket

    def is_current(self, ticket: RequestTicket) -> bool:
        """True if no request for the ticket's slot began after it."""
        return self._latest.get(ticket.slot) == ticket

    def latest(self, slot: str) -> RequestTicket | None:
        return self._latest.get(slot)

    def reset(self, slot: str) -> None:
        """Forget the slot. Every outstanding ticket for it becomes stale."""
        previous = self._latest.get(slot)
        if previous is not None:
            # Keep counting so an old ticket can never match again.
            self._latest[slot] = RequestTicket(slot, previous.generation + 1, key=None)
