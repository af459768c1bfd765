"""
Stellar network boundary for nexus-pay.

Modules:
    - ``strkey`` — account id encoding and checksum validation.
    - ``transport`` — HttpTransport protocol and the httpx implementation.
    - ``federation`` — destination resolution, stellar.toml, latest-wins
      tracking.
    - ``directory`` — well-known account directory, cached, soft-failing.
    - ``prices`` — XLM reference price feed and order-book sources.
    - ``ticker`` — per-network asset list.
    - ``client`` — NetworkClient protocol (sequence, fees, accounts).

Nothing is re-exported here; ``nexus_pay.models`` depends on ``strkey``
and the other modules depend on ``nexus_pay.models``.
"""
