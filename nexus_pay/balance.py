"""
Spendable balance and reserve arithmetic.

Pure functions. The reserve only constrains the native asset; trustline
balances are spendable in full.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from nexus_pay.config import BASE_RESERVE
from nexus_pay.models import AccountData, Asset, BalanceLine

ZERO = Decimal(0)


def find_matching_balance_line(
    balances: Iterable[BalanceLine], asset: Asset
) -> BalanceLine | None:
    for line in balances:
        if line.asset == asset:
            return line
    return None


def account_minimum_balance(account: AccountData, base_reserve: Decimal = BASE_RESERVE) -> Decimal:
    """XLM the account must keep: two base entries plus one per subentry."""
    return (2 + account.subentry_count) * base_reserve


def spendable_balance(reserve: Decimal, line: BalanceLine | None) -> Decimal:
    """Amount of ``line.asset`` that can leave the account.

    Args:
        reserve: Account minimum balance, in XLM.
        line: Balance line for the asset, or None if the account holds none.

    Returns:
        ``max(0, balance - reserve)`` for XLM, ``max(0, balance)`` otherwise.
    """
    if line is None:
        return ZERO
    available = line.balance - reserve if line.asset.is_native else line.balance
    return max(ZERO, available)


def spendable_for(
    account: AccountData, asset: Asset, base_reserve: Decimal = BASE_RESERVE
) -> Decimal:
    return spendable_balance(
        account_minimum_balance(account, base_reserve),
        find_matching_balance_line(account.balances, asset),
    )
