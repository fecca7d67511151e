"""Balance oracle contract for balance-weighted classes.

One oracle per asset. The service resolves a class's ``asset``
reference to its oracle through BalanceRegistry.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class BalanceOracle(Protocol):
    """Reports an account's current balance of a single asset."""

    def balance_of(self, account: str) -> int:
        ...


class BalanceLedger:
    """In-memory BalanceOracle."""

    def __init__(self, balances: dict[str, int] | None = None) -> None:
        self._balances: dict[str, int] = dict(balances or {})

    def set_balance(self, account: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Balance cannot be negative: {amount}")
        self._balances[account] = amount

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)


class BalanceRegistry:
    """Maps asset references to their oracles."""

    def __init__(self, oracles: dict[str, BalanceOracle] | None = None) -> None:
        self._oracles: dict[str, BalanceOracle] = dict(oracles or {})

    def register(self, asset: str, oracle: BalanceOracle) -> None:
        if not asset:
            raise ValueError("Asset reference must not be empty")
        self._oracles[asset] = oracle

    def balance_of(self, asset: str, account: str) -> int:
        """Balance of ``account`` in ``asset``.

        Raises:
            LookupError: If no oracle is registered for the asset.
        """
        oracle = self._oracles.get(asset)
        if oracle is None:
            raise LookupError(f"No balance oracle registered for asset: {asset}")
        return oracle.balance_of(account)
