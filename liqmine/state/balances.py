"""
Multi-asset holding balances with deterministic ordering.

Implements BalanceTable[Holder, AssetId] -> Amount, where a holder is either a
user identity or a derived vault address.
"""

from typing import Dict, Iterator, Tuple

from ..core.staking.math import U64_MAX


# Type aliases
Holder = str  # 0x-prefixed 48-byte hex (user pubkey or derived address)
AssetId = str  # 0x-prefixed 32-byte hex
Amount = int  # u64


class BalanceTable:
    """
    Balance table mapping (holder, asset) -> amount.

    Zero balances are omitted to keep the table sparse. Iteration helpers sort
    keys so callers never depend on dict insertion order.
    """

    def __init__(self) -> None:
        self._balances: Dict[Tuple[Holder, AssetId], Amount] = {}

    def get(self, holder: Holder, asset: AssetId) -> Amount:
        """Get balance for (holder, asset). Returns 0 if not found."""
        return self._balances.get((holder, asset), 0)

    def set(self, holder: Holder, asset: AssetId, amount: Amount) -> None:
        """
        Set balance for (holder, asset).

        Raises:
            ValueError: If amount is outside [0, 2**64 - 1]
        """
        if amount < 0:
            raise ValueError(f"Balance cannot be negative: {amount}")
        if amount > U64_MAX:
            raise ValueError(f"Balance exceeds u64: {amount}")
        if amount == 0:
            self._balances.pop((holder, asset), None)
        else:
            self._balances[(holder, asset)] = amount

    def add(self, holder: Holder, asset: AssetId, delta: int) -> None:
        """
        Add delta to balance (delta may be negative).

        Raises:
            ValueError: If the resulting balance would be negative or exceed u64
        """
        current = self.get(holder, asset)
        new_balance = current + delta
        if new_balance < 0:
            raise ValueError(
                f"Insufficient balance: {current} + {delta} = {new_balance} < 0"
            )
        self.set(holder, asset, new_balance)

    def subtract(self, holder: Holder, asset: AssetId, delta: Amount) -> None:
        """Subtract a non-negative amount from a balance."""
        if delta < 0:
            raise ValueError(f"Delta must be non-negative: {delta}")
        self.add(holder, asset, -delta)

    def copy(self) -> "BalanceTable":
        out = BalanceTable()
        out._balances = dict(self._balances)
        return out

    def items(self) -> Iterator[Tuple[Tuple[Holder, AssetId], Amount]]:
        """Iterate ((holder, asset), amount) in sorted key order."""
        for key in sorted(self._balances):
            yield key, self._balances[key]

    def get_balances_for_asset(self, asset: AssetId) -> Dict[Holder, Amount]:
        return {holder: amount for (holder, a), amount in self.items() if a == asset}

    def total_supply(self, asset: AssetId) -> Amount:
        return sum(self.get_balances_for_asset(asset).values())

    def __repr__(self) -> str:
        return f"BalanceTable({len(self._balances)} entries)"
