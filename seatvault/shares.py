"""
shares.py - Receipt-Share Supply

ShareLedger tracks who owns how much of the vault's external position.
One share is one unit of adapter liquidity.

Mutations are two-phase so that an operation that fails half way leaves the
ledger untouched:

    plan = ledger.plan_mint("alice", Decimal("50"))   # pure, validates
    ShareLedger.check_backing(plan.new_total, backing, allowance)  # pure
    ledger.apply(plan)                                 # commit

Invariants:
    sum(balances) == total_shares
    total_shares  <= backing + fee_margin_allowance
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Tuple

from .core import (
    ZERO,
    InsufficientShares, InvariantViolation,
)


@dataclass(frozen=True, slots=True)
class SharePlan:
    """
    A validated, not-yet-applied change to the share ledger.

    Attributes:
        party: Account whose balance changes
        delta: Signed change (positive mints, negative burns)
        new_balance: Party balance after apply()
        new_total: total_shares after apply()
    """
    party: str
    delta: Decimal
    new_balance: Decimal
    new_total: Decimal


class ShareLedger:
    """Fungible receipt-token supply with per-party balances."""

    def __init__(self):
        self._balances: Dict[str, Decimal] = {}
        self._total: Decimal = ZERO

    @property
    def total_shares(self) -> Decimal:
        return self._total

    def balance_of(self, party: str) -> Decimal:
        return self._balances.get(party, ZERO)

    def holders(self) -> Dict[str, Decimal]:
        """All non-zero balances, sorted by party for deterministic iteration."""
        return {p: self._balances[p] for p in sorted(self._balances)}

    def plan_mint(self, party: str, amount: Decimal) -> SharePlan:
        if amount <= ZERO:
            raise InvariantViolation(f"mint amount must be positive, got {amount}")
        return SharePlan(
            party=party,
            delta=amount,
            new_balance=self.balance_of(party) + amount,
            new_total=self._total + amount,
        )

    def plan_burn(self, party: str, amount: Decimal) -> SharePlan:
        balance = self.balance_of(party)
        if amount > balance:
            raise InsufficientShares(
                f"{party} holds {balance} shares, cannot burn {amount}"
            )
        if amount > self._total:
            raise InvariantViolation(
                f"burn of {amount} exceeds total supply {self._total}"
            )
        return SharePlan(
            party=party,
            delta=-amount,
            new_balance=balance - amount,
            new_total=self._total - amount,
        )

    @staticmethod
    def check_backing(total: Decimal, backing: Decimal, allowance: Decimal) -> None:
        """Raise InvariantViolation unless total <= backing + allowance."""
        if total > backing + allowance:
            raise InvariantViolation(
                f"share supply {total} exceeds backing {backing} + fee margin {allowance}"
            )

    def apply(self, plan: SharePlan) -> None:
        """Commit a plan produced by plan_mint/plan_burn against the current state."""
        expected_total = self._total + plan.delta
        expected_balance = self.balance_of(plan.party) + plan.delta
        if expected_total != plan.new_total or expected_balance != plan.new_balance:
            raise InvariantViolation(
                f"stale share plan for {plan.party}: ledger moved since it was computed"
            )
        if plan.new_balance == ZERO:
            self._balances.pop(plan.party, None)
        else:
            self._balances[plan.party] = plan.new_balance
        self._total = plan.new_total

    def verify(self) -> Tuple[bool, Decimal]:
        """
        Recompute the supply from balances.

        Returns:
            (matches, recomputed_total)
        """
        recomputed = sum((self._balances[p] for p in sorted(self._balances)), ZERO)
        return recomputed == self._total, recomputed

    def __repr__(self) -> str:
        return f"ShareLedger(total={self._total}, holders={len(self._balances)})"
