"""
adapter.py - Boundary to the External Yield-Bearing Position

The vault never owns liquidity directly. It talks to an external position
(an AMM liquidity position in production) through the narrow
ExternalPositionAdapter protocol:

- deposit_liquidity(amount_a, amount_b) -> liquidity_delta
- withdraw_liquidity(share_fraction)    -> (amount_a, amount_b)
- collect_yield()                       -> (yield_a, yield_b)
- report_backing()                      -> liquidity attributable to the vault

All four are treated as atomic and synchronous. Their results are trusted
but verified: the vault cross-checks every report before it commits.

InMemoryPosition is a reference implementation of a two-asset proportional
pool, used for tests, examples and simulations.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_UP
from typing import Callable, Optional, Protocol, Tuple, runtime_checkable

from .core import (
    ZERO, ONE, AMOUNT_QUANTUM,
    AdapterError,
    quantize_amount, to_amount,
)


@runtime_checkable
class ExternalPositionAdapter(Protocol):
    """
    Protocol for the external liquidity position backing the vault's shares.

    Implementations must raise (ideally AdapterError) rather than return
    partial results; the vault aborts the enclosing operation on any
    exception and commits nothing.
    """

    def deposit_liquidity(self, amount_a: Decimal, amount_b: Decimal) -> Decimal:
        """Add tokens to the position; return the liquidity minted."""
        ...

    def withdraw_liquidity(self, share_fraction: Decimal) -> Tuple[Decimal, Decimal]:
        """Remove `share_fraction` (0 < f <= 1) of the position; return the tokens released."""
        ...

    def collect_yield(self) -> Tuple[Decimal, Decimal]:
        """Collect accrued fees/yield; return the amounts collected."""
        ...

    def report_backing(self) -> Decimal:
        """Current liquidity attributable to the vault."""
        ...


@dataclass(frozen=True, slots=True)
class PositionSnapshot:
    """Read-only view of the external position, owned by the adapter."""
    backing_amount: Decimal
    owed_a: Decimal
    owed_b: Decimal


@dataclass(frozen=True, slots=True)
class DepositReceipt:
    """What the last deposit actually used; the rest stays with the caller."""
    liquidity: Decimal
    used_a: Decimal
    used_b: Decimal
    refund_a: Decimal
    refund_b: Decimal


def _round_up(value: Decimal) -> Decimal:
    return value.quantize(AMOUNT_QUANTUM, rounding=ROUND_UP)


class InMemoryPosition:
    """
    Two-asset proportional liquidity position.

    The first deposit mints sqrt(a * b) liquidity. Later deposits mint
    min(a * L / A, b * L / B) and use tokens in the pool ratio; the excess is
    reported as a refund on last_deposit. Withdrawals release a pro-rata
    share of both reserves. Yield accrues separately in owed_a/owed_b until
    collected, as fees do on an AMM position.

    on_collect, when set, is called from inside collect_yield() before the
    yield is released, the way a token transfer hook would run.
    """

    def __init__(self, on_collect: Optional[Callable[[], None]] = None):
        self.reserve_a: Decimal = ZERO
        self.reserve_b: Decimal = ZERO
        self.liquidity: Decimal = ZERO
        self.owed_a: Decimal = ZERO
        self.owed_b: Decimal = ZERO
        self.on_collect = on_collect
        self.last_deposit: Optional[DepositReceipt] = None

    def deposit_liquidity(self, amount_a: Decimal, amount_b: Decimal) -> Decimal:
        amount_a = to_amount(amount_a, "amount_a")
        amount_b = to_amount(amount_b, "amount_b")
        if self.liquidity == ZERO:
            minted = quantize_amount((amount_a * amount_b).sqrt())
            used_a, used_b = amount_a, amount_b
        else:
            minted = quantize_amount(min(
                amount_a * self.liquidity / self.reserve_a,
                amount_b * self.liquidity / self.reserve_b,
            ))
            used_a = min(amount_a, _round_up(minted * self.reserve_a / self.liquidity))
            used_b = min(amount_b, _round_up(minted * self.reserve_b / self.liquidity))
        if minted == ZERO:
            self.last_deposit = DepositReceipt(ZERO, ZERO, ZERO, amount_a, amount_b)
            return ZERO
        self.reserve_a += used_a
        self.reserve_b += used_b
        self.liquidity += minted
        self.last_deposit = DepositReceipt(
            minted, used_a, used_b, amount_a - used_a, amount_b - used_b
        )
        return minted

    def withdraw_liquidity(self, share_fraction: Decimal) -> Tuple[Decimal, Decimal]:
        if not isinstance(share_fraction, Decimal) or not ZERO < share_fraction <= ONE:
            raise AdapterError(f"share_fraction must be in (0, 1], got {share_fraction!r}")
        if self.liquidity == ZERO:
            raise AdapterError("position holds no liquidity")
        if share_fraction == ONE:
            out_a, out_b, removed = self.reserve_a, self.reserve_b, self.liquidity
        else:
            out_a = quantize_amount(self.reserve_a * share_fraction)
            out_b = quantize_amount(self.reserve_b * share_fraction)
            removed = quantize_amount(self.liquidity * share_fraction)
        self.reserve_a -= out_a
        self.reserve_b -= out_b
        self.liquidity -= removed
        return out_a, out_b

    def collect_yield(self) -> Tuple[Decimal, Decimal]:
        if self.on_collect is not None:
            self.on_collect()
        collected = (self.owed_a, self.owed_b)
        self.owed_a = ZERO
        self.owed_b = ZERO
        return collected

    def report_backing(self) -> Decimal:
        return self.liquidity

    def accrue(self, yield_a: Decimal, yield_b: Decimal) -> None:
        """Simulate fee growth on the position."""
        self.owed_a += to_amount(yield_a, "yield_a")
        self.owed_b += to_amount(yield_b, "yield_b")

    def snapshot(self) -> PositionSnapshot:
        return PositionSnapshot(self.liquidity, self.owed_a, self.owed_b)

    def __repr__(self) -> str:
        return (f"InMemoryPosition(L={self.liquidity}, A={self.reserve_a}, B={self.reserve_b}, "
                f"owed=({self.owed_a}, {self.owed_b}))")
