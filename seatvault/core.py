"""
Core types and pure helpers for the seat auction and treasury vault.

This module provides the foundations every engine builds on:
1. Decimal context and fixed-point helpers (amount validation, quantization,
   base-unit conversion)
2. Exceptions: SeatVaultError and the user / structural / adapter families
3. Operation names used in audit records
4. Canonical serialization for content hashing
5. OperationGuard: per-instance serialization with reentrancy detection

Nothing in this module mutates engine state.
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_EVEN, getcontext
from typing import Any, Iterator, Optional, Union
import threading


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# All settlement arithmetic is Decimal. The global context is configured once
# at import time; code needing a different context must use localcontext().
#
_SEATVAULT_DECIMAL_CONTEXT = getcontext()
_SEATVAULT_DECIMAL_CONTEXT.prec = 50
_SEATVAULT_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Shares, prices, pot balances and token amounts all carry 18 decimal places.
AMOUNT_DECIMAL_PLACES = 18
AMOUNT_QUANTUM = Decimal(1).scaleb(-AMOUNT_DECIMAL_PLACES)

# One whole token (or one share, or one unit of adapter liquidity) is
# 10**18 integer base units on an external ledger.
BASE_UNIT_SCALE = 10 ** AMOUNT_DECIMAL_PLACES

ZERO = Decimal("0")
ONE = Decimal("1")

# Slack allowed when comparing adapter reports against expected deltas.
ADAPTER_TOLERANCE = Decimal("1e-12")

# Operation names recorded in the audit log.
OP_GENESIS = "genesis"
OP_TAKE_SEAT = "take_seat"
OP_CLAIM_REWARD = "claim_reward"
OP_PAUSE = "pause"
OP_UNPAUSE = "unpause"
OP_DEPOSIT = "deposit"
OP_WITHDRAW = "withdraw"
OP_HARVEST = "harvest"
OP_RAID = "raid"
OP_SWEETEN = "sweeten"
OP_ALLOWLIST = "allowlist"
OP_MIGRATE = "migrate"
OP_HALT = "halt"
OP_RESUME = "resume"

AmountLike = Union[Decimal, int, str]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class SeatVaultError(Exception):
    """Base exception for all auction and vault errors."""
    pass


class UserError(SeatVaultError):
    """Recoverable error reported to the caller. No state was changed."""
    pass


class PriceNotMet(UserError):
    """Raised when a bid is below the current auction price."""
    pass


class NotHolder(UserError):
    """Raised when a non-holder claims the seat's emission."""
    pass


class InsufficientShares(UserError):
    """Raised when a party spends more shares than it holds."""
    pass


class ZeroDeposit(UserError):
    """Raised when a deposit would add zero liquidity."""
    pass


class Reentrant(UserError):
    """Raised when an operation is re-entered while the instance is locked."""
    pass


class AuctionPaused(UserError):
    """Raised when take_seat is attempted while the operator has paused the seat."""
    pass


class NotOperator(UserError):
    """Raised when an admin transition is attempted by a non-operator."""
    pass


class NotAllowlisted(UserError):
    """Raised when a party outside the deposit allow-list deposits."""
    pass


class InvalidAmount(UserError, ValueError):
    """Raised when an amount is negative, non-finite, or of the wrong type."""
    pass


class InvalidParty(UserError, ValueError):
    """Raised when a party identifier is missing, blank, or not a string."""
    pass


class StructuralError(SeatVaultError):
    """
    Invariant or structural failure.

    These must be unreachable by construction. When one is raised the engine
    halts all further mutating operations until an operator reconciles it.
    """
    pass


class InsufficientBacking(StructuralError):
    """Raised when a withdrawal would redeem more shares than the reported backing."""
    pass


class InvariantViolation(StructuralError):
    """Raised when a proposed post-state would violate a share or pot invariant."""
    pass


class InstanceHalted(StructuralError):
    """Raised when a mutating call reaches an instance halted by a structural error."""
    pass


class AdapterError(SeatVaultError):
    """Raised when the external position adapter fails or reports inconsistent results."""
    pass


class InvalidConfiguration(SeatVaultError, ValueError):
    """Raised when a configuration object is constructed with invalid parameters."""
    pass


# ============================================================================
# AMOUNT HELPERS
# ============================================================================

def to_amount(value: AmountLike, name: str = "amount", allow_zero: bool = True) -> Decimal:
    """
    Validate and convert a caller-supplied amount to a non-negative Decimal.

    Floats and bools are rejected rather than converted: a float has already
    lost precision by the time it reaches us.

    Raises:
        InvalidAmount: If the value has the wrong type, is not finite, is
            negative, or is zero when allow_zero is False.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmount(f"{name} must be Decimal, int or str, got {type(value).__name__}")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, str)):
        try:
            amount = Decimal(value)
        except ArithmeticError as e:
            raise InvalidAmount(f"{name} is not a number: {value!r}") from e
    else:
        raise InvalidAmount(f"{name} must be Decimal, int or str, got {type(value).__name__}")
    if not amount.is_finite():
        raise InvalidAmount(f"{name} must be finite, got {amount}")
    if amount < ZERO:
        raise InvalidAmount(f"{name} must be non-negative, got {amount}")
    if not allow_zero and amount == ZERO:
        raise InvalidAmount(f"{name} must be positive, got {amount}")
    return amount


def to_party(value: Any, name: str = "party") -> str:
    """
    Validate a caller-supplied party identifier.

    Share balances and replay sort parties by name, so every party must be a
    non-blank str.

    Raises:
        InvalidParty: If the value is not a str or is blank
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidParty(f"{name} must be a non-empty string, got {value!r}")
    return value


def quantize_amount(value: Decimal) -> Decimal:
    """Quantize to AMOUNT_DECIMAL_PLACES, rounding toward zero."""
    return value.quantize(AMOUNT_QUANTUM, rounding=ROUND_DOWN)


def to_base_units(amount: Decimal) -> int:
    """Convert a whole-token amount to integer base units (x 10**18), truncating dust."""
    return int(quantize_amount(amount).scaleb(AMOUNT_DECIMAL_PLACES))


def from_base_units(units: int) -> Decimal:
    """Convert integer base units back to a whole-token Decimal amount."""
    if isinstance(units, bool) or not isinstance(units, int):
        raise InvalidAmount(f"base units must be int, got {type(units).__name__}")
    return Decimal(units).scaleb(-AMOUNT_DECIMAL_PLACES)


def duration_micros(delta: timedelta) -> int:
    """Exact length of a timedelta in integer microseconds."""
    return (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds


# ============================================================================
# CANONICAL SERIALIZATION
# ============================================================================

def _normalize_decimal(d: Decimal) -> str:
    """
    Normalize a Decimal to a canonical string.

    Decimal("1.0") and Decimal("1.00") both become "1"; fixed-point notation
    is used so that equal values always serialize identically.
    """
    normalized = d.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Independent of dict insertion order and Decimal representation.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return f"D:{_normalize_decimal(value)}"
    if isinstance(value, (int, float)):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, datetime):
        return f"T:{value.isoformat()}"
    if isinstance(value, timedelta):
        return f"P:{duration_micros(value)}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    return f"R:{repr(value)}"


# ============================================================================
# OPERATION GUARD
# ============================================================================

class OperationGuard:
    """
    Exclusive per-instance lock that also detects reentrancy.

    Every mutating operation on an engine runs inside hold(). A second
    operation from another thread blocks until the first completes, which
    gives the single-writer, total-order semantics the engines rely on.
    A call from the thread that already holds the guard (for instance an
    adapter callback that tries to deposit while a harvest is running) is
    rejected with Reentrant instead of deadlocking or interleaving.
    """

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self._owner: Optional[int] = None
        self._operation: Optional[str] = None

    @property
    def held(self) -> bool:
        return self._owner is not None

    def held_by_current_thread(self) -> bool:
        return self._owner == threading.get_ident()

    @contextmanager
    def hold(self, operation: str) -> Iterator[None]:
        me = threading.get_ident()
        if self._owner == me:
            raise Reentrant(
                f"{self.name}: {operation} re-entered while {self._operation} is in progress"
            )
        with self._lock:
            self._owner = me
            self._operation = operation
            try:
                yield
            finally:
                self._owner = None
                self._operation = None

    @contextmanager
    def read(self) -> Iterator[None]:
        """
        Consistent read of committed state.

        On the owning thread the lock is already held and state is only
        committed at the end of an operation, so the read proceeds unlocked.
        """
        if self._owner == threading.get_ident():
            yield
            return
        with self._lock:
            yield
