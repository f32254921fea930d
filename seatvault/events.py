"""
events.py - Append-Only Audit Log and Replay

Every successful state transition of a SeatAuction or TreasuryVault appends
one AuditRecord:

    {operation, party, amounts, resulting_epoch_id, timestamp}

plus a sequence number and a SHA-256 digest chained to the previous record.
The log is the source of truth for reconciliation: replay_vault() and
replay_seat() rebuild share balances, pot and epochs from records alone, and
must agree with the live engine at all times.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Tuple
import hashlib
import threading

from .core import (
    ZERO,
    OP_GENESIS, OP_TAKE_SEAT, OP_CLAIM_REWARD, OP_PAUSE, OP_UNPAUSE,
    OP_DEPOSIT, OP_WITHDRAW, OP_HARVEST, OP_RAID, OP_SWEETEN,
    InvariantViolation,
    _canonicalize,
)
from .pricing import Epoch


GENESIS_DIGEST = "0" * 64


@dataclass(frozen=True, slots=True)
class AuditRecord:
    """
    Immutable record of one applied operation.

    Attributes:
        sequence: Position in the log (0-based, gapless)
        instance: Name of the engine that applied the operation
        operation: Operation name (see OP_* in core)
        party: Caller, or None for engine-initiated records
        amounts: Named Decimal amounts moved or set by the operation
        resulting_epoch_id: Auction epoch after the operation
        timestamp: Logical time of the operation
        counterparty: Other party affected (displaced holder, allow-listed account)
        previous_digest: Digest of the preceding record
        digest: SHA-256 over this record's canonical content and previous_digest
    """
    sequence: int
    instance: str
    operation: str
    party: Optional[str]
    amounts: Mapping[str, Decimal]
    resulting_epoch_id: int
    timestamp: datetime
    counterparty: Optional[str] = None
    previous_digest: str = GENESIS_DIGEST
    digest: str = field(default="")

    def __post_init__(self):
        object.__setattr__(self, 'amounts', dict(self.amounts))
        if not self.digest:
            object.__setattr__(self, 'digest', compute_digest(self))

    def amount(self, name: str) -> Decimal:
        return self.amounts.get(name, ZERO)

    def __repr__(self) -> str:
        who = self.party or "-"
        return (f"AuditRecord(#{self.sequence} {self.instance}.{self.operation} by {who}, "
                f"epoch={self.resulting_epoch_id}, {self.timestamp.isoformat()})")


def compute_digest(record: AuditRecord) -> str:
    content = _canonicalize([
        record.sequence,
        record.instance,
        record.operation,
        record.party,
        record.counterparty,
        dict(record.amounts),
        record.resulting_epoch_id,
        record.timestamp,
        record.previous_digest,
    ])
    return hashlib.sha256(content.encode()).hexdigest()


class EventLog:
    """
    Append-only, hash-chained audit log.

    A single log may be shared by several engines; appends are serialized
    by an internal lock so sequence numbers stay gapless.
    """

    def __init__(self):
        self._records: List[AuditRecord] = []
        self._lock = threading.Lock()

    def append(
        self,
        instance: str,
        operation: str,
        party: Optional[str],
        amounts: Mapping[str, Decimal],
        resulting_epoch_id: int,
        timestamp: datetime,
        counterparty: Optional[str] = None,
    ) -> AuditRecord:
        with self._lock:
            previous = self._records[-1].digest if self._records else GENESIS_DIGEST
            record = AuditRecord(
                sequence=len(self._records),
                instance=instance,
                operation=operation,
                party=party,
                amounts=amounts,
                resulting_epoch_id=resulting_epoch_id,
                timestamp=timestamp,
                counterparty=counterparty,
                previous_digest=previous,
            )
            self._records.append(record)
            return record

    def records(self, instance: Optional[str] = None) -> Tuple[AuditRecord, ...]:
        with self._lock:
            if instance is None:
                return tuple(self._records)
            return tuple(r for r in self._records if r.instance == instance)

    def for_operation(self, operation: str, instance: Optional[str] = None) -> Tuple[AuditRecord, ...]:
        return tuple(r for r in self.records(instance) if r.operation == operation)

    def verify_chain(self) -> bool:
        """True if sequence numbers are gapless and every digest matches its content."""
        previous = GENESIS_DIGEST
        for i, record in enumerate(self.records()):
            if record.sequence != i or record.previous_digest != previous:
                return False
            if compute_digest(record) != record.digest:
                return False
            previous = record.digest
        return True

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(self.records())


# ============================================================================
# REPLAY
# ============================================================================

@dataclass(frozen=True, slots=True)
class VaultSnapshot:
    """Vault state reconstructed from the audit log."""
    share_balances: Mapping[str, Decimal]
    total_shares: Decimal
    pot_a: Decimal
    pot_b: Decimal
    raid_epoch: Optional[Epoch]
    records_applied: int


@dataclass(frozen=True, slots=True)
class SeatSnapshot:
    """Seat state reconstructed from the audit log."""
    holder: Optional[str]
    epoch: Optional[Epoch]
    paused: bool
    total_emitted: Decimal
    records_applied: int


def replay_vault(records: Iterable[AuditRecord]) -> VaultSnapshot:
    """
    Rebuild share balances, pot and raid epoch from vault records.

    Raises:
        InvariantViolation: If a record would drive a balance or the pot negative
    """
    balances: Dict[str, Decimal] = {}
    pot_a = ZERO
    pot_b = ZERO
    epoch: Optional[Epoch] = None
    applied = 0

    def _shift(party: str, delta: Decimal, record: AuditRecord) -> None:
        new_balance = balances.get(party, ZERO) + delta
        if new_balance < ZERO:
            raise InvariantViolation(f"replay: {party} share balance negative at {record!r}")
        if new_balance == ZERO:
            balances.pop(party, None)
        else:
            balances[party] = new_balance

    for record in records:
        op = record.operation
        if op == OP_GENESIS:
            epoch = Epoch(record.resulting_epoch_id, record.amount("init_price"), record.timestamp)
        elif op == OP_DEPOSIT:
            _shift(record.party, record.amount("shares"), record)
        elif op == OP_WITHDRAW:
            _shift(record.party, -record.amount("shares"), record)
        elif op == OP_HARVEST:
            pot_a += record.amount("yield_a")
            pot_b += record.amount("yield_b")
        elif op == OP_SWEETEN:
            pot_a += record.amount("amount_a")
            pot_b += record.amount("amount_b")
        elif op == OP_RAID:
            _shift(record.party, -record.amount("shares_burned"), record)
            pot_a -= record.amount("payout_a")
            pot_b -= record.amount("payout_b")
            if pot_a < ZERO or pot_b < ZERO:
                raise InvariantViolation(f"replay: pot negative at {record!r}")
            epoch = Epoch(record.resulting_epoch_id, record.amount("next_init_price"), record.timestamp)
        else:
            continue
        applied += 1

    ordered = {p: balances[p] for p in sorted(balances)}
    return VaultSnapshot(
        share_balances=ordered,
        total_shares=sum(ordered.values(), ZERO),
        pot_a=pot_a,
        pot_b=pot_b,
        raid_epoch=epoch,
        records_applied=applied,
    )


def replay_seat(records: Iterable[AuditRecord]) -> SeatSnapshot:
    """Rebuild holder, epoch and pause flag from seat records."""
    holder: Optional[str] = None
    epoch: Optional[Epoch] = None
    paused = False
    emitted = ZERO
    applied = 0

    for record in records:
        op = record.operation
        if op == OP_GENESIS:
            epoch = Epoch(record.resulting_epoch_id, record.amount("init_price"), record.timestamp)
        elif op == OP_TAKE_SEAT:
            holder = record.party
            emitted += record.amount("settled_reward")
            epoch = Epoch(record.resulting_epoch_id, record.amount("next_init_price"), record.timestamp)
        elif op == OP_CLAIM_REWARD:
            emitted += record.amount("reward")
        elif op == OP_PAUSE:
            paused = True
        elif op == OP_UNPAUSE:
            paused = False
        else:
            continue
        applied += 1

    return SeatSnapshot(
        holder=holder,
        epoch=epoch,
        paused=paused,
        total_emitted=emitted,
        records_applied=applied,
    )
