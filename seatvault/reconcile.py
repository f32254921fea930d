"""
reconcile.py - Reconciliation diagnostics

Compares an engine's live state against the state replayed from its audit
records (and, for the vault, against the adapter's reported backing). A clean
report is what an operator hands to Engine.resume() after a halt.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .core import ZERO
from .events import replay_seat, replay_vault
from .seat import SeatAuction
from .vault import TreasuryVault


@dataclass(frozen=True, slots=True)
class ReconciliationReport:
    """
    Result of reconciling one engine instance.

    Attributes:
        instance: Engine name the report covers
        valid: True if no discrepancies were found
        discrepancies: One dict per mismatch: field, expected, actual (and party where relevant)
        records_replayed: Number of state-changing records replayed
        chain_valid: Whether the audit log's hash chain verified
        figures: Live figures captured during reconciliation
    """
    instance: str
    valid: bool
    discrepancies: Tuple[Mapping[str, Any], ...]
    records_replayed: int
    chain_valid: bool
    figures: Mapping[str, Any] = field(default_factory=dict)

    def summary(self) -> str:
        status = "clean" if self.valid else f"{len(self.discrepancies)} discrepancies"
        return f"{self.instance}: {status} ({self.records_replayed} records replayed)"


def _compare(out: List[Dict[str, Any]], name: str, expected, actual, party: Optional[str] = None) -> None:
    if expected != actual:
        entry = {'field': name, 'expected': expected, 'actual': actual}
        if party is not None:
            entry['party'] = party
        out.append(entry)


def reconcile_vault(vault: TreasuryVault) -> ReconciliationReport:
    """
    Reconcile a vault's share ledger, pot and raid epoch.

    Checks, in order:
        - the audit log's hash chain
        - replayed share balances and pot against live state
        - replayed raid epoch against the live epoch
        - sum of balances against total_shares
        - total_shares against the adapter's backing (+ fee_margin_allowance)

    Example:
        report = reconcile_vault(vault)
        if vault.halted and report.valid:
            vault.resume("ops", report)
    """
    discrepancies: List[Dict[str, Any]] = []
    chain_valid = vault.event_log.verify_chain()
    if not chain_valid:
        discrepancies.append({'field': 'audit_chain', 'expected': True, 'actual': False})

    with vault._guard.read():
        replayed = replay_vault(vault.event_log.records(vault.name))
        live_balances = vault._shares.holders()
        live_total = vault._shares.total_shares
        live_pot = vault._pot
        live_epoch = vault._raid_epoch
        ledger_ok, recomputed = vault._shares.verify()
        backing = vault._read_backing()

    for party in sorted(set(live_balances) | set(replayed.share_balances)):
        _compare(discrepancies, 'share_balance',
                 replayed.share_balances.get(party, ZERO), live_balances.get(party, ZERO), party)
    _compare(discrepancies, 'total_shares', replayed.total_shares, live_total)
    _compare(discrepancies, 'pot_a', replayed.pot_a, live_pot.balance_a)
    _compare(discrepancies, 'pot_b', replayed.pot_b, live_pot.balance_b)
    _compare(discrepancies, 'raid_epoch', replayed.raid_epoch, live_epoch)
    if not ledger_ok:
        discrepancies.append({'field': 'balance_sum', 'expected': live_total, 'actual': recomputed})
    if live_total > backing + vault.terms.fee_margin_allowance:
        discrepancies.append({
            'field': 'backing',
            'expected': f">= {live_total - vault.terms.fee_margin_allowance}",
            'actual': backing,
        })

    return ReconciliationReport(
        instance=vault.name,
        valid=not discrepancies,
        discrepancies=tuple(discrepancies),
        records_replayed=replayed.records_applied,
        chain_valid=chain_valid,
        figures={
            'total_shares': live_total,
            'backing': backing,
            'protocol_owned_liquidity': backing - live_total,
            'pot_a': live_pot.balance_a,
            'pot_b': live_pot.balance_b,
        },
    )


def reconcile_seat(seat: SeatAuction) -> ReconciliationReport:
    """Reconcile a seat's holder, epoch, pause flag and emitted total against its records."""
    discrepancies: List[Dict[str, Any]] = []
    chain_valid = seat.event_log.verify_chain()
    if not chain_valid:
        discrepancies.append({'field': 'audit_chain', 'expected': True, 'actual': False})

    with seat._guard.read():
        replayed = replay_seat(seat.event_log.records(seat.name))
        state = seat._state
        emitted = seat.total_emitted

    _compare(discrepancies, 'holder', replayed.holder, state.holder)
    _compare(discrepancies, 'epoch', replayed.epoch, state.epoch)
    _compare(discrepancies, 'paused', replayed.paused, state.paused)
    _compare(discrepancies, 'total_emitted', replayed.total_emitted, emitted)
    return ReconciliationReport(
        instance=seat.name,
        valid=not discrepancies,
        discrepancies=tuple(discrepancies),
        records_replayed=replayed.records_applied,
        chain_valid=chain_valid,
        figures={
            'holder': state.holder,
            'epoch_id': state.epoch.epoch_id,
            'total_emitted': emitted,
        },
    )
