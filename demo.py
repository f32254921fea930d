#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: The Seat and the Vault

A step-by-step walk through a seat auction whose fees fund a treasury vault,
and the raid auction that drains the vault's pot. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3: Pricing     - Genesis at the floor, decay, reset on purchase
  4-6: The Vault   - Deposits, harvest, the raid and protocol-owned liquidity
  7-8: Operations  - Replay, reconciliation, halting and resume

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import sys

from seatvault import (
    DecayConfig, EmissionSchedule, SeatTerms, VaultTerms,
    SeatAuction, TreasuryVault, InMemoryPosition, EventLog,
    PriceNotMet, InsufficientBacking,
    price_curve, replay_vault, reconcile_vault,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)
    operator: str = "ops"

    # Seat auction
    seat_period: timedelta = timedelta(hours=1)
    seat_min_price: Decimal = Decimal("1")
    seat_reset: Decimal = Decimal("2")
    emission_per_second: Decimal = Decimal("4")

    # Raid auction (priced in shares)
    raid_period: timedelta = timedelta(hours=24)
    raid_min_price: Decimal = Decimal("10")
    raid_reset: Decimal = Decimal("1.5")


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def build():
    t0 = CONFIG.start_time
    log = EventLog()
    position = InMemoryPosition()
    vault = TreasuryVault(
        VaultTerms(DecayConfig(CONFIG.raid_period, CONFIG.raid_min_price, CONFIG.raid_reset),
                   operator=CONFIG.operator),
        adapter=position,
        genesis_time=t0,
        event_log=log,
        verbose=True,
    )
    seat = SeatAuction(
        SeatTerms(
            config=DecayConfig(CONFIG.seat_period, CONFIG.seat_min_price, CONFIG.seat_reset),
            emission=EmissionSchedule(CONFIG.emission_per_second, timedelta(days=30),
                                      Decimal("0.5"), t0),
            operator=CONFIG.operator,
        ),
        treasury=vault,
        event_log=log,
        verbose=True,
    )
    return seat, vault, position, log


# ============================================================================
# PRICING
# ============================================================================

def step_01_genesis(seat: SeatAuction):
    step_header(1, "Genesis", "A fresh seat is vacant and priced at its floor.")
    print(f"Holder:        {seat.holder}")
    print(f"Epoch:         {seat.state.epoch}")
    print(f"Current price: {seat.current_price()}")


def step_02_take_and_reset(seat: SeatAuction):
    step_header(2, "Taking the Seat", "A purchase resets the price to reset_coefficient x paid.")
    t0 = CONFIG.start_time
    print('>>> seat.take_seat("alice", Decimal("1"), now=t0)')
    purchase = seat.take_seat("alice", Decimal("1"), now=t0)
    print(f"\nPaid {purchase.price}, refund {purchase.refund}, treasury fee {purchase.treasury_fee}")
    print(f"Price right after: {seat.current_price(t0)}")

    section_header("A stale bid")
    try:
        seat.take_seat("bob", Decimal("1"), now=t0)
    except PriceNotMet as e:
        print(f"Rejected: {e}")


def step_03_decay(seat: SeatAuction):
    step_header(3, "Decay", "The price falls linearly to the floor over one period.")
    epoch = seat.state.epoch
    offsets = [0, 900, 1800, 2700, 3600, 5400]
    curve = price_curve(epoch, seat.decay_config, offsets)
    for seconds, price in zip(offsets, curve):
        print(f"  t+{seconds:>5}s  {price:8.4f}")

    later = CONFIG.start_time + timedelta(minutes=15)
    print(f'\n>>> seat.take_seat("bob", Decimal("2"), now=t0 + 15min)')
    purchase = seat.take_seat("bob", Decimal("2"), now=later)
    print(f"\nalice displaced: payout {purchase.displaced_payout}, "
          f"settled emission {purchase.settled_reward}")


# ============================================================================
# THE VAULT
# ============================================================================

def step_04_deposit(vault: TreasuryVault):
    step_header(4, "Deposits", "Shares minted equal the liquidity the position reports.")
    t0 = CONFIG.start_time
    print(f"Alice: {vault.deposit('alice', Decimal('100'), Decimal('400'), now=t0)} shares")
    print(f"Bob:   {vault.deposit('bob', Decimal('25'), Decimal('100'), now=t0)} shares")
    print(f"Backing: {vault.backing()}  total shares: {vault.total_shares}")


def step_05_harvest(vault: TreasuryVault, position: InMemoryPosition):
    step_header(5, "Harvest", "Yield moves into the pot; share supply is untouched.")
    position.accrue(Decimal("12"), Decimal("48"))
    print(f"Harvested: {vault.harvest(party='keeper')}")
    print(f"Harvested again: {vault.harvest(party='keeper')}  (no-op)")
    print(f"Pot: {vault.pot_balance()}")


def step_06_raid(vault: TreasuryVault):
    step_header(6, "The Raid", "Burn shares to win the pot. Backing stays where it is.")
    now = CONFIG.start_time + timedelta(hours=2)
    backing = vault.backing()
    price = vault.current_price(now)
    print(f"Raid price: {price} shares")
    payout = vault.raid("bob", price, now=now)
    print(f"\nBob receives {payout}")
    print(f"Total shares:             {vault.total_shares}")
    print(f"Backing (unchanged):      {vault.backing()} == {backing}")
    print(f"Protocol-owned liquidity: {vault.protocol_owned_liquidity()}")
    print(f"Next raid price:          {vault.current_price(now)}")


# ============================================================================
# OPERATIONS
# ============================================================================

def step_07_replay(vault: TreasuryVault, log: EventLog):
    step_header(7, "Replay", "The audit log alone rebuilds the vault.")
    snapshot = replay_vault(log.records(vault.name))
    print(f"Replayed balances: {dict(snapshot.share_balances)}")
    print(f"Live balances:     {vault.share_holders()}")
    print(f"Chain verified:    {log.verify_chain()}")
    print(reconcile_vault(vault).summary())


def step_08_halt(vault: TreasuryVault, position: InMemoryPosition):
    step_header(8, "Halting", "A structural failure stops the vault until an operator reconciles it.")
    real_report = position.report_backing
    position.report_backing = lambda: Decimal("1")
    try:
        vault.withdraw("alice", Decimal("5"))
    except InsufficientBacking as e:
        print(f"Halted: {e}")
    print(f"vault.halted = {vault.halted}")

    position.report_backing = real_report
    report = reconcile_vault(vault)
    print(report.summary())
    vault.resume(CONFIG.operator, report)
    print(f"vault.halted = {vault.halted}")


def main():
    seat, vault, position, log = build()

    step_01_genesis(seat)
    wait_for_enter()
    step_02_take_and_reset(seat)
    wait_for_enter()
    step_03_decay(seat)
    wait_for_enter()
    step_04_deposit(vault)
    wait_for_enter()
    step_05_harvest(vault, position)
    wait_for_enter()
    step_06_raid(vault)
    wait_for_enter()
    step_07_replay(vault, log)
    wait_for_enter()
    step_08_halt(vault, position)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
