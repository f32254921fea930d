"""
vault.py - Share-Accounted Treasury Vault

The vault wraps three things:
1. An ExternalPositionAdapter holding the actual liquidity
2. A ShareLedger recording who owns how much of it
3. A Pot of external yield and fees, won through a decaying "raid" auction

Operations:
    deposit(party, a, b)   -> shares minted (== liquidity delta reported by the adapter)
    withdraw(party, shares) -> (a, b) released by the adapter
    harvest()              -> (yield_a, yield_b) collected into the pot
    raid(party, bid)       -> (pot_a, pot_b) paid out; current price burned in shares
    sweeten(party, a, b)   -> pot top-up, no shares issued

Share accounting:
    One share redeems exactly one unit of backing liquidity. A raid burns
    shares WITHOUT withdrawing from the position, so the liquidity those
    shares represented stays in the position as protocol-owned liquidity:

        total_shares  strictly decreases by the raid price
        backing       is unchanged

    Consequently total_shares <= backing always holds; it is checked on every
    proposed post-state before commit, never after.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional, Set, Tuple
import logging

from .adapter import ExternalPositionAdapter
from .core import (
    ZERO, ADAPTER_TOLERANCE,
    OP_GENESIS, OP_DEPOSIT, OP_WITHDRAW, OP_HARVEST, OP_RAID, OP_SWEETEN, OP_ALLOWLIST,
    AdapterError, InsufficientBacking, InvalidConfiguration, InvariantViolation,
    NotAllowlisted, PriceNotMet, SeatVaultError, StructuralError, UserError, ZeroDeposit,
    quantize_amount, to_amount, to_party,
)
from .engine import Engine
from .events import EventLog
from .pricing import DecayConfig, Epoch, current_price, genesis_epoch, next_epoch
from .shares import ShareLedger


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class VaultTerms:
    """
    Immutable vault policy.

    Attributes:
        raid_config: Decay policy of the raid auction (prices in shares)
        operator: Party allowed to run admin transitions
        fee_margin_allowance: How far share supply may exceed reported backing
        allowlist_enabled: Restrict deposits to allow-listed parties
    """
    raid_config: DecayConfig
    operator: str
    fee_margin_allowance: Decimal = ZERO
    allowlist_enabled: bool = False

    def __post_init__(self):
        if not isinstance(self.fee_margin_allowance, Decimal):
            if isinstance(self.fee_margin_allowance, (bool, float)):
                raise InvalidConfiguration("fee_margin_allowance must be Decimal")
            object.__setattr__(self, 'fee_margin_allowance', Decimal(self.fee_margin_allowance))
        if not self.fee_margin_allowance.is_finite() or self.fee_margin_allowance < ZERO:
            raise InvalidConfiguration(
                f"fee_margin_allowance must be non-negative, got {self.fee_margin_allowance}"
            )
        if not self.operator or not self.operator.strip():
            raise InvalidConfiguration("operator cannot be empty")


@dataclass(frozen=True, slots=True)
class Pot:
    """Two-asset accumulator of yield and fees, independent of share supply."""
    balance_a: Decimal = ZERO
    balance_b: Decimal = ZERO

    def credit(self, amount_a: Decimal, amount_b: Decimal) -> Pot:
        return Pot(self.balance_a + amount_a, self.balance_b + amount_b)

    def as_tuple(self) -> Tuple[Decimal, Decimal]:
        return self.balance_a, self.balance_b

    def is_empty(self) -> bool:
        return self.balance_a == ZERO and self.balance_b == ZERO


class TreasuryVault(Engine):
    """
    Treasury vault engine.

    Example:
        vault = TreasuryVault(
            VaultTerms(DecayConfig(timedelta(hours=24), Decimal("1"), Decimal("1.5")), "ops"),
            adapter=InMemoryPosition(),
            genesis_time=t0,
        )
        shares = vault.deposit("alice", Decimal("100"), Decimal("1000"))
        vault.harvest()
        vault.raid("alice", Decimal("30"), now=t0 + timedelta(hours=1))
    """

    def __init__(
        self,
        terms: VaultTerms,
        adapter: ExternalPositionAdapter,
        genesis_time: datetime,
        name: str = "vault",
        event_log: Optional[EventLog] = None,
        verbose: bool = False,
    ):
        if not isinstance(adapter, ExternalPositionAdapter):
            raise TypeError(f"adapter does not implement ExternalPositionAdapter: {adapter!r}")
        super().__init__(name, terms.operator, genesis_time, event_log, verbose)
        self.terms = terms
        self.adapter = adapter
        self._shares = ShareLedger()
        self._pot = Pot()
        self._raid_epoch = genesis_epoch(terms.raid_config, genesis_time)
        self._allowlist: Set[str] = set()
        self._record(OP_GENESIS, None,
                     {"init_price": self._raid_epoch.init_price,
                      "min_price": terms.raid_config.min_price},
                     self._raid_epoch.epoch_id, genesis_time)

    # ========================================================================
    # READ-ONLY
    # ========================================================================

    @property
    def decay_config(self) -> DecayConfig:
        return self.terms.raid_config

    def _install_config(self, config: DecayConfig) -> None:
        self.terms = replace(self.terms, raid_config=config)

    def _current_epoch(self) -> Epoch:
        return self._raid_epoch

    @property
    def raid_epoch(self) -> Epoch:
        with self._guard.read():
            return self._raid_epoch

    @property
    def pot(self) -> Pot:
        with self._guard.read():
            return self._pot

    @property
    def total_shares(self) -> Decimal:
        with self._guard.read():
            return self._shares.total_shares

    def current_price(self, now: Optional[datetime] = None) -> Decimal:
        """Current raid price, in shares."""
        with self._guard.read():
            at = now if now is not None else self._current_time
            return current_price(self._raid_epoch, self.terms.raid_config, at)

    def share_balance(self, party: str) -> Decimal:
        with self._guard.read():
            return self._shares.balance_of(party)

    def share_holders(self) -> Dict[str, Decimal]:
        with self._guard.read():
            return self._shares.holders()

    def pot_balance(self) -> Tuple[Decimal, Decimal]:
        with self._guard.read():
            return self._pot.as_tuple()

    def backing(self) -> Decimal:
        """Liquidity the adapter reports as attributable to the vault."""
        with self._guard.read():
            return self._read_backing()

    def protocol_owned_liquidity(self) -> Decimal:
        """Backing no share can redeem: liquidity left behind by raids."""
        with self._guard.read():
            return self._read_backing() - self._shares.total_shares

    def is_allowlisted(self, party: str) -> bool:
        with self._guard.read():
            return party in self._allowlist

    def assert_invariants(self) -> None:
        """
        Check the share ledger against itself and against reported backing.

        Raises:
            InvariantViolation: If either check fails
        """
        with self._guard.read():
            matches, recomputed = self._shares.verify()
            if not matches:
                raise InvariantViolation(
                    f"{self.name}: balances sum to {recomputed}, total_shares is "
                    f"{self._shares.total_shares}"
                )
            ShareLedger.check_backing(
                self._shares.total_shares, self._read_backing(), self.terms.fee_margin_allowance
            )

    # ========================================================================
    # TRANSITIONS
    # ========================================================================

    def deposit(
        self,
        party: str,
        amount_a: Decimal,
        amount_b: Decimal,
        now: Optional[datetime] = None,
    ) -> Decimal:
        """
        Add liquidity to the external position and mint shares for it.

        Shares minted equal the liquidity delta reported by the adapter, not
        either token amount.

        Raises:
            ZeroDeposit: If either amount is zero or the adapter mints nothing
            NotAllowlisted: If the allow-list is enabled and `party` is not on it
            AdapterError: If the adapter fails or its backing report disagrees
        """
        party = to_party(party)
        amount_a = to_amount(amount_a, "amount_a")
        amount_b = to_amount(amount_b, "amount_b")
        with self._guard.hold(OP_DEPOSIT):
            now = self._resolve_time(now)
            self._ensure_live(OP_DEPOSIT)
            try:
                if amount_a == ZERO or amount_b == ZERO:
                    raise ZeroDeposit(
                        f"{self.name}: deposit of ({amount_a}, {amount_b}) adds no liquidity"
                    )
                if self.terms.allowlist_enabled and party not in self._allowlist:
                    raise NotAllowlisted(f"{self.name}: {party} is not allow-listed for deposits")
            except UserError as e:
                self._reject(OP_DEPOSIT, party, e)
                raise

            backing_before = self._read_backing()
            delta = self._checked(
                self._call_adapter("deposit_liquidity", amount_a, amount_b), "liquidity delta"
            )
            if quantize_amount(delta) == ZERO:
                error = ZeroDeposit(
                    f"{self.name}: deposit of ({amount_a}, {amount_b}) rounded to zero liquidity"
                )
                self._reject(OP_DEPOSIT, party, error)
                raise error
            backing_after = self._read_backing()
            self._verify_backing(backing_before + delta, backing_after, OP_DEPOSIT, now)

            try:
                plan = self._shares.plan_mint(party, delta)
                ShareLedger.check_backing(plan.new_total, backing_after, self.terms.fee_margin_allowance)
            except StructuralError as e:
                self._halt(e, now)
                raise
            self._shares.apply(plan)
            self._record(OP_DEPOSIT, party,
                         {"amount_a": amount_a, "amount_b": amount_b, "shares": delta},
                         self._raid_epoch.epoch_id, now)
            return delta

    def withdraw(
        self,
        party: str,
        shares: Decimal,
        now: Optional[datetime] = None,
    ) -> Tuple[Decimal, Decimal]:
        """
        Burn shares and release the same amount of liquidity from the position.

        Raises:
            InsufficientShares: If `shares` exceeds the party's balance
            InsufficientBacking: If `shares` exceeds the reported backing (halts the vault)
            AdapterError: If the adapter fails or its backing report disagrees
        """
        party = to_party(party)
        shares = to_amount(shares, "shares", allow_zero=False)
        with self._guard.hold(OP_WITHDRAW):
            now = self._resolve_time(now)
            self._ensure_live(OP_WITHDRAW)
            try:
                plan = self._shares.plan_burn(party, shares)
            except UserError as e:
                self._reject(OP_WITHDRAW, party, e)
                raise

            backing_before = self._read_backing()
            if shares > backing_before:
                error = InsufficientBacking(
                    f"{self.name}: withdraw of {shares} shares exceeds reported backing "
                    f"{backing_before}"
                )
                self._halt(error, now)
                raise error

            amount_a, amount_b = self._call_adapter("withdraw_liquidity", shares / backing_before)
            amount_a = self._checked(amount_a, "withdrawn amount_a")
            amount_b = self._checked(amount_b, "withdrawn amount_b")
            backing_after = self._read_backing()
            self._verify_backing(backing_before - shares, backing_after, OP_WITHDRAW, now)

            try:
                ShareLedger.check_backing(plan.new_total, backing_after, self.terms.fee_margin_allowance)
            except StructuralError as e:
                self._halt(e, now)
                raise
            self._shares.apply(plan)
            self._record(OP_WITHDRAW, party,
                         {"shares": shares, "amount_a": amount_a, "amount_b": amount_b},
                         self._raid_epoch.epoch_id, now)
            return amount_a, amount_b

    def harvest(self, party: Optional[str] = None, now: Optional[datetime] = None) -> Tuple[Decimal, Decimal]:
        """
        Collect accrued yield from the position into the pot.

        Share supply is untouched. With nothing accrued this is a no-op that
        returns (0, 0) and records nothing.
        """
        if party is not None:
            party = to_party(party)
        with self._guard.hold(OP_HARVEST):
            now = self._resolve_time(now)
            self._ensure_live(OP_HARVEST)
            yield_a, yield_b = self._call_adapter("collect_yield")
            yield_a = self._checked(yield_a, "yield_a")
            yield_b = self._checked(yield_b, "yield_b")
            if yield_a == ZERO and yield_b == ZERO:
                return ZERO, ZERO
            self._pot = self._pot.credit(yield_a, yield_b)
            self._record(OP_HARVEST, party, {"yield_a": yield_a, "yield_b": yield_b},
                         self._raid_epoch.epoch_id, now)
            return yield_a, yield_b

    def raid(
        self,
        party: str,
        bid: Decimal,
        now: Optional[datetime] = None,
    ) -> Tuple[Decimal, Decimal]:
        """
        Win the whole pot by burning the current raid price in shares.

        The bid is a ceiling: exactly the current price is burned and the rest
        of the bid stays with the raider (recorded as `refund`). The next raid
        epoch is seeded from the bid. The external position is not touched, so
        backing is unchanged.

        Raises:
            PriceNotMet: If bid < current raid price (evaluated after serialization)
            InsufficientShares: If the party holds fewer shares than the price
        """
        party = to_party(party)
        bid = to_amount(bid, "bid")
        with self._guard.hold(OP_RAID):
            now = self._resolve_time(now)
            self._ensure_live(OP_RAID)
            epoch = self._raid_epoch
            try:
                price = current_price(epoch, self.terms.raid_config, now)
                if bid < price:
                    raise PriceNotMet(
                        f"{self.name}: raid bid {bid} below current price {price} "
                        f"(epoch {epoch.epoch_id})"
                    )
                plan = self._shares.plan_burn(party, price)
            except UserError as e:
                self._reject(OP_RAID, party, e)
                raise

            backing = self._read_backing()
            payout = self._pot
            start = now if now > epoch.start_time else epoch.start_time
            new_epoch = next_epoch(epoch, bid, self.terms.raid_config, start)
            try:
                if plan.new_total >= self._shares.total_shares:
                    raise InvariantViolation(
                        f"{self.name}: raid must strictly reduce share supply "
                        f"({self._shares.total_shares} -> {plan.new_total})"
                    )
                ShareLedger.check_backing(plan.new_total, backing, self.terms.fee_margin_allowance)
            except StructuralError as e:
                self._halt(e, now)
                raise

            self._shares.apply(plan)
            self._pot = Pot()
            self._raid_epoch = new_epoch
            self._record(
                OP_RAID, party,
                {
                    "bid": bid,
                    "price": price,
                    "refund": bid - price,
                    "shares_burned": price,
                    "payout_a": payout.balance_a,
                    "payout_b": payout.balance_b,
                    "next_init_price": new_epoch.init_price,
                },
                new_epoch.epoch_id, new_epoch.start_time,
            )
            return payout.as_tuple()

    def sweeten(
        self,
        party: str,
        amount_a: Decimal,
        amount_b: Decimal,
        now: Optional[datetime] = None,
    ) -> Pot:
        """Top up the pot without issuing shares. Zero top-ups are no-ops."""
        party = to_party(party)
        amount_a = to_amount(amount_a, "amount_a")
        amount_b = to_amount(amount_b, "amount_b")
        with self._guard.hold(OP_SWEETEN):
            now = self._resolve_time(now)
            self._ensure_live(OP_SWEETEN)
            if amount_a == ZERO and amount_b == ZERO:
                return self._pot
            self._pot = self._pot.credit(amount_a, amount_b)
            self._record(OP_SWEETEN, party, {"amount_a": amount_a, "amount_b": amount_b},
                         self._raid_epoch.epoch_id, now)
            return self._pot

    def set_allowlisted(
        self,
        operator: str,
        party: str,
        allowed: bool,
        now: Optional[datetime] = None,
    ) -> bool:
        """Operator: add or remove a party from the deposit allow-list. Returns True if changed."""
        party = to_party(party)
        with self._guard.hold(OP_ALLOWLIST):
            now = self._resolve_time(now)
            self._ensure_live(OP_ALLOWLIST)
            try:
                self._require_operator(operator, OP_ALLOWLIST)
            except UserError as e:
                self._reject(OP_ALLOWLIST, operator, e)
                raise
            if (party in self._allowlist) == allowed:
                return False
            if allowed:
                self._allowlist.add(party)
            else:
                self._allowlist.discard(party)
            self._record(OP_ALLOWLIST, operator, {"allowed": Decimal(int(allowed))},
                         self._raid_epoch.epoch_id, now, counterparty=party)
            return True

    # ========================================================================
    # ADAPTER HELPERS
    # ========================================================================

    def _call_adapter(self, method: str, *args):
        try:
            return getattr(self.adapter, method)(*args)
        except SeatVaultError:
            raise
        except Exception as e:
            raise AdapterError(f"{self.name}: adapter.{method} failed: {e}") from e

    def _checked(self, value, what: str) -> Decimal:
        if not isinstance(value, Decimal) or not value.is_finite() or value < ZERO:
            raise AdapterError(f"{self.name}: adapter returned invalid {what}: {value!r}")
        return value

    def _read_backing(self) -> Decimal:
        return self._checked(self._call_adapter("report_backing"), "backing")

    def _verify_backing(self, expected: Decimal, actual: Decimal, operation: str, now: datetime) -> None:
        """
        Cross-check the adapter's backing report after a liquidity change.

        On mismatch nothing is committed. If the adapter already moved far
        enough that committed shares are no longer backed, the vault halts.
        """
        if abs(expected - actual) <= ADAPTER_TOLERANCE:
            return
        try:
            ShareLedger.check_backing(
                self._shares.total_shares, actual, self.terms.fee_margin_allowance
            )
        except StructuralError as e:
            self._halt(e, now)
            raise
        raise AdapterError(
            f"{self.name}: {operation} expected backing {expected}, adapter reports {actual}"
        )

    def __repr__(self) -> str:
        return (f"TreasuryVault({self.name!r}, shares={self._shares.total_shares}, "
                f"pot=({self._pot.balance_a}, {self._pot.balance_b}), "
                f"raid_epoch={self._raid_epoch.epoch_id})")
