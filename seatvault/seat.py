"""
seat.py - The Contested Seat

A single scarce seat sold by a continuously decaying Dutch auction. Whoever
holds the seat accrues an emission stream until displaced.

State machine:

    Vacant --take_seat--> Held(a) --take_seat--> Held(b) --> ...

The seat never returns to Vacant. An operator may pause it, which blocks
take_seat (hostile takeovers during incident response) but not claim_reward.

Pricing policy:
    - take_seat charges the CURRENT price, not the bid. The unused part of
      the bid is reported as `refund`.
    - The charge is split: treasury_fee goes to the treasury (swept into the
      vault pot when one is attached), the rest to the displaced holder.
      A vacant seat sends the whole charge to the treasury.
    - Emission owed to the displaced holder is settled to them inside
      take_seat; it is never forfeited.

Emission:
    rate(t) = max(initial_rate / 2**floor((t - genesis) / halving_period), tail_rate)

computed from the genesis timestamp, so accrual is independent of holder
turnover.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Protocol, runtime_checkable

from .core import (
    ZERO, ONE,
    OP_GENESIS, OP_TAKE_SEAT, OP_CLAIM_REWARD, OP_PAUSE, OP_UNPAUSE,
    AuctionPaused, InvalidConfiguration, InvariantViolation, NotHolder,
    PriceNotMet, StructuralError, UserError,
    duration_micros, quantize_amount, to_amount, to_party,
)
from .engine import Engine
from .events import EventLog
from .pricing import DecayConfig, Epoch, current_price, genesis_epoch, next_epoch


MICROS_PER_SECOND = Decimal(1_000_000)

# Past this many halvings the halved rate is treated as having reached the tail.
MAX_HALVINGS = 128

DEFAULT_TREASURY_FEE = Decimal("0.15")


@runtime_checkable
class FeeSink(Protocol):
    """Anything that can absorb treasury fees, e.g. a TreasuryVault's pot."""

    def sweeten(self, party: str, amount_a: Decimal, amount_b: Decimal,
                now: Optional[datetime] = None) -> object:
        ...


@dataclass(frozen=True, slots=True)
class EmissionSchedule:
    """
    Halving emission schedule anchored at genesis.

    Attributes:
        initial_rate: Emission per second during the first halving window
        halving_period: Wall-clock length of each halving window
        tail_rate: Floor the rate never halves below
        genesis: Anchor of the halving windows
    """
    initial_rate: Decimal
    halving_period: timedelta
    tail_rate: Decimal
    genesis: datetime

    def __post_init__(self):
        for name in ('initial_rate', 'tail_rate'):
            value = getattr(self, name)
            if isinstance(value, (bool, float)) or not isinstance(value, (Decimal, int, str)):
                raise InvalidConfiguration(f"{name} must be Decimal, got {type(value).__name__}")
            if not isinstance(value, Decimal):
                object.__setattr__(self, name, Decimal(value))
        if not isinstance(self.halving_period, timedelta) or duration_micros(self.halving_period) <= 0:
            raise InvalidConfiguration(f"halving_period must be a positive timedelta, got {self.halving_period}")
        if self.initial_rate < ZERO or self.tail_rate < ZERO:
            raise InvalidConfiguration("emission rates must be non-negative")
        if self.tail_rate > self.initial_rate:
            raise InvalidConfiguration(
                f"tail_rate {self.tail_rate} exceeds initial_rate {self.initial_rate}"
            )

    def _window_rate(self, window: int) -> Decimal:
        if window >= MAX_HALVINGS:
            return self.tail_rate
        halved = self.initial_rate / (2 ** window)
        return halved if halved > self.tail_rate else self.tail_rate

    def rate_at(self, t: datetime) -> Decimal:
        offset = max(0, duration_micros(t - self.genesis))
        return self._window_rate(offset // duration_micros(self.halving_period))

    def accrued(self, start: datetime, end: datetime) -> Decimal:
        """Exact emission over [start, end), integrated across halving windows."""
        t = max(0, duration_micros(start - self.genesis))
        stop = max(0, duration_micros(end - self.genesis))
        if stop <= t:
            return ZERO
        window_len = duration_micros(self.halving_period)
        total = ZERO
        while t < stop:
            window = t // window_len
            rate = self._window_rate(window)
            if rate == self.tail_rate:
                total += rate * Decimal(stop - t)
                break
            window_end = min((window + 1) * window_len, stop)
            total += rate * Decimal(window_end - t)
            t = window_end
        return quantize_amount(total / MICROS_PER_SECOND)


@dataclass(frozen=True, slots=True)
class SeatTerms:
    """Immutable seat policy: pricing, emission, fee split and operator."""
    config: DecayConfig
    emission: EmissionSchedule
    operator: str
    treasury_fee: Decimal = DEFAULT_TREASURY_FEE

    def __post_init__(self):
        if not isinstance(self.treasury_fee, Decimal):
            if isinstance(self.treasury_fee, (bool, float)):
                raise InvalidConfiguration("treasury_fee must be Decimal")
            object.__setattr__(self, 'treasury_fee', Decimal(self.treasury_fee))
        if not ZERO <= self.treasury_fee <= ONE:
            raise InvalidConfiguration(f"treasury_fee must be in [0, 1], got {self.treasury_fee}")
        if not self.operator or not self.operator.strip():
            raise InvalidConfiguration("operator cannot be empty")


@dataclass(frozen=True, slots=True)
class SeatState:
    """Snapshot of the seat. Replaced wholesale on every transition."""
    holder: Optional[str]
    epoch: Epoch
    emission_rate: Decimal
    last_claim_time: datetime
    paused: bool = False
    message: str = ""


@dataclass(frozen=True, slots=True)
class SeatPurchase:
    """Outcome of a successful take_seat."""
    bidder: str
    previous_holder: Optional[str]
    bid: Decimal
    price: Decimal
    refund: Decimal
    treasury_fee: Decimal
    displaced_payout: Decimal
    settled_reward: Decimal
    epoch: Epoch


@dataclass(frozen=True, slots=True)
class RewardClaim:
    """Outcome of claim_reward."""
    holder: str
    reward: Decimal
    accrued_from: datetime
    accrued_to: datetime


class SeatAuction(Engine):
    """
    The seat auction engine.

    Example:
        terms = SeatTerms(
            config=DecayConfig(timedelta(hours=1), Decimal("1"), Decimal("2")),
            emission=EmissionSchedule(Decimal("4"), timedelta(days=30), Decimal("1"), t0),
            operator="ops",
        )
        seat = SeatAuction(terms, treasury=vault)
        seat.take_seat("alice", Decimal("1"), now=t0)
        seat.claim_reward("alice", now=t0 + timedelta(minutes=5))
    """

    def __init__(
        self,
        terms: SeatTerms,
        name: str = "seat",
        treasury: Optional[FeeSink] = None,
        event_log: Optional[EventLog] = None,
        verbose: bool = False,
    ):
        genesis = terms.emission.genesis
        super().__init__(name, terms.operator, genesis, event_log, verbose)
        self.terms = terms
        self.treasury = treasury
        self.total_emitted: Decimal = ZERO
        epoch = genesis_epoch(terms.config, genesis)
        self._state = SeatState(
            holder=None,
            epoch=epoch,
            emission_rate=terms.emission.rate_at(genesis),
            last_claim_time=genesis,
        )
        self._record(OP_GENESIS, None,
                     {"init_price": epoch.init_price, "min_price": terms.config.min_price},
                     epoch.epoch_id, genesis)

    # ========================================================================
    # READ-ONLY
    # ========================================================================

    @property
    def state(self) -> SeatState:
        with self._guard.read():
            return self._state

    @property
    def holder(self) -> Optional[str]:
        return self.state.holder

    @property
    def decay_config(self) -> DecayConfig:
        return self.terms.config

    def _install_config(self, config: DecayConfig) -> None:
        self.terms = replace(self.terms, config=config)

    def _current_epoch(self) -> Epoch:
        return self._state.epoch

    def current_price(self, now: Optional[datetime] = None) -> Decimal:
        with self._guard.read():
            at = now if now is not None else self._current_time
            return current_price(self._state.epoch, self.terms.config, at)

    def pending_reward(self, now: Optional[datetime] = None) -> Decimal:
        with self._guard.read():
            at = now if now is not None else self._current_time
            return self._accrued(self._state, at)

    def _accrued(self, state: SeatState, now: datetime) -> Decimal:
        if state.holder is None:
            return ZERO
        return self.terms.emission.accrued(state.last_claim_time, now)

    # ========================================================================
    # TRANSITIONS
    # ========================================================================

    def take_seat(
        self,
        bidder: str,
        bid: Decimal,
        now: Optional[datetime] = None,
        message: str = "",
    ) -> SeatPurchase:
        """
        Buy the seat at the current price.

        Args:
            bidder: Party taking the seat
            bid: Maximum the bidder is willing to pay; must meet the current price
            now: Time of the bid (defaults to the engine clock)
            message: Public note stored with the seat

        Returns:
            SeatPurchase describing the charge and how it was split

        Raises:
            PriceNotMet: If bid < current price (evaluated after serialization)
            AuctionPaused: If the operator has paused the seat
            InvalidParty: If `bidder` is missing or blank
            InstanceHalted: If this seat or the attached treasury is halted. The
                fee sweep runs inside the purchase, so a halted vault blocks
                purchases until it is resumed; nothing is committed on the seat.
        """
        bidder = to_party(bidder, "bidder")
        bid = to_amount(bid, "bid")
        with self._guard.hold(OP_TAKE_SEAT):
            now = self._resolve_time(now)
            self._ensure_live(OP_TAKE_SEAT)
            state = self._state
            try:
                if state.paused:
                    raise AuctionPaused(f"{self.name}: take_seat blocked while paused")
                price = current_price(state.epoch, self.terms.config, now)
                if bid < price:
                    raise PriceNotMet(
                        f"{self.name}: bid {bid} below current price {price} "
                        f"(epoch {state.epoch.epoch_id})"
                    )
            except UserError as e:
                self._reject(OP_TAKE_SEAT, bidder, e)
                raise

            try:
                purchase, new_state = self._plan_take(state, bidder, bid, price, now, message)
            except StructuralError as e:
                self._halt(e, now)
                raise

            if self.treasury is not None and purchase.treasury_fee > ZERO:
                self.treasury.sweeten(self.name, purchase.treasury_fee, ZERO, now)

            self._state = new_state
            self.total_emitted += purchase.settled_reward
            self._record(
                OP_TAKE_SEAT, bidder,
                {
                    "bid": bid,
                    "price": price,
                    "refund": purchase.refund,
                    "treasury_fee": purchase.treasury_fee,
                    "displaced_payout": purchase.displaced_payout,
                    "settled_reward": purchase.settled_reward,
                    "next_init_price": new_state.epoch.init_price,
                },
                new_state.epoch.epoch_id, new_state.epoch.start_time,
                counterparty=purchase.previous_holder,
            )
            return purchase

    def _plan_take(self, state, bidder, bid, price, now, message):
        previous = state.holder
        settled = self._accrued(state, now)
        if previous is None:
            fee, payout = price, ZERO
        else:
            fee = quantize_amount(price * self.terms.treasury_fee)
            payout = price - fee
        start = now if now > state.epoch.start_time else state.epoch.start_time
        epoch = next_epoch(state.epoch, price, self.terms.config, start)

        if fee + payout != price or fee < ZERO or payout < ZERO:
            raise InvariantViolation(f"{self.name}: fee split {fee} + {payout} != price {price}")
        if epoch.epoch_id != state.epoch.epoch_id + 1 or epoch.init_price < self.terms.config.min_price:
            raise InvariantViolation(f"{self.name}: invalid epoch transition to {epoch!r}")

        new_state = SeatState(
            holder=bidder,
            epoch=epoch,
            emission_rate=self.terms.emission.rate_at(now),
            last_claim_time=start,
            paused=False,
            message=message,
        )
        purchase = SeatPurchase(
            bidder=bidder,
            previous_holder=previous,
            bid=bid,
            price=price,
            refund=bid - price,
            treasury_fee=fee,
            displaced_payout=payout,
            settled_reward=settled,
            epoch=epoch,
        )
        return purchase, new_state

    def claim_reward(self, holder: str, now: Optional[datetime] = None) -> RewardClaim:
        """
        Pay the holder the emission accrued since their last claim.

        A claim with nothing accrued returns a zero RewardClaim and records nothing.

        Raises:
            NotHolder: If `holder` is not the current seat holder
        """
        with self._guard.hold(OP_CLAIM_REWARD):
            now = self._resolve_time(now)
            self._ensure_live(OP_CLAIM_REWARD)
            state = self._state
            if state.holder is None or holder != state.holder:
                error = NotHolder(f"{self.name}: {holder} is not the seat holder ({state.holder})")
                self._reject(OP_CLAIM_REWARD, holder, error)
                raise error
            reward = self._accrued(state, now)
            if reward == ZERO:
                return RewardClaim(holder, ZERO, state.last_claim_time, state.last_claim_time)
            claim = RewardClaim(holder, reward, state.last_claim_time, now)
            self._state = replace(state, last_claim_time=now,
                                  emission_rate=self.terms.emission.rate_at(now))
            self.total_emitted += reward
            self._record(OP_CLAIM_REWARD, holder, {"reward": reward},
                         state.epoch.epoch_id, now)
            return claim

    def pause(self, operator: str, now: Optional[datetime] = None) -> bool:
        """Operator override: block take_seat. Returns False if already paused."""
        return self._set_paused(operator, True, now)

    def unpause(self, operator: str, now: Optional[datetime] = None) -> bool:
        """Lift the operator override. Returns False if not paused."""
        return self._set_paused(operator, False, now)

    def _set_paused(self, operator: str, paused: bool, now: Optional[datetime]) -> bool:
        operation = OP_PAUSE if paused else OP_UNPAUSE
        with self._guard.hold(operation):
            now = self._resolve_time(now)
            self._ensure_live(operation)
            try:
                self._require_operator(operator, operation)
            except UserError as e:
                self._reject(operation, operator, e)
                raise
            if self._state.paused == paused:
                return False
            self._state = replace(self._state, paused=paused)
            self._record(operation, operator, {}, self._state.epoch.epoch_id, now)
            return True

    def __repr__(self) -> str:
        s = self._state
        return (f"SeatAuction({self.name!r}, holder={s.holder}, epoch={s.epoch.epoch_id}, "
                f"paused={s.paused})")
