"""
pricing.py - Decaying-Price (Dutch) Auction Pricing

Pure functions for the price of a continuously decaying auction:

    elapsed = clamp(now - epoch.start_time, 0, period)
    price   = max(min_price, init_price - init_price * elapsed / period)

After a successful claim the auction resets:

    init_price' = max(min_price, paid_price * reset_coefficient)
    start_time' = now
    epoch_id'   = epoch_id + 1

Both the seat auction and the vault's raid auction own one Epoch each and
share these functions. Settlement math is Decimal with elapsed time measured
in exact integer microseconds; price_curve() is a float sampler for
diagnostics only.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Sequence

import numpy as np

from .core import (
    ZERO, ONE,
    InvalidConfiguration,
    duration_micros, quantize_amount,
)


@dataclass(frozen=True, slots=True)
class DecayConfig:
    """
    Immutable pricing policy for one auction.

    Attributes:
        period: Time for the price to decay from init_price to the floor
        min_price: Floor price, also the genesis init price
        reset_coefficient: Multiplier applied to the paid price to seed the next epoch
    """
    period: timedelta
    min_price: Decimal
    reset_coefficient: Decimal

    def __post_init__(self):
        if not isinstance(self.period, timedelta):
            raise InvalidConfiguration(f"period must be timedelta, got {type(self.period).__name__}")
        if duration_micros(self.period) <= 0:
            raise InvalidConfiguration(f"period must be positive, got {self.period}")
        for name in ('min_price', 'reset_coefficient'):
            value = getattr(self, name)
            if isinstance(value, (bool, float)) or not isinstance(value, (Decimal, int, str)):
                raise InvalidConfiguration(f"{name} must be Decimal, got {type(value).__name__}")
            if not isinstance(value, Decimal):
                object.__setattr__(self, name, Decimal(value))
        if not self.min_price.is_finite() or self.min_price <= ZERO:
            raise InvalidConfiguration(f"min_price must be positive, got {self.min_price}")
        if not self.reset_coefficient.is_finite() or self.reset_coefficient < ONE:
            raise InvalidConfiguration(
                f"reset_coefficient must be >= 1, got {self.reset_coefficient}"
            )


@dataclass(frozen=True, slots=True)
class Epoch:
    """One pricing cycle of a decaying auction, from reset to reset."""
    epoch_id: int
    init_price: Decimal
    start_time: datetime

    def __repr__(self) -> str:
        return f"Epoch(#{self.epoch_id}, init={self.init_price}, start={self.start_time.isoformat()})"


def genesis_epoch(config: DecayConfig, now: datetime) -> Epoch:
    """Epoch 0: the auction opens at its floor price."""
    return Epoch(epoch_id=0, init_price=config.min_price, start_time=now)


def _elapsed_micros(epoch: Epoch, now: datetime) -> int:
    # Clock skew (now before start_time) counts as zero elapsed time.
    return max(0, duration_micros(now - epoch.start_time))


def current_price(epoch: Epoch, config: DecayConfig, now: datetime) -> Decimal:
    """
    Price of the auction at `now`.

    Monotonically non-increasing in `now` within an epoch and never below
    config.min_price.
    """
    elapsed = _elapsed_micros(epoch, now)
    period = duration_micros(config.period)
    if elapsed >= period:
        return config.min_price
    decay = quantize_amount(epoch.init_price * Decimal(elapsed) / Decimal(period))
    price = epoch.init_price - decay
    return price if price > config.min_price else config.min_price


def next_epoch(epoch: Epoch, paid_price: Decimal, config: DecayConfig, now: datetime) -> Epoch:
    """Reset the auction after a claim paid `paid_price` at `now`."""
    seeded = quantize_amount(paid_price * config.reset_coefficient)
    return Epoch(
        epoch_id=epoch.epoch_id + 1,
        init_price=seeded if seeded > config.min_price else config.min_price,
        start_time=now,
    )


def time_remaining(epoch: Epoch, config: DecayConfig, now: datetime) -> timedelta:
    """Time left until the price reaches the floor (zero once floored)."""
    left = duration_micros(config.period) - _elapsed_micros(epoch, now)
    return timedelta(microseconds=left) if left > 0 else timedelta(0)


def price_curve(epoch: Epoch, config: DecayConfig, offsets: Sequence[float]) -> np.ndarray:
    """
    Sample the price at `offsets` seconds after the epoch start.

    Vectorized float approximation for charts, sweeps and simulations. Never
    use these values for settlement; use current_price().
    """
    t = np.clip(np.asarray(offsets, dtype=float), 0.0, None)
    period = config.period.total_seconds()
    init = float(epoch.init_price)
    floor = float(config.min_price)
    prices = init - init * np.minimum(t, period) / period
    return np.maximum(prices, floor)
