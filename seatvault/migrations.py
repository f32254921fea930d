"""
migrations.py - Versioned pricing-policy changes

Each helper builds a new frozen DecayConfig from the engine's current one and
installs it through Engine.apply_config_migration(), which bumps
config_version and writes a `migrate` audit record. The running epoch is kept,
so prices re-evaluate against the new policy on the next read.

    set_min_price(seat, "ops", Decimal("2"))
    set_period(vault, "ops", timedelta(hours=12))
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from .engine import Engine
from .events import AuditRecord
from .pricing import DecayConfig


def migrate_config(
    engine: Engine,
    operator: str,
    now: Optional[datetime] = None,
    **changes,
) -> AuditRecord:
    """
    Replace any subset of DecayConfig fields on `engine`.

    Raises:
        NotOperator: If `operator` is not the engine operator
        InvalidConfiguration: If the resulting config is invalid (engine unchanged)
    """
    config: DecayConfig = replace(engine.decay_config, **changes)
    return engine.apply_config_migration(operator, config, now)


def set_min_price(engine: Engine, operator: str, new_min_price: Decimal,
                  now: Optional[datetime] = None) -> AuditRecord:
    return migrate_config(engine, operator, now, min_price=new_min_price)


def set_reset_coefficient(engine: Engine, operator: str, new_coefficient: Decimal,
                          now: Optional[datetime] = None) -> AuditRecord:
    return migrate_config(engine, operator, now, reset_coefficient=new_coefficient)


def set_period(engine: Engine, operator: str, new_period: timedelta,
               now: Optional[datetime] = None) -> AuditRecord:
    return migrate_config(engine, operator, now, period=new_period)
