"""
seatvault - Decaying-Price Seat Auction and Share-Accounted Treasury Vault

A contested "seat" sold by a continuously decaying Dutch auction, whose fees
feed the pot of a treasury vault. The vault issues receipt shares against an
external liquidity position, and its pot can be won by burning shares in a
second decaying auction (the "raid").

Usage:
    from datetime import datetime, timedelta
    from decimal import Decimal
    from seatvault import (
        DecayConfig, EmissionSchedule, SeatTerms, VaultTerms,
        SeatAuction, TreasuryVault, InMemoryPosition, EventLog,
    )

    t0 = datetime(2025, 1, 1)
    log = EventLog()
    vault = TreasuryVault(
        VaultTerms(DecayConfig(timedelta(hours=24), Decimal("1"), Decimal("1.2")), operator="ops"),
        adapter=InMemoryPosition(),
        genesis_time=t0,
        event_log=log,
    )
    seat = SeatAuction(
        SeatTerms(
            config=DecayConfig(timedelta(hours=1), Decimal("1"), Decimal("2")),
            emission=EmissionSchedule(Decimal("4"), timedelta(days=30), Decimal("0.5"), t0),
            operator="ops",
        ),
        treasury=vault,
        event_log=log,
    )

    vault.deposit("alice", Decimal("100"), Decimal("1000"), now=t0)
    seat.take_seat("bob", Decimal("1"), now=t0)            # fee lands in the vault pot
    vault.raid("alice", Decimal("5"), now=t0 + timedelta(hours=1))  # burns the price, not the bid
"""

# Core types
from .core import (
    SeatVaultError,
    UserError,
    PriceNotMet,
    NotHolder,
    InsufficientShares,
    ZeroDeposit,
    Reentrant,
    AuctionPaused,
    NotOperator,
    NotAllowlisted,
    InvalidAmount,
    InvalidParty,
    StructuralError,
    InsufficientBacking,
    InvariantViolation,
    InstanceHalted,
    AdapterError,
    InvalidConfiguration,
    OperationGuard,
    to_amount,
    to_party,
    quantize_amount,
    to_base_units,
    from_base_units,
    AMOUNT_DECIMAL_PLACES,
    BASE_UNIT_SCALE,
    ADAPTER_TOLERANCE,
)

# Pricing
from .pricing import (
    DecayConfig,
    Epoch,
    genesis_epoch,
    current_price,
    next_epoch,
    time_remaining,
    price_curve,
)

# Shares and the external position
from .shares import ShareLedger, SharePlan
from .adapter import (
    ExternalPositionAdapter,
    InMemoryPosition,
    PositionSnapshot,
    DepositReceipt,
)

# Engines
from .engine import Engine
from .seat import (
    SeatAuction,
    SeatTerms,
    SeatState,
    SeatPurchase,
    RewardClaim,
    EmissionSchedule,
    FeeSink,
)
from .vault import TreasuryVault, VaultTerms, Pot

# Audit log, replay and reconciliation
from .events import (
    AuditRecord,
    EventLog,
    VaultSnapshot,
    SeatSnapshot,
    replay_vault,
    replay_seat,
)
from .reconcile import ReconciliationReport, reconcile_vault, reconcile_seat

# Migrations
from .migrations import migrate_config, set_min_price, set_reset_coefficient, set_period

# Request/response surface
from .service import Request, Response, ResponseStatus, SeatVaultService

from .logging_utils import JsonFormatter, get_logger


__all__ = [
    # Errors
    'SeatVaultError', 'UserError', 'PriceNotMet', 'NotHolder', 'InsufficientShares',
    'ZeroDeposit', 'Reentrant', 'AuctionPaused', 'NotOperator', 'NotAllowlisted',
    'InvalidAmount', 'InvalidParty', 'StructuralError', 'InsufficientBacking', 'InvariantViolation',
    'InstanceHalted', 'AdapterError', 'InvalidConfiguration',
    # Numerics and concurrency
    'OperationGuard', 'to_amount', 'to_party', 'quantize_amount', 'to_base_units', 'from_base_units',
    'AMOUNT_DECIMAL_PLACES', 'BASE_UNIT_SCALE', 'ADAPTER_TOLERANCE',
    # Pricing
    'DecayConfig', 'Epoch', 'genesis_epoch', 'current_price', 'next_epoch',
    'time_remaining', 'price_curve',
    # Shares and adapter
    'ShareLedger', 'SharePlan', 'ExternalPositionAdapter', 'InMemoryPosition',
    'PositionSnapshot', 'DepositReceipt',
    # Engines
    'Engine', 'SeatAuction', 'SeatTerms', 'SeatState', 'SeatPurchase', 'RewardClaim',
    'EmissionSchedule', 'FeeSink', 'TreasuryVault', 'VaultTerms', 'Pot',
    # Audit
    'AuditRecord', 'EventLog', 'VaultSnapshot', 'SeatSnapshot', 'replay_vault',
    'replay_seat', 'ReconciliationReport', 'reconcile_vault', 'reconcile_seat',
    # Migrations
    'migrate_config', 'set_min_price', 'set_reset_coefficient', 'set_period',
    # Service
    'Request', 'Response', 'ResponseStatus', 'SeatVaultService',
    # Logging
    'JsonFormatter', 'get_logger',
]

__version__ = '1.0.0'
