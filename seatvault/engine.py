"""
engine.py - Shared Engine Plumbing

Base class for the two stateful engines (SeatAuction, TreasuryVault). It owns
what both need and neither should re-implement:

- Logical clock (current_time, advance_time)
- OperationGuard for single-writer, reentrancy-checked operations
- Audit logging of every applied transition
- Halting on structural errors and operator-driven resume
- Versioned DecayConfig replacement used by migrations

Subclasses hold all mutable state as fields on the instance; there are no
module-level singletons.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping, Optional
import logging

from .core import (
    OP_HALT, OP_RESUME, OP_MIGRATE,
    InstanceHalted, NotOperator, StructuralError, UserError,
    OperationGuard, duration_micros,
)
from .events import AuditRecord, EventLog
from .pricing import DecayConfig, Epoch


logger = logging.getLogger(__name__)


class Engine:
    """
    Common state and transitions for auction engines.

    Thread Safety:
        Every mutating operation runs under the instance's OperationGuard.
        Operations on one instance are totally ordered; a same-thread
        re-entry raises Reentrant.
    """

    def __init__(
        self,
        name: str,
        operator: str,
        initial_time: datetime,
        event_log: Optional[EventLog] = None,
        verbose: bool = False,
    ):
        if not name or not name.strip():
            raise ValueError("Engine name cannot be empty")
        if not operator or not operator.strip():
            raise ValueError("Engine operator cannot be empty")
        self.name = name
        self.operator = operator
        self.event_log = event_log if event_log is not None else EventLog()
        self.verbose = verbose
        self.config_version = 1
        self._current_time = initial_time
        self._guard = OperationGuard(name)
        self._halt_reason: Optional[str] = None

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        return self._current_time

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the engine's logical clock.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    def _resolve_time(self, now: Optional[datetime]) -> datetime:
        # An explicit `now` behind the clock is clock skew: it is used as
        # given (pricing clamps negative elapsed time) and the clock stays put.
        if now is None:
            return self._current_time
        if now > self._current_time:
            self._current_time = now
        return now

    # ========================================================================
    # CONFIGURATION
    # ========================================================================

    # Subclasses must override the three hooks below.

    @property
    def decay_config(self) -> DecayConfig:
        """The DecayConfig currently pricing this engine's auction."""
        raise NotImplementedError(f"{type(self).__name__} must define decay_config")

    def _install_config(self, config: DecayConfig) -> None:
        raise NotImplementedError(f"{type(self).__name__} must define _install_config")

    def _current_epoch(self) -> Epoch:
        raise NotImplementedError(f"{type(self).__name__} must define _current_epoch")

    def apply_config_migration(
        self,
        operator: str,
        config: DecayConfig,
        now: Optional[datetime] = None,
    ) -> AuditRecord:
        """
        Replace the engine's DecayConfig and bump config_version.

        The running epoch is kept; prices re-evaluate against the new config
        from the next read.
        """
        with self._guard.hold(OP_MIGRATE):
            now = self._resolve_time(now)
            self._ensure_live(OP_MIGRATE)
            self._require_operator(operator, OP_MIGRATE)
            if not isinstance(config, DecayConfig):
                raise TypeError(f"config must be DecayConfig, got {type(config).__name__}")
            self._install_config(config)
            self.config_version += 1
            return self._record(
                OP_MIGRATE, operator,
                {
                    "config_version": Decimal(self.config_version),
                    "min_price": config.min_price,
                    "reset_coefficient": config.reset_coefficient,
                    "period_micros": Decimal(duration_micros(config.period)),
                },
                self._current_epoch().epoch_id, now,
            )

    # ========================================================================
    # HALTING
    # ========================================================================

    @property
    def halted(self) -> bool:
        return self._halt_reason is not None

    @property
    def halt_reason(self) -> Optional[str]:
        return self._halt_reason

    def _ensure_live(self, operation: str) -> None:
        if self._halt_reason is not None:
            raise InstanceHalted(
                f"{self.name}: {operation} refused, instance halted pending reconciliation "
                f"({self._halt_reason})"
            )

    def _halt(self, error: StructuralError, now: datetime) -> None:
        """Stop all mutating operations after a structural failure. Caller holds the guard."""
        self._halt_reason = f"{type(error).__name__}: {error}"
        logger.critical("%s halted: %s", self.name, self._halt_reason,
                        extra={"instance": self.name})
        self._record(OP_HALT, None, {}, self._current_epoch().epoch_id, now)

    def resume(self, operator: str, report: Any, now: Optional[datetime] = None) -> AuditRecord:
        """
        Lift a halt after manual reconciliation.

        Args:
            operator: Must be the engine operator
            report: A ReconciliationReport for this instance with valid == True

        Raises:
            NotOperator: If the caller is not the operator
            StructuralError: If the report is for another instance or is not clean
        """
        with self._guard.hold(OP_RESUME):
            now = self._resolve_time(now)
            self._require_operator(operator, OP_RESUME)
            if getattr(report, "instance", None) != self.name:
                raise StructuralError(f"{self.name}: reconciliation report is for another instance")
            if not getattr(report, "valid", False):
                raise StructuralError(
                    f"{self.name}: cannot resume, reconciliation found "
                    f"{len(getattr(report, 'discrepancies', ()))} discrepancies"
                )
            self._halt_reason = None
            return self._record(OP_RESUME, operator, {}, self._current_epoch().epoch_id, now)

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _require_operator(self, party: str, operation: str) -> None:
        if party != self.operator:
            raise NotOperator(f"{self.name}: {operation} requires operator, called by {party}")

    def _reject(self, operation: str, party: Optional[str], error: UserError) -> None:
        logger.info("%s.%s rejected for %s: %s", self.name, operation, party, error,
                    extra={"instance": self.name, "operation": operation,
                           "error": type(error).__name__})

    def _record(
        self,
        operation: str,
        party: Optional[str],
        amounts: Mapping[str, Decimal],
        epoch_id: int,
        timestamp: datetime,
        counterparty: Optional[str] = None,
    ) -> AuditRecord:
        record = self.event_log.append(
            instance=self.name,
            operation=operation,
            party=party,
            amounts=amounts,
            resulting_epoch_id=epoch_id,
            timestamp=timestamp,
            counterparty=counterparty,
        )
        logger.info("%s.%s applied for %s", self.name, operation, party,
                    extra={"instance": self.name, "operation": operation,
                           "sequence": record.sequence, "epoch_id": epoch_id})
        if self.verbose:
            amounts_text = ", ".join(f"{k}={v}" for k, v in sorted(record.amounts.items()))
            print(f"✓ {self.name}.{operation} #{record.sequence} "
                  f"party={party or '-'} epoch={epoch_id} {amounts_text}")
        return record
