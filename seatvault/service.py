"""
service.py - Upstream request/response surface

SeatVaultService maps named requests onto a SeatAuction and a TreasuryVault
with no business logic of its own. User errors come back as REJECTED
responses carrying the exception name as error_code; structural and adapter
errors propagate to the caller, since they mean the instance needs an operator.

    service = SeatVaultService(seat, vault)
    response = service.handle(Request("deposit", "alice", {"amount_a": "100", "amount_b": "1000"}))
    if response.status is ResponseStatus.APPLIED:
        shares = response.result
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional
import logging

from .core import UserError
from .seat import SeatAuction
from .vault import TreasuryVault


logger = logging.getLogger(__name__)


class ResponseStatus(Enum):
    """
    APPLIED: The engine accepted the request (reads are always APPLIED).
    REJECTED: A user error; no state was changed.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class Request:
    operation: str
    party: Optional[str] = None
    params: Mapping[str, Any] = field(default_factory=dict)
    now: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class Response:
    status: ResponseStatus
    result: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ResponseStatus.APPLIED


class SeatVaultService:
    """Dispatches Requests to the seat and vault engines."""

    def __init__(self, seat: SeatAuction, vault: TreasuryVault):
        self.seat = seat
        self.vault = vault
        self._handlers: Dict[str, Callable[[Request], Any]] = {
            "take_seat": lambda r: self.seat.take_seat(
                r.party, r.params["bid"], now=r.now, message=r.params.get("message", "")),
            "claim_reward": lambda r: self.seat.claim_reward(r.party, now=r.now),
            "deposit": lambda r: self.vault.deposit(
                r.party, r.params["amount_a"], r.params["amount_b"], now=r.now),
            "withdraw": lambda r: self.vault.withdraw(r.party, r.params["shares"], now=r.now),
            "harvest": lambda r: self.vault.harvest(party=r.party, now=r.now),
            "raid": lambda r: self.vault.raid(r.party, r.params["bid"], now=r.now),
            "sweeten": lambda r: self.vault.sweeten(
                r.party, r.params.get("amount_a", 0), r.params.get("amount_b", 0), now=r.now),
            "current_price": lambda r: self.seat.current_price(r.now),
            "raid_price": lambda r: self.vault.current_price(r.now),
            "share_balance": lambda r: self.vault.share_balance(r.params.get("party", r.party)),
            "pot_balance": lambda r: self.vault.pot_balance(),
        }

    @property
    def operations(self):
        return tuple(self._handlers)

    def handle(self, request: Request) -> Response:
        handler = self._handlers.get(request.operation)
        if handler is None:
            return Response(ResponseStatus.REJECTED,
                            error=f"unknown operation {request.operation!r}",
                            error_code="UnknownOperation")
        try:
            result = handler(request)
        except KeyError as e:
            return Response(ResponseStatus.REJECTED,
                            error=f"{request.operation}: missing parameter {e.args[0]!r}",
                            error_code="MissingParameter")
        except UserError as e:
            return Response(ResponseStatus.REJECTED, error=str(e), error_code=type(e).__name__)
        logger.debug("handled %s for %s", request.operation, request.party)
        return Response(ResponseStatus.APPLIED, result=result)
