"""
test_adapter.py - Unit tests for the in-memory external position

Tests:
- Protocol conformance
- First and proportional deposits, refunds
- Pro-rata and full withdrawals
- Yield accrual and collection, including the collect hook
"""

import pytest
from decimal import Decimal

from seatvault import (
    ExternalPositionAdapter, InMemoryPosition, PositionSnapshot,
    AdapterError, InvalidAmount,
)

from tests.fake_adapter import ScriptedPosition


class TestProtocol:

    def test_in_memory_position_is_adapter(self):
        assert isinstance(InMemoryPosition(), ExternalPositionAdapter)

    def test_scripted_position_is_adapter(self):
        assert isinstance(ScriptedPosition(), ExternalPositionAdapter)

    def test_plain_object_is_not_adapter(self):
        assert not isinstance(object(), ExternalPositionAdapter)


class TestDeposit:

    def test_first_deposit_mints_geometric_mean(self):
        pos = InMemoryPosition()
        assert pos.deposit_liquidity(Decimal("4"), Decimal("9")) == Decimal("6")
        assert pos.report_backing() == Decimal("6")
        assert pos.last_deposit.refund_a == Decimal("0")
        assert pos.last_deposit.refund_b == Decimal("0")

    def test_later_deposit_uses_pool_ratio(self):
        pos = InMemoryPosition()
        pos.deposit_liquidity(Decimal("4"), Decimal("9"))
        minted = pos.deposit_liquidity(Decimal("2"), Decimal("9"))
        assert minted == Decimal("3")
        receipt = pos.last_deposit
        assert receipt.used_a == Decimal("2")
        assert receipt.used_b == Decimal("4.5")
        assert receipt.refund_b == Decimal("4.5")
        assert pos.reserve_a == Decimal("6")
        assert pos.reserve_b == Decimal("13.5")
        assert pos.liquidity == Decimal("9")

    def test_dust_deposit_mints_nothing(self):
        pos = InMemoryPosition()
        assert pos.deposit_liquidity(Decimal("1e-18"), Decimal("1e-19")) == Decimal("0")
        assert pos.liquidity == Decimal("0")
        assert pos.last_deposit.refund_a == Decimal("1e-18")

    def test_negative_amount_rejected(self):
        with pytest.raises(InvalidAmount):
            InMemoryPosition().deposit_liquidity(Decimal("-1"), Decimal("1"))


class TestWithdraw:

    @pytest.fixture
    def pos(self):
        pos = InMemoryPosition()
        pos.deposit_liquidity(Decimal("4"), Decimal("9"))
        pos.deposit_liquidity(Decimal("2"), Decimal("9"))
        return pos

    def test_pro_rata_withdrawal(self, pos):
        out = pos.withdraw_liquidity(Decimal("0.5"))
        assert out == (Decimal("3"), Decimal("6.75"))
        assert pos.liquidity == Decimal("4.5")

    def test_full_withdrawal_drains(self, pos):
        out = pos.withdraw_liquidity(Decimal("1"))
        assert out == (Decimal("6"), Decimal("13.5"))
        assert pos.liquidity == Decimal("0")
        assert pos.reserve_a == Decimal("0")

    @pytest.mark.parametrize("fraction", [Decimal("0"), Decimal("1.1"), Decimal("-0.5")])
    def test_fraction_out_of_range(self, pos, fraction):
        with pytest.raises(AdapterError):
            pos.withdraw_liquidity(fraction)

    def test_withdraw_from_empty_position(self):
        with pytest.raises(AdapterError, match="no liquidity"):
            InMemoryPosition().withdraw_liquidity(Decimal("0.5"))


class TestYield:

    def test_collect_releases_and_resets(self):
        pos = InMemoryPosition()
        pos.accrue(Decimal("3"), Decimal("1"))
        assert pos.snapshot() == PositionSnapshot(Decimal("0"), Decimal("3"), Decimal("1"))
        assert pos.collect_yield() == (Decimal("3"), Decimal("1"))
        assert pos.collect_yield() == (Decimal("0"), Decimal("0"))

    def test_collect_hook_runs_before_release(self):
        seen = []
        pos = InMemoryPosition()
        pos.on_collect = lambda: seen.append(pos.owed_a)
        pos.accrue(Decimal("2"), Decimal("0"))
        pos.collect_yield()
        assert seen == [Decimal("2")]

    def test_hook_failure_leaves_yield_owed(self):
        def boom():
            raise RuntimeError("hook failed")

        pos = InMemoryPosition(on_collect=boom)
        pos.accrue(Decimal("2"), Decimal("1"))
        with pytest.raises(RuntimeError):
            pos.collect_yield()
        assert (pos.owed_a, pos.owed_b) == (Decimal("2"), Decimal("1"))

    def test_negative_accrual_rejected(self):
        with pytest.raises(InvalidAmount):
            InMemoryPosition().accrue(Decimal("-1"), Decimal("0"))
