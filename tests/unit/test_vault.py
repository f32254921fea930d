"""
test_vault.py - Unit tests for TreasuryVault

Tests:
- deposit mints the adapter-reported liquidity delta
- withdraw burns shares and releases liquidity pro rata
- harvest credits the pot without touching shares
- raid burns shares, pays the pot and leaves backing untouched
- sweeten, allow-list and adapter failure handling
- Party identifiers validated on every mutator
- Halting on structural errors and resume after reconciliation
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from seatvault import (
    InMemoryPosition, VaultTerms, DecayConfig, Pot,
    ZeroDeposit, InsufficientShares, InsufficientBacking, InvariantViolation,
    PriceNotMet, Reentrant, NotAllowlisted, NotOperator, InvalidAmount, InvalidParty,
    InvalidConfiguration, AdapterError, InstanceHalted, StructuralError,
    reconcile_vault,
)
from seatvault.core import OP_DEPOSIT, OP_HARVEST, OP_RAID, OP_SWEETEN, OP_HALT

from tests.conftest import T0, OPERATOR, make_vault
from tests.fake_adapter import ScriptedPosition


class TestConstruction:

    def test_rejects_non_adapter(self, raid_config):
        with pytest.raises(TypeError):
            make_vault(object(), raid_config=raid_config)

    def test_negative_fee_margin_rejected(self, raid_config):
        with pytest.raises(InvalidConfiguration):
            VaultTerms(raid_config, OPERATOR, fee_margin_allowance=Decimal("-1"))

    def test_genesis_raid_epoch(self, vault, raid_config):
        assert vault.raid_epoch.epoch_id == 0
        assert vault.current_price(T0) == raid_config.min_price
        assert vault.total_shares == Decimal("0")
        assert vault.pot_balance() == (Decimal("0"), Decimal("0"))


class TestDeposit:

    def test_mints_reported_liquidity_delta(self, scripted_vault):
        shares = scripted_vault.deposit("alice", Decimal("100"), Decimal("1000"), now=T0)
        assert shares == Decimal("50")
        assert scripted_vault.share_balance("alice") == Decimal("50")
        assert scripted_vault.total_shares == Decimal("50")
        assert scripted_vault.backing() == Decimal("50")

    def test_deposit_recorded(self, scripted_vault):
        scripted_vault.deposit("alice", Decimal("100"), Decimal("1000"), now=T0)
        record = scripted_vault.event_log.for_operation(OP_DEPOSIT)[0]
        assert record.party == "alice"
        assert record.amount("shares") == Decimal("50")
        assert record.amount("amount_b") == Decimal("1000")

    def test_zero_amount_never_reaches_adapter(self, scripted_vault, scripted):
        with pytest.raises(ZeroDeposit):
            scripted_vault.deposit("alice", Decimal("0"), Decimal("1000"), now=T0)
        assert scripted.calls == []

    def test_zero_liquidity_delta(self, raid_config):
        vault = make_vault(ScriptedPosition(deltas=[Decimal("0")]), raid_config=raid_config)
        with pytest.raises(ZeroDeposit):
            vault.deposit("alice", Decimal("1"), Decimal("1"), now=T0)
        assert vault.total_shares == Decimal("0")

    def test_dust_deposit_into_pool(self, vault):
        with pytest.raises(ZeroDeposit):
            vault.deposit("alice", Decimal("1e-18"), Decimal("1e-19"), now=T0)

    def test_negative_amount(self, scripted_vault):
        with pytest.raises(InvalidAmount):
            scripted_vault.deposit("alice", Decimal("-1"), Decimal("1"), now=T0)

    def test_adapter_failure_propagates(self, scripted_vault, scripted):
        scripted.fail_on.add("deposit_liquidity")
        with pytest.raises(AdapterError) as exc_info:
            scripted_vault.deposit("alice", Decimal("100"), Decimal("1000"), now=T0)
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert scripted_vault.total_shares == Decimal("0")
        assert not scripted_vault.halted

    def test_proportional_pool_deposit(self, vault):
        assert vault.deposit("alice", Decimal("4"), Decimal("9"), now=T0) == Decimal("6")
        assert vault.deposit("bob", Decimal("2"), Decimal("9"), now=T0) == Decimal("3")
        assert vault.share_holders() == {"alice": Decimal("6"), "bob": Decimal("3")}
        assert vault.backing() == Decimal("9")


class TestAllowlist:

    @pytest.fixture
    def gated(self, raid_config):
        return make_vault(ScriptedPosition(), raid_config=raid_config, allowlist_enabled=True)

    def test_unlisted_party_rejected(self, gated):
        with pytest.raises(NotAllowlisted):
            gated.deposit("alice", Decimal("1"), Decimal("1"), now=T0)

    def test_listed_party_accepted(self, gated):
        assert gated.set_allowlisted(OPERATOR, "alice", True, now=T0) is True
        assert gated.is_allowlisted("alice")
        assert gated.deposit("alice", Decimal("1"), Decimal("1"), now=T0) == Decimal("10")

    def test_only_operator_edits_list(self, gated):
        with pytest.raises(NotOperator):
            gated.set_allowlisted("alice", "alice", True, now=T0)

    def test_unchanged_entry_is_noop(self, gated):
        gated.set_allowlisted(OPERATOR, "alice", True, now=T0)
        assert gated.set_allowlisted(OPERATOR, "alice", True, now=T0) is False
        assert gated.set_allowlisted(OPERATOR, "alice", False, now=T0) is True
        assert not gated.is_allowlisted("alice")


class TestWithdraw:

    @pytest.fixture
    def deposited(self, scripted_vault):
        scripted_vault.deposit("alice", Decimal("100"), Decimal("1000"), now=T0)
        return scripted_vault

    def test_pro_rata_release(self, deposited):
        out = deposited.withdraw("alice", Decimal("25"), now=T0)
        assert out == (Decimal("50"), Decimal("500"))
        assert deposited.share_balance("alice") == Decimal("25")
        assert deposited.backing() == Decimal("25")

    def test_full_exit(self, deposited):
        assert deposited.withdraw("alice", Decimal("50"), now=T0) == (Decimal("100"), Decimal("1000"))
        assert deposited.total_shares == Decimal("0")
        assert deposited.backing() == Decimal("0")

    def test_more_than_balance(self, deposited):
        with pytest.raises(InsufficientShares):
            deposited.withdraw("alice", Decimal("51"), now=T0)
        with pytest.raises(InsufficientShares):
            deposited.withdraw("bob", Decimal("1"), now=T0)

    def test_zero_shares(self, deposited):
        with pytest.raises(InvalidAmount):
            deposited.withdraw("alice", Decimal("0"), now=T0)

    def test_insufficient_backing_halts(self, deposited, scripted):
        scripted.backing_skew = Decimal("-45")
        with pytest.raises(InsufficientBacking):
            deposited.withdraw("alice", Decimal("10"), now=T0)
        assert deposited.halted
        assert deposited.share_balance("alice") == Decimal("50")
        assert deposited.event_log.for_operation(OP_HALT)
        with pytest.raises(InstanceHalted):
            deposited.deposit("bob", Decimal("1"), Decimal("1"), now=T0)

    def test_adapter_misreport_aborts(self, funded_vault, scripted):
        funded_vault.raid("alice", Decimal("30"), now=T0)
        scripted.withdraw_skew = Decimal("-5")
        with pytest.raises(AdapterError, match="expected backing"):
            funded_vault.withdraw("alice", Decimal("10"), now=T0)
        assert funded_vault.share_balance("alice") == Decimal("40")
        assert not funded_vault.halted

    def test_adapter_misreport_that_unbacks_shares_halts(self, deposited, scripted):
        scripted.withdraw_skew = Decimal("5")
        with pytest.raises(InvariantViolation):
            deposited.withdraw("alice", Decimal("10"), now=T0)
        assert deposited.halted


class TestHarvest:

    def test_credits_pot_not_shares(self, funded_vault, scripted):
        scripted.accrue(Decimal("3"), Decimal("1"))
        assert funded_vault.harvest(now=T0) == (Decimal("3"), Decimal("1"))
        assert funded_vault.pot_balance() == (Decimal("503"), Decimal("1"))
        assert funded_vault.total_shares == Decimal("50")

    def test_nothing_accrued_is_noop(self, scripted_vault):
        assert scripted_vault.harvest(now=T0) == (Decimal("0"), Decimal("0"))
        assert scripted_vault.event_log.for_operation(OP_HARVEST) == ()

    def test_reentrant_deposit_from_collect_hook(self, raid_config):
        position = InMemoryPosition()
        vault = make_vault(position, raid_config=raid_config)
        vault.deposit("alice", Decimal("4"), Decimal("9"), now=T0)
        position.accrue(Decimal("2"), Decimal("2"))
        position.on_collect = lambda: vault.deposit("mallory", Decimal("4"), Decimal("9"), now=T0)

        with pytest.raises(Reentrant):
            vault.harvest(now=T0)
        assert vault.pot_balance() == (Decimal("0"), Decimal("0"))
        assert vault.share_balance("mallory") == Decimal("0")
        assert (position.owed_a, position.owed_b) == (Decimal("2"), Decimal("2"))

    def test_collect_failure_is_adapter_error(self, scripted_vault, scripted):
        scripted.fail_on.add("collect_yield")
        with pytest.raises(AdapterError):
            scripted_vault.harvest(now=T0)


class TestRaid:

    def test_raid_pays_pot_and_burns_price(self, funded_vault):
        payout = funded_vault.raid("alice", Decimal("30"), now=T0)
        assert payout == (Decimal("500"), Decimal("0"))
        assert funded_vault.share_balance("alice") == Decimal("40")
        assert funded_vault.total_shares == Decimal("40")
        assert funded_vault.pot_balance() == (Decimal("0"), Decimal("0"))

    def test_raid_leaves_backing_untouched(self, funded_vault, scripted):
        backing = funded_vault.backing()
        funded_vault.raid("alice", Decimal("30"), now=T0)
        assert funded_vault.backing() == backing
        assert funded_vault.protocol_owned_liquidity() == Decimal("10")
        assert not any(name == "withdraw_liquidity" for name, _ in scripted.calls)

    def test_raid_resets_epoch_from_bid(self, funded_vault):
        funded_vault.raid("alice", Decimal("30"), now=T0)
        assert funded_vault.raid_epoch.epoch_id == 1
        assert funded_vault.current_price(T0) == Decimal("45")
        assert funded_vault.current_price(T0 + timedelta(hours=12)) == Decimal("22.5")

    def test_raid_record(self, funded_vault):
        funded_vault.raid("alice", Decimal("30"), now=T0)
        record = funded_vault.event_log.for_operation(OP_RAID)[0]
        assert record.amount("price") == Decimal("10")
        assert record.amount("shares_burned") == Decimal("10")
        assert record.amount("refund") == Decimal("20")
        assert record.amount("payout_a") == Decimal("500")
        assert record.amount("next_init_price") == Decimal("45")
        assert record.resulting_epoch_id == 1

    def test_bid_above_price_burns_only_price(self, funded_vault):
        funded_vault.raid("alice", Decimal("60"), now=T0 + timedelta(days=30))
        assert funded_vault.share_balance("alice") == Decimal("40")
        assert funded_vault.protocol_owned_liquidity() == Decimal("10")
        assert funded_vault.raid_epoch.init_price == Decimal("90")

    def test_bid_may_exceed_holdings_when_price_is_covered(self, funded_vault):
        funded_vault.raid("alice", Decimal("80"), now=T0)
        assert funded_vault.share_balance("alice") == Decimal("40")

    def test_bid_below_price(self, funded_vault):
        with pytest.raises(PriceNotMet):
            funded_vault.raid("alice", Decimal("5"), now=T0)
        assert funded_vault.total_shares == Decimal("50")

    def test_bid_above_holdings(self, funded_vault):
        with pytest.raises(InsufficientShares):
            funded_vault.raid("bob", Decimal("10"), now=T0)
        assert funded_vault.pot_balance() == (Decimal("500"), Decimal("0"))

    def test_empty_pot_can_still_be_raided(self, scripted_vault):
        scripted_vault.deposit("alice", Decimal("1"), Decimal("1"), now=T0)
        assert scripted_vault.raid("alice", Decimal("10"), now=T0) == (Decimal("0"), Decimal("0"))
        assert scripted_vault.total_shares == Decimal("40")


class TestSweeten:

    def test_sweeten_credits_pot(self, scripted_vault):
        pot = scripted_vault.sweeten("treasury", Decimal("2"), Decimal("3"), now=T0)
        assert pot == Pot(Decimal("2"), Decimal("3"))
        assert scripted_vault.total_shares == Decimal("0")

    def test_zero_sweeten_is_noop(self, scripted_vault):
        scripted_vault.sweeten("treasury", Decimal("0"), Decimal("0"), now=T0)
        assert scripted_vault.event_log.for_operation(OP_SWEETEN) == ()

    def test_negative_sweeten(self, scripted_vault):
        with pytest.raises(InvalidAmount):
            scripted_vault.sweeten("treasury", Decimal("-1"), Decimal("0"), now=T0)


class TestHaltAndResume:

    def test_resume_requires_clean_report(self, scripted_vault, scripted):
        scripted_vault.deposit("alice", Decimal("100"), Decimal("1000"), now=T0)
        scripted.backing_skew = Decimal("-45")
        with pytest.raises(InsufficientBacking):
            scripted_vault.withdraw("alice", Decimal("10"), now=T0)

        report = reconcile_vault(scripted_vault)
        assert not report.valid
        assert report.discrepancies[0]['field'] == 'backing'
        with pytest.raises(StructuralError):
            scripted_vault.resume(OPERATOR, report)
        assert scripted_vault.halted

        scripted.backing_skew = Decimal("0")
        report = reconcile_vault(scripted_vault)
        assert report.valid
        scripted_vault.resume(OPERATOR, report)
        assert not scripted_vault.halted
        assert scripted_vault.withdraw("alice", Decimal("10"), now=T0) == (Decimal("20"), Decimal("200"))

    def test_invariants_hold_after_mixed_operations(self, funded_vault, scripted):
        funded_vault.deposit("bob", Decimal("1"), Decimal("1"), now=T0)
        scripted.accrue(Decimal("1"), Decimal("1"))
        funded_vault.harvest(now=T0)
        funded_vault.raid("bob", Decimal("10"), now=T0 + timedelta(hours=30))
        funded_vault.withdraw("alice", Decimal("20"), now=T0 + timedelta(hours=31))
        funded_vault.assert_invariants()
        assert reconcile_vault(funded_vault).valid


class TestPartyValidation:

    @pytest.mark.parametrize("party", [None, "", "   ", 7])
    def test_deposit_rejects_bad_party(self, scripted_vault, party):
        with pytest.raises(InvalidParty):
            scripted_vault.deposit(party, Decimal("10"), Decimal("10"), now=T0)
        assert scripted_vault.total_shares == Decimal("0")
        assert scripted_vault.event_log.for_operation(OP_DEPOSIT) == ()

    def test_other_mutators_reject_missing_party(self, funded_vault):
        with pytest.raises(InvalidParty):
            funded_vault.withdraw(None, Decimal("1"), now=T0)
        with pytest.raises(InvalidParty):
            funded_vault.raid(None, Decimal("10"), now=T0)
        with pytest.raises(InvalidParty):
            funded_vault.sweeten(None, Decimal("1"), Decimal("0"), now=T0)
        with pytest.raises(InvalidParty):
            funded_vault.set_allowlisted(OPERATOR, "", True, now=T0)
        assert funded_vault.pot_balance() == (Decimal("500"), Decimal("0"))

    def test_ledger_stays_sortable_after_rejection(self, funded_vault):
        with pytest.raises(InvalidParty):
            funded_vault.deposit(None, Decimal("10"), Decimal("10"), now=T0)
        funded_vault.deposit("bob", Decimal("10"), Decimal("10"), now=T0)
        assert list(funded_vault.share_holders()) == ["alice", "bob"]
        funded_vault.assert_invariants()
        assert reconcile_vault(funded_vault).valid

    def test_harvest_party_is_optional(self, funded_vault, scripted):
        scripted.accrue(Decimal("1"), Decimal("0"))
        assert funded_vault.harvest(now=T0) == (Decimal("1"), Decimal("0"))
        with pytest.raises(InvalidParty):
            funded_vault.harvest(party="", now=T0)
