"""Tests for the tier ledger — proves distribution and overflow invariants hold."""

import pytest
from decimal import Decimal

from presale.errors import (
    IndividualCapExceeded,
    InvalidAmount,
    InvalidParameterValue,
    InvalidTierLimitUpdate,
    PaginationOutOfRange,
    SaleClosed,
)
from presale.ledger.tier_ledger import TierLedger
from presale.models.sale import Tier, TierBooking, TierSchedule, TierTransition


ONE = Decimal("1")


def _d(value: str) -> Decimal:
    return Decimal(value)


def _ledger(
    limits: tuple[str, str, str] = ("30", "80", "150"),
    cap: str = "1000",
    max_page_size: int = 100,
) -> TierLedger:
    schedule = TierSchedule(*(Decimal(v) for v in limits))
    return TierLedger(schedule, individual_cap=Decimal(cap), max_page_size=max_page_size)


def _fill_to(ledger: TierLedger, target: str, participant: str = "filler") -> None:
    ledger.accept(participant, Decimal(target) - ledger.total_collected, ONE)


class TestSingleTier:
    def test_contribution_within_tier(self) -> None:
        ledger = _ledger()
        outcome = ledger.accept("alice", _d("5"), ONE)
        assert outcome.bookings == (TierBooking(Tier.ONE, _d("5")),)
        assert outcome.current_tier == Tier.ONE
        assert outcome.transitions == ()
        assert outcome.unbooked == 0
        assert ledger.total_collected == _d("5")
        assert ledger.get_participant("alice").total == _d("5")

    def test_exact_headroom_advances_tier(self) -> None:
        """A contribution of exactly the tier headroom advances in the same call."""
        ledger = _ledger()
        outcome = ledger.accept("alice", _d("30"), ONE)
        assert outcome.bookings == (TierBooking(Tier.ONE, _d("30")),)
        assert outcome.current_tier == Tier.TWO
        assert outcome.transitions == (
            TierTransition(Tier.ONE, Tier.TWO, _d("30")),
        )

    def test_exact_headroom_in_tier_two(self) -> None:
        ledger = _ledger()
        _fill_to(ledger, "40")
        outcome = ledger.accept("alice", _d("40"), ONE)
        assert outcome.current_tier == Tier.THREE
        assert ledger.total_collected == _d("80")


class TestOverflow:
    def test_straddle_tier_one_to_two(self) -> None:
        """Tier 1 at 29/30, contribute 5 → 1 in tier 1, 4 in tier 2."""
        ledger = _ledger()
        _fill_to(ledger, "29")
        outcome = ledger.accept("alice", _d("5"), ONE)
        assert outcome.bookings == (
            TierBooking(Tier.ONE, _d("1")),
            TierBooking(Tier.TWO, _d("4")),
        )
        assert outcome.current_tier == Tier.TWO
        assert ledger.total_collected == _d("34")
        record = ledger.get_participant("alice")
        assert record.total == _d("5")
        assert record.per_tier == [_d("1"), _d("4"), _d("0")]

    def test_straddle_two_boundaries(self) -> None:
        ledger = _ledger()
        _fill_to(ledger, "25")
        outcome = ledger.accept("alice", _d("60"), ONE)
        assert outcome.bookings == (
            TierBooking(Tier.ONE, _d("5")),
            TierBooking(Tier.TWO, _d("50")),
            TierBooking(Tier.THREE, _d("5")),
        )
        assert [t.to_tier for t in outcome.transitions] == [Tier.TWO, Tier.THREE]
        assert ledger.total_collected == _d("85")

    def test_single_contribution_fills_every_tier(self) -> None:
        ledger = _ledger()
        outcome = ledger.accept("whale", _d("150"), ONE)
        assert [b.amount for b in outcome.bookings] == [_d("30"), _d("50"), _d("70")]
        assert outcome.current_tier == Tier.CLOSED
        assert outcome.sale_closed is True
        assert len(outcome.transitions) == 3

    def test_bucket_uses_tier_active_during_booking(self) -> None:
        ledger = _ledger()
        _fill_to(ledger, "78")
        ledger.accept("alice", _d("4"), ONE)
        record = ledger.get_participant("alice")
        assert record.in_tier(Tier.TWO) == _d("2")
        assert record.in_tier(Tier.THREE) == _d("2")


class TestSaleClosure:
    def test_exact_final_contribution_closes(self) -> None:
        ledger = _ledger()
        _fill_to(ledger, "149")
        assert ledger.current_tier == Tier.THREE
        outcome = ledger.accept("alice", _d("1"), ONE)
        assert outcome.sale_closed is True
        assert outcome.unbooked == 0
        assert ledger.total_collected == _d("150")
        assert ledger.current_tier == Tier.CLOSED

    def test_accept_after_close_raises(self) -> None:
        ledger = _ledger()
        _fill_to(ledger, "150")
        with pytest.raises(SaleClosed):
            ledger.accept("alice", _d("1"), ONE)

    def test_overshoot_books_only_up_to_final_limit(self) -> None:
        """At 149/150, contribute 3 → only 1 booked, 2 unbooked, sale closed."""
        ledger = _ledger()
        _fill_to(ledger, "149")
        outcome = ledger.accept("alice", _d("3"), ONE)
        assert outcome.bookings == (TierBooking(Tier.THREE, _d("1")),)
        assert outcome.unbooked == _d("2")
        assert outcome.amount == _d("3")
        assert outcome.sale_closed is True
        assert ledger.total_collected == _d("150")
        assert ledger.get_participant("alice").total == _d("1")

    def test_sale_closed_flag_false_while_open(self) -> None:
        ledger = _ledger()
        outcome = ledger.accept("alice", _d("10"), ONE)
        assert outcome.sale_closed is False


class TestValidation:
    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_non_positive_amount_rejected(self, amount: str) -> None:
        ledger = _ledger()
        with pytest.raises(InvalidAmount, match="positive"):
            ledger.accept("alice", _d(amount), ONE)

    def test_amount_not_multiple_of_increment(self) -> None:
        ledger = _ledger()
        with pytest.raises(InvalidAmount, match="multiple"):
            ledger.accept("alice", _d("3"), _d("2"))

    @pytest.mark.parametrize("amount", ["NaN", "Infinity", "-Infinity", "1E+100000"])
    def test_non_finite_or_unmeasurable_amount_rejected(self, amount: str) -> None:
        ledger = _ledger()
        with pytest.raises(InvalidAmount):
            ledger.accept("alice", _d(amount), ONE)
        assert ledger.total_collected == 0
        assert ledger.participant_count == 0

    def test_non_finite_increment_rejected(self) -> None:
        ledger = _ledger()
        with pytest.raises(InvalidAmount, match="finite"):
            ledger.accept("alice", _d("1"), _d("NaN"))

    def test_fractional_increment(self) -> None:
        ledger = _ledger()
        outcome = ledger.accept("alice", _d("1.5"), _d("0.5"))
        assert outcome.booked == _d("1.5")

    def test_empty_participant_rejected(self) -> None:
        ledger = _ledger()
        with pytest.raises(InvalidAmount):
            ledger.accept("", _d("1"), ONE)

    def test_individual_cap_enforced_in_tier_one(self) -> None:
        ledger = _ledger(cap="10")
        ledger.accept("alice", _d("8"), ONE)
        with pytest.raises(IndividualCapExceeded):
            ledger.accept("alice", _d("3"), ONE)
        assert ledger.get_participant("alice").total == _d("8")

    def test_individual_cap_boundary_allowed(self) -> None:
        ledger = _ledger(cap="10")
        ledger.accept("alice", _d("8"), ONE)
        outcome = ledger.accept("alice", _d("2"), ONE)
        assert outcome.record.total == _d("10")

    def test_individual_cap_not_enforced_in_tier_three(self) -> None:
        ledger = _ledger(cap="100")
        _fill_to(ledger, "80")
        ledger.update_individual_cap(_d("5"))
        outcome = ledger.accept("alice", _d("20"), ONE)
        assert outcome.record.total == _d("20")

    def test_rejection_leaves_state_untouched(self) -> None:
        ledger = _ledger(cap="10")
        ledger.accept("alice", _d("8"), ONE)
        before = ledger.snapshot()
        with pytest.raises(IndividualCapExceeded):
            ledger.accept("alice", _d("5"), ONE)
        with pytest.raises(InvalidAmount):
            ledger.accept("bob", _d("0"), ONE)
        assert ledger.snapshot() == before


class TestParticipantIndex:
    def test_first_contribution_registers_once(self) -> None:
        ledger = _ledger()
        first = ledger.accept("alice", _d("1"), ONE)
        second = ledger.accept("alice", _d("1"), ONE)
        assert first.first_contribution is True
        assert second.first_contribution is False
        assert ledger.participant_count == 1

    def test_unknown_participant_reads_empty(self) -> None:
        ledger = _ledger()
        record = ledger.get_participant("nobody")
        assert record.total == 0
        assert record.is_empty

    def test_returned_record_is_a_copy(self) -> None:
        ledger = _ledger()
        ledger.accept("alice", _d("2"), ONE)
        record = ledger.get_participant("alice")
        record.total = _d("999")
        assert ledger.get_participant("alice").total == _d("2")


class TestPagination:
    def _ledger_with(self, count: int) -> TierLedger:
        ledger = _ledger(max_page_size=10)
        for i in range(count):
            ledger.accept(f"p{i:02d}", ONE, ONE)
        return ledger

    def test_partial_last_page(self) -> None:
        ledger = self._ledger_with(15)
        page = ledger.list_participants(2, 10)
        assert len(page.entries) == 5
        assert page.entries[0][0] == "p10"
        assert page.total_participants == 15
        assert page.total_pages == 2

    def test_first_page_in_insertion_order(self) -> None:
        ledger = self._ledger_with(15)
        page = ledger.list_participants(1, 10)
        assert [p for p, _ in page.entries] == [f"p{i:02d}" for i in range(10)]

    def test_page_beyond_last_raises(self) -> None:
        ledger = self._ledger_with(15)
        with pytest.raises(PaginationOutOfRange):
            ledger.list_participants(3, 10)

    def test_page_zero_raises(self) -> None:
        ledger = self._ledger_with(3)
        with pytest.raises(PaginationOutOfRange):
            ledger.list_participants(0, 10)

    def test_page_size_above_max_raises(self) -> None:
        ledger = self._ledger_with(3)
        with pytest.raises(PaginationOutOfRange):
            ledger.list_participants(1, 11)

    def test_empty_index_raises(self) -> None:
        ledger = _ledger()
        with pytest.raises(PaginationOutOfRange):
            ledger.list_participants(1, 10)

    def test_raised_max_page_size(self) -> None:
        ledger = self._ledger_with(15)
        ledger.update_max_page_size(20)
        assert len(ledger.list_participants(1, 20).entries) == 15


class TestReset:
    def test_reset_clears_everything(self) -> None:
        ledger = _ledger()
        ledger.accept("alice", _d("40"), ONE)
        ledger.accept("bob", _d("5"), ONE)
        cleared = ledger.reset_ledger()
        assert cleared == 2
        assert ledger.total_collected == 0
        assert ledger.current_tier == Tier.ONE
        assert ledger.participant_count == 0
        assert ledger.get_participant("alice").is_empty

    def test_reset_reopens_closed_sale(self) -> None:
        ledger = _ledger()
        _fill_to(ledger, "150")
        ledger.reset_ledger()
        outcome = ledger.accept("alice", _d("1"), ONE)
        assert outcome.current_tier == Tier.ONE

    def test_reset_reproduces_first_trace(self) -> None:
        fresh = _ledger()
        expected = fresh.accept("alice", _d("35"), ONE)

        ledger = _ledger()
        ledger.accept("bob", _d("100"), ONE)
        ledger.reset_ledger()
        actual = ledger.accept("alice", _d("35"), ONE)

        assert actual.bookings == expected.bookings
        assert actual.transitions == expected.transitions
        assert actual.first_contribution is True


class TestTierLimitUpdates:
    def test_update_rejected_once_tier_passed(self) -> None:
        ledger = _ledger()
        _fill_to(ledger, "30")
        with pytest.raises(InvalidTierLimitUpdate, match="already"):
            ledger.update_tier_limit(Tier.ONE, _d("40"))

    def test_tier_one_below_collected_rejected(self) -> None:
        ledger = _ledger()
        _fill_to(ledger, "20")
        with pytest.raises(InvalidTierLimitUpdate):
            ledger.update_tier_limit(Tier.ONE, _d("19"))

    def test_tier_one_equal_to_collected_allowed(self) -> None:
        ledger = _ledger()
        _fill_to(ledger, "20")
        schedule = ledger.update_tier_limit(Tier.ONE, _d("20"))
        assert schedule.tier_1 == _d("20")

    def test_zero_headroom_tier_advances_without_booking(self) -> None:
        ledger = _ledger()
        _fill_to(ledger, "20")
        ledger.update_tier_limit(Tier.ONE, _d("20"))
        outcome = ledger.accept("alice", _d("5"), ONE)
        assert outcome.bookings == (TierBooking(Tier.TWO, _d("5")),)
        assert outcome.transitions[0].from_tier == Tier.ONE

    def test_tier_one_must_stay_below_tier_two(self) -> None:
        ledger = _ledger()
        with pytest.raises(InvalidTierLimitUpdate, match="strictly increasing"):
            ledger.update_tier_limit(Tier.ONE, _d("80"))

    def test_tier_two_raised(self) -> None:
        ledger = _ledger()
        schedule = ledger.update_tier_limit(Tier.TWO, _d("100"))
        assert schedule.as_list() == [_d("30"), _d("100"), _d("150")]

    def test_active_tier_two_below_collected_rejected(self) -> None:
        ledger = _ledger()
        _fill_to(ledger, "40")
        with pytest.raises(InvalidTierLimitUpdate):
            ledger.update_tier_limit(Tier.TWO, _d("35"))

    def test_tier_three_lowered_before_reached(self) -> None:
        ledger = _ledger()
        schedule = ledger.update_tier_limit(Tier.THREE, _d("81"))
        assert schedule.final_limit == _d("81")

    def test_active_tier_three_must_exceed_collected(self) -> None:
        ledger = _ledger()
        _fill_to(ledger, "100")
        with pytest.raises(InvalidTierLimitUpdate):
            ledger.update_tier_limit(Tier.THREE, _d("100"))
        ledger.update_tier_limit(Tier.THREE, _d("101"))
        outcome = ledger.accept("alice", _d("1"), ONE)
        assert outcome.sale_closed is True

    def test_closed_sale_rejects_updates(self) -> None:
        ledger = _ledger()
        _fill_to(ledger, "150")
        with pytest.raises(InvalidTierLimitUpdate):
            ledger.update_tier_limit(Tier.THREE, _d("200"))
        with pytest.raises(InvalidTierLimitUpdate):
            ledger.update_tier_limit(Tier.CLOSED, _d("200"))

    def test_non_positive_limit_rejected(self) -> None:
        ledger = _ledger()
        with pytest.raises(InvalidTierLimitUpdate, match="positive"):
            ledger.update_tier_limit(Tier.ONE, _d("0"))

    @pytest.mark.parametrize("limit", ["NaN", "Infinity"])
    def test_non_finite_limit_rejected(self, limit: str) -> None:
        ledger = _ledger()
        with pytest.raises(InvalidTierLimitUpdate, match="finite"):
            ledger.update_tier_limit(Tier.THREE, _d(limit))
        assert ledger.schedule.final_limit == _d("150")

    def test_failed_update_keeps_schedule(self) -> None:
        ledger = _ledger()
        before = ledger.schedule
        with pytest.raises(InvalidTierLimitUpdate):
            ledger.update_tier_limit(Tier.TWO, _d("200"))
        assert ledger.schedule == before


class TestAdministrativeSetters:
    def test_cap_must_be_positive(self) -> None:
        ledger = _ledger()
        with pytest.raises(InvalidParameterValue):
            ledger.update_individual_cap(_d("0"))

    @pytest.mark.parametrize("cap", ["NaN", "Infinity"])
    def test_cap_must_be_finite(self, cap: str) -> None:
        ledger = _ledger()
        with pytest.raises(InvalidParameterValue, match="finite"):
            ledger.update_individual_cap(_d(cap))

    def test_page_size_must_be_positive(self) -> None:
        ledger = _ledger()
        with pytest.raises(InvalidParameterValue):
            ledger.update_max_page_size(0)


class TestSnapshots:
    def test_restore_reverts_mutations(self) -> None:
        ledger = _ledger()
        ledger.accept("alice", _d("10"), ONE)
        snapshot = ledger.snapshot()
        ledger.accept("bob", _d("25"), ONE)
        ledger.restore(snapshot)
        assert ledger.total_collected == _d("10")
        assert ledger.current_tier == Tier.ONE
        assert ledger.participant_count == 1
        assert ledger.get_participant("bob").is_empty

    def test_snapshot_is_detached(self) -> None:
        ledger = _ledger()
        ledger.accept("alice", _d("10"), ONE)
        snapshot = ledger.snapshot()
        ledger.accept("alice", _d("5"), ONE)
        assert snapshot.records["alice"].total == _d("10")

    def test_from_snapshot_round_trip(self) -> None:
        ledger = _ledger()
        ledger.accept("alice", _d("35"), ONE)
        copy = TierLedger.from_snapshot(ledger.snapshot())
        assert copy.snapshot() == ledger.snapshot()


class TestAccountingInvariants:
    def test_totals_match_accepted_amounts(self) -> None:
        """total_collected == sum of accepted amounts (capped) == sum of records."""
        ledger = _ledger(cap="40")
        contributions = [
            ("a", "7"), ("b", "13"), ("c", "9"), ("a", "20"), ("d", "33"),
            ("e", "1"), ("b", "17"), ("f", "40"), ("g", "25"),
        ]
        accepted = Decimal("0")
        for participant, amount in contributions:
            try:
                ledger.accept(participant, Decimal(amount), ONE)
            except (IndividualCapExceeded, SaleClosed):
                continue
            accepted += Decimal(amount)

        expected = min(accepted, ledger.schedule.final_limit)
        assert ledger.total_collected == expected
        records = [ledger.get_participant(p) for p in "abcdefg"]
        assert sum(r.total for r in records) == ledger.total_collected
        assert ledger.check_invariants() == []

    def test_invariants_hold_after_close(self) -> None:
        ledger = _ledger()
        _fill_to(ledger, "149")
        ledger.accept("alice", _d("5"), ONE)
        assert ledger.check_invariants() == []
