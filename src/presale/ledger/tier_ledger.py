"""Tier ledger — distributes contributions across the three capacity tiers.

The ledger owns the aggregate total, the current tier, every participant
record and the participant index. It is a pure state machine: no
transfers, no event logging, no locking. Those are handled by the
service layer, which serializes every call into the ledger.

Distribution:
    A contribution fills the current tier up to its cumulative limit.
    Whatever does not fit overflows into the next tier. Filling tier
    THREE exactly closes the sale. A contribution that straddles the
    final limit books only the amount up to the limit; the surplus is
    reported as ``unbooked`` and still leaves with the full contribution.

Validation is complete before the first mutation, so a rejected
contribution never leaves a partial write behind.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from presale.errors import (
    IndividualCapExceeded,
    InvalidAmount,
    InvalidParameterValue,
    InvalidTierLimitUpdate,
    PaginationOutOfRange,
    SaleClosed,
)
from presale.models.sale import (
    CAPPED_TIERS,
    ZERO,
    AcceptOutcome,
    LedgerSnapshot,
    ParticipantPage,
    ParticipantRecord,
    Tier,
    TierBooking,
    TierSchedule,
    TierTransition,
    next_tier,
)


class TierLedger:
    """Contribution ledger with cross-tier overflow.

    Usage:
        ledger = TierLedger(schedule, individual_cap=Decimal("10"))
        outcome = ledger.accept("alice", Decimal("5"), increment=Decimal("1"))
        outcome.bookings      # per-tier amounts booked
        outcome.current_tier  # tier after the call
        outcome.sale_closed   # True only on the call that closed the sale
    """

    def __init__(
        self,
        schedule: TierSchedule,
        individual_cap: Decimal,
        max_page_size: int = 100,
    ) -> None:
        if individual_cap <= ZERO:
            raise ValueError("Individual cap must be positive")
        if max_page_size < 1:
            raise ValueError("Max page size must be at least 1")
        self._schedule = schedule
        self._individual_cap = individual_cap
        self._max_page_size = max_page_size
        self._total_collected = ZERO
        self._current_tier = Tier.ONE
        self._records: dict[str, ParticipantRecord] = {}
        self._index: list[str] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def schedule(self) -> TierSchedule:
        return self._schedule

    @property
    def current_tier(self) -> Tier:
        return self._current_tier

    @property
    def total_collected(self) -> Decimal:
        return self._total_collected

    @property
    def individual_cap(self) -> Decimal:
        return self._individual_cap

    @property
    def max_page_size(self) -> int:
        return self._max_page_size

    @property
    def is_closed(self) -> bool:
        return self._current_tier is Tier.CLOSED

    @property
    def participant_count(self) -> int:
        return len(self._index)

    def get_participant(self, participant: str) -> ParticipantRecord:
        """Return a copy of a participant's record.

        Unknown identities read as an empty record.
        """
        record = self._records.get(participant)
        if record is None:
            return ParticipantRecord()
        return record.copy()

    def list_participants(self, page: int, page_size: int) -> ParticipantPage:
        """Return one page of participants in first-contribution order.

        Pages are 1-based. A page past the last one is an error, not an
        empty page.
        """
        if page_size < 1 or page_size > self._max_page_size:
            raise PaginationOutOfRange(
                f"Page size must be between 1 and {self._max_page_size}, "
                f"got {page_size}"
            )
        if page < 1:
            raise PaginationOutOfRange(f"Page must be >= 1, got {page}")
        start = (page - 1) * page_size
        if start >= len(self._index):
            raise PaginationOutOfRange(
                f"Page {page} is out of range for {len(self._index)} "
                f"participants at page size {page_size}"
            )
        identities = self._index[start:start + page_size]
        return ParticipantPage(
            page=page,
            page_size=page_size,
            total_participants=len(self._index),
            entries=tuple((p, self._records[p].copy()) for p in identities),
        )

    def remaining_capacity(self) -> Decimal:
        """Amount still bookable before the sale closes."""
        return self._schedule.final_limit - self._total_collected

    # ------------------------------------------------------------------
    # Contributions
    # ------------------------------------------------------------------

    def validate_contribution(
        self,
        participant: str,
        amount: Decimal,
        increment: Decimal,
    ) -> None:
        """Raise the matching PresaleError if ``accept`` would reject."""
        if not participant:
            raise InvalidAmount("Participant identity must be non-empty")
        if self.is_closed:
            raise SaleClosed("Sale is closed: final tier is exhausted")
        if not amount.is_finite():
            raise InvalidAmount(f"Contribution must be a finite amount, got {amount}")
        if not increment.is_finite():
            raise InvalidAmount(f"Increment must be a finite amount, got {increment}")
        if amount <= ZERO:
            raise InvalidAmount(f"Contribution must be positive, got {amount}")
        if increment <= ZERO:
            raise InvalidAmount(f"Increment must be positive, got {increment}")
        try:
            remainder = amount % increment
        except InvalidOperation as e:
            raise InvalidAmount(
                f"Contribution {amount} cannot be checked against increment {increment}"
            ) from e
        if remainder != ZERO:
            raise InvalidAmount(
                f"Contribution {amount} is not a multiple of increment {increment}"
            )
        if self._current_tier in CAPPED_TIERS:
            existing = self._records.get(participant)
            current_total = existing.total if existing else ZERO
            if current_total + amount > self._individual_cap:
                raise IndividualCapExceeded(
                    f"Contribution of {amount} would bring {participant} to "
                    f"{current_total + amount}, above the individual cap of "
                    f"{self._individual_cap}"
                )

    def accept(
        self,
        participant: str,
        amount: Decimal,
        increment: Decimal,
    ) -> AcceptOutcome:
        """Distribute a contribution across the tiers.

        Raises:
            SaleClosed: the final tier is already exhausted.
            InvalidAmount: non-positive, or not a multiple of ``increment``.
            IndividualCapExceeded: tiers ONE/TWO only.
        """
        self.validate_contribution(participant, amount, increment)

        first_contribution = participant not in self._records
        bookings: list[TierBooking] = []
        transitions: list[TierTransition] = []
        remaining = amount

        while remaining > ZERO and not self.is_closed:
            tier = self._current_tier
            if tier is Tier.THREE:
                final_headroom = self._schedule.final_limit - self._total_collected
                if self._total_collected + remaining >= self._schedule.final_limit:
                    self._book(participant, tier, final_headroom, bookings)
                    remaining -= final_headroom
                    transitions.append(self._advance_tier())
                else:
                    self._book(participant, tier, remaining, bookings)
                    remaining = ZERO
            else:
                headroom = self._schedule.limit(tier) - self._total_collected
                if remaining <= headroom:
                    self._book(participant, tier, remaining, bookings)
                    remaining = ZERO
                    if self._total_collected == self._schedule.limit(tier):
                        transitions.append(self._advance_tier())
                else:
                    self._book(participant, tier, headroom, bookings)
                    remaining -= headroom
                    transitions.append(self._advance_tier())

        return AcceptOutcome(
            participant=participant,
            amount=amount,
            bookings=tuple(bookings),
            record=self.get_participant(participant),
            current_tier=self._current_tier,
            total_collected=self._total_collected,
            transitions=tuple(transitions),
            sale_closed=self.is_closed,
            unbooked=remaining,
            first_contribution=first_contribution,
        )

    def _book(
        self,
        participant: str,
        tier: Tier,
        amount: Decimal,
        bookings: list[TierBooking],
    ) -> None:
        # A tier lowered to exactly the collected total has no headroom
        if amount <= ZERO:
            return
        record = self._records.get(participant)
        if record is None:
            record = ParticipantRecord()
            self._records[participant] = record
            self._index.append(participant)
        record.book(tier, amount)
        self._total_collected += amount
        bookings.append(TierBooking(tier=tier, amount=amount))

    def _advance_tier(self) -> TierTransition:
        """Move to the next tier. Only the tier field changes."""
        previous = self._current_tier
        self._current_tier = next_tier(previous)
        return TierTransition(
            from_tier=previous,
            to_tier=self._current_tier,
            total_collected=self._total_collected,
        )

    # ------------------------------------------------------------------
    # Privileged mutations (authorization is checked by the caller)
    # ------------------------------------------------------------------

    def reset_ledger(self) -> int:
        """Zero every record, empty the index and re-open tier ONE.

        Returns the number of participant records cleared.
        """
        cleared = len(self._index)
        self._records.clear()
        self._index.clear()
        self._total_collected = ZERO
        self._current_tier = Tier.ONE
        return cleared

    def update_tier_limit(self, tier: Tier, new_limit: Decimal) -> TierSchedule:
        """Change the cumulative limit of a tier that has not been passed.

        Raises InvalidTierLimitUpdate on any violation; the schedule is
        unchanged in that case.
        """
        if tier is Tier.CLOSED:
            raise InvalidTierLimitUpdate("A closed sale has no tier limit to update")
        if self._current_tier.order > tier.order:
            raise InvalidTierLimitUpdate(
                f"Cannot update {tier.value}: sale is already at "
                f"{self._current_tier.value}"
            )
        if not new_limit.is_finite():
            raise InvalidTierLimitUpdate(f"Tier limit must be finite, got {new_limit}")
        if new_limit <= ZERO:
            raise InvalidTierLimitUpdate(f"Tier limit must be positive, got {new_limit}")

        if tier is Tier.ONE and new_limit < self._total_collected:
            raise InvalidTierLimitUpdate(
                f"Tier 1 limit {new_limit} is below collected funds "
                f"{self._total_collected}"
            )
        if tier is Tier.TWO:
            attributed = self._total_collected - self._schedule.tier_1
            if new_limit < attributed:
                raise InvalidTierLimitUpdate(
                    f"Tier 2 limit {new_limit} is below funds attributed to "
                    f"tier 2 ({attributed})"
                )
        if tier is self._current_tier:
            # The active tier can never sit below what it already holds
            if new_limit < self._total_collected:
                raise InvalidTierLimitUpdate(
                    f"{tier.value} limit {new_limit} is below collected funds "
                    f"{self._total_collected}"
                )
            if tier is Tier.THREE and new_limit == self._total_collected:
                raise InvalidTierLimitUpdate(
                    f"Tier 3 limit {new_limit} must exceed collected funds "
                    f"{self._total_collected} while the sale is open"
                )

        try:
            schedule = self._schedule.with_limit(tier, new_limit)
        except ValueError as e:
            raise InvalidTierLimitUpdate(str(e)) from e
        self._schedule = schedule
        return schedule

    def update_individual_cap(self, cap: Decimal) -> None:
        if not cap.is_finite():
            raise InvalidParameterValue(f"Individual cap must be finite, got {cap}")
        if cap <= ZERO:
            raise InvalidParameterValue(f"Individual cap must be positive, got {cap}")
        self._individual_cap = cap

    def update_max_page_size(self, size: int) -> None:
        if size < 1:
            raise InvalidParameterValue(f"Max page size must be at least 1, got {size}")
        self._max_page_size = size

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> LedgerSnapshot:
        """Return a detached copy of the complete ledger state."""
        return LedgerSnapshot(
            schedule=self._schedule,
            total_collected=self._total_collected,
            current_tier=self._current_tier,
            records={p: r.copy() for p, r in self._records.items()},
            index=tuple(self._index),
            individual_cap=self._individual_cap,
            max_page_size=self._max_page_size,
        )

    def restore(self, snapshot: LedgerSnapshot) -> None:
        """Replace the ledger state with a previously taken snapshot."""
        self._schedule = snapshot.schedule
        self._total_collected = snapshot.total_collected
        self._current_tier = snapshot.current_tier
        self._records = {p: r.copy() for p, r in snapshot.records.items()}
        self._index = list(snapshot.index)
        self._individual_cap = snapshot.individual_cap
        self._max_page_size = snapshot.max_page_size

    @classmethod
    def from_snapshot(cls, snapshot: LedgerSnapshot) -> TierLedger:
        ledger = cls(
            snapshot.schedule,
            individual_cap=snapshot.individual_cap,
            max_page_size=snapshot.max_page_size,
        )
        ledger.restore(snapshot)
        return ledger

    def check_invariants(self) -> list[str]:
        """Verify ledger invariants. Returns violations (empty = healthy)."""
        errors: list[str] = []
        record_sum = sum((r.total for r in self._records.values()), ZERO)
        if record_sum != self._total_collected:
            errors.append(
                f"Sum of participant totals ({record_sum}) != total collected "
                f"({self._total_collected})"
            )
        if self._total_collected > self._schedule.final_limit:
            errors.append(
                f"Total collected ({self._total_collected}) exceeds final limit "
                f"({self._schedule.final_limit})"
            )
        closed = self._total_collected == self._schedule.final_limit
        if closed != self.is_closed:
            errors.append(
                f"Tier {self._current_tier.value} inconsistent with total "
                f"collected {self._total_collected}"
            )
        for participant, record in self._records.items():
            if record.total != sum(record.per_tier, ZERO):
                errors.append(f"Record for {participant} does not sum to its total")
        if len(set(self._index)) != len(self._index):
            errors.append("Participant index contains duplicates")
        non_zero = sum(1 for r in self._records.values() if not r.is_empty)
        if non_zero != len(self._index):
            errors.append(
                f"Participant index length ({len(self._index)}) != non-zero "
                f"records ({non_zero})"
            )
        return errors
