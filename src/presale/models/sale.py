"""Sale models — tiers, schedule, participant records, accept outcomes.

All monetary values use Decimal for exact arithmetic. No floats in finance.

Invariants enforced by these models:
- Tier progression is one-way: ONE → TWO → THREE → CLOSED
- Tier limits are cumulative and strictly increasing
- A participant's total always equals the sum of its per-tier buckets
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional


ZERO = Decimal("0")


class Tier(str, enum.Enum):
    """Capacity band currently accepting contributions.

    State machine:
        ONE → TWO → THREE → CLOSED
    """
    ONE = "tier_1"
    TWO = "tier_2"
    THREE = "tier_3"
    CLOSED = "closed"

    @property
    def order(self) -> int:
        return _TIER_ORDER[self]

    @property
    def number(self) -> Optional[int]:
        """1-based tier number, or None once the sale is closed."""
        if self is Tier.CLOSED:
            return None
        return _TIER_ORDER[self]

    @classmethod
    def from_number(cls, number: int) -> Tier:
        for tier, order in _TIER_ORDER.items():
            if order == number and tier is not Tier.CLOSED:
                return tier
        raise ValueError(f"Unknown tier number: {number}")


_TIER_ORDER: dict[Tier, int] = {
    Tier.ONE: 1,
    Tier.TWO: 2,
    Tier.THREE: 3,
    Tier.CLOSED: 4,
}

# Valid tier transitions
TIER_TRANSITIONS: dict[Tier, Tier] = {
    Tier.ONE: Tier.TWO,
    Tier.TWO: Tier.THREE,
    Tier.THREE: Tier.CLOSED,
}

CAPPED_TIERS: frozenset[Tier] = frozenset({Tier.ONE, Tier.TWO})


def next_tier(tier: Tier) -> Tier:
    """Return the tier that follows ``tier``.

    Raises ValueError for CLOSED, which has no successor.
    """
    successor = TIER_TRANSITIONS.get(tier)
    if successor is None:
        raise ValueError(f"Invalid tier transition: {tier.value} has no successor")
    return successor


@dataclass(frozen=True)
class TierSchedule:
    """Cumulative capacity thresholds for the three tiers.

    Invariant: 0 < tier_1 < tier_2 < tier_3
    """
    tier_1: Decimal
    tier_2: Decimal
    tier_3: Decimal

    def __post_init__(self) -> None:
        errors = self.validate()
        if errors:
            raise ValueError("; ".join(errors))

    def validate(self) -> list[str]:
        """Check structural validity. Returns errors (empty = OK)."""
        errors: list[str] = []
        if self.tier_1 <= ZERO:
            errors.append(f"Tier 1 limit must be positive, got {self.tier_1}")
        if self.tier_2 <= self.tier_1:
            errors.append(
                f"Tier limits must be strictly increasing: "
                f"tier 2 ({self.tier_2}) <= tier 1 ({self.tier_1})"
            )
        if self.tier_3 <= self.tier_2:
            errors.append(
                f"Tier limits must be strictly increasing: "
                f"tier 3 ({self.tier_3}) <= tier 2 ({self.tier_2})"
            )
        return errors

    def limit(self, tier: Tier) -> Decimal:
        """Cumulative limit of an open tier."""
        if tier is Tier.ONE:
            return self.tier_1
        if tier is Tier.TWO:
            return self.tier_2
        if tier is Tier.THREE:
            return self.tier_3
        raise ValueError("A closed sale has no tier limit")

    @property
    def final_limit(self) -> Decimal:
        return self.tier_3

    def with_limit(self, tier: Tier, new_limit: Decimal) -> TierSchedule:
        """Return a copy with one limit replaced.

        Raises ValueError if the result is not strictly increasing.
        """
        limits = {
            Tier.ONE: self.tier_1,
            Tier.TWO: self.tier_2,
            Tier.THREE: self.tier_3,
        }
        if tier not in limits:
            raise ValueError("A closed sale has no tier limit")
        limits[tier] = new_limit
        return TierSchedule(limits[Tier.ONE], limits[Tier.TWO], limits[Tier.THREE])

    def as_list(self) -> list[Decimal]:
        return [self.tier_1, self.tier_2, self.tier_3]


@dataclass
class ParticipantRecord:
    """Contribution totals for a single participant.

    Mutable — updated by every booking the ledger makes for this
    participant. per_tier is indexed by tier number - 1.

    Invariant: total == sum(per_tier)
    """
    total: Decimal = ZERO
    per_tier: list[Decimal] = field(default_factory=lambda: [ZERO, ZERO, ZERO])

    def book(self, tier: Tier, amount: Decimal) -> None:
        """Add ``amount`` to the bucket of ``tier`` and to the total."""
        if tier is Tier.CLOSED:
            raise ValueError("Cannot book into a closed sale")
        self.per_tier[tier.order - 1] += amount
        self.total += amount

    def in_tier(self, tier: Tier) -> Decimal:
        return self.per_tier[tier.order - 1]

    @property
    def is_empty(self) -> bool:
        return self.total == ZERO

    def copy(self) -> ParticipantRecord:
        return ParticipantRecord(total=self.total, per_tier=list(self.per_tier))

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": str(self.total),
            "per_tier": [str(v) for v in self.per_tier],
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ParticipantRecord:
        return ParticipantRecord(
            total=Decimal(data["total"]),
            per_tier=[Decimal(v) for v in data["per_tier"]],
        )


@dataclass(frozen=True)
class TierBooking:
    """Amount booked into one tier during a single accept call."""
    tier: Tier
    amount: Decimal


@dataclass(frozen=True)
class TierTransition:
    """A tier advance that happened during a single accept call."""
    from_tier: Tier
    to_tier: Tier
    total_collected: Decimal


@dataclass(frozen=True)
class AcceptOutcome:
    """Result of distributing one contribution across the tiers.

    Invariant: sum(b.amount for b in bookings) + unbooked == amount

    ``unbooked`` is non-zero only when a contribution straddles the final
    limit: the surplus is booked to nobody but still leaves with the full
    amount.
    """
    participant: str
    amount: Decimal
    bookings: tuple[TierBooking, ...]
    record: ParticipantRecord
    current_tier: Tier
    total_collected: Decimal
    transitions: tuple[TierTransition, ...]
    sale_closed: bool
    unbooked: Decimal
    first_contribution: bool

    @property
    def booked(self) -> Decimal:
        return sum((b.amount for b in self.bookings), ZERO)


@dataclass(frozen=True)
class ParticipantPage:
    """One page of the participant index."""
    page: int
    page_size: int
    total_participants: int
    entries: tuple[tuple[str, ParticipantRecord], ...]

    @property
    def total_pages(self) -> int:
        return -(-self.total_participants // self.page_size)


@dataclass(frozen=True)
class LedgerSnapshot:
    """Complete, detached copy of the ledger state.

    Used for rollback when a deposit's transfer fails, and as the
    persisted form of the ledger.
    """
    schedule: TierSchedule
    total_collected: Decimal
    current_tier: Tier
    records: dict[str, ParticipantRecord]
    index: tuple[str, ...]
    individual_cap: Decimal
    max_page_size: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "tier_limits": [str(v) for v in self.schedule.as_list()],
            "total_collected": str(self.total_collected),
            "current_tier": self.current_tier.value,
            "records": {k: r.to_dict() for k, r in self.records.items()},
            "index": list(self.index),
            "individual_cap": str(self.individual_cap),
            "max_page_size": self.max_page_size,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> LedgerSnapshot:
        limits = [Decimal(v) for v in data["tier_limits"]]
        return LedgerSnapshot(
            schedule=TierSchedule(*limits),
            total_collected=Decimal(data["total_collected"]),
            current_tier=Tier(data["current_tier"]),
            records={
                k: ParticipantRecord.from_dict(v)
                for k, v in data["records"].items()
            },
            index=tuple(data["index"]),
            individual_cap=Decimal(data["individual_cap"]),
            max_page_size=int(data["max_page_size"]),
        )
