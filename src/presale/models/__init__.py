"""Core data models for the presale ledger."""

from presale.models.parameter import ParameterState, PendingMutation
from presale.models.sale import (
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

__all__ = [
    "AcceptOutcome",
    "LedgerSnapshot",
    "ParameterState",
    "ParticipantPage",
    "ParticipantRecord",
    "PendingMutation",
    "Tier",
    "TierBooking",
    "TierSchedule",
    "TierTransition",
    "next_tier",
]
