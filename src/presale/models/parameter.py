"""Timelocked parameter models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional


@dataclass(frozen=True)
class PendingMutation:
    """A proposed value waiting for its timelock to elapse.

    Frozen — a new proposal replaces the whole record.
    """
    pending_value: Decimal
    proposed_utc: datetime
    effective_at: datetime

    def is_due(self, now: datetime) -> bool:
        return now >= self.effective_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "pending_value": str(self.pending_value),
            "proposed_utc": self.proposed_utc.isoformat(),
            "effective_at": self.effective_at.isoformat(),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> PendingMutation:
        return PendingMutation(
            pending_value=Decimal(data["pending_value"]),
            proposed_utc=datetime.fromisoformat(data["proposed_utc"]),
            effective_at=datetime.fromisoformat(data["effective_at"]),
        )


@dataclass(frozen=True)
class ParameterState:
    """Persistable state of a timelocked parameter."""
    name: str
    value: Decimal
    pending: Optional[PendingMutation] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "value": str(self.value),
            "pending": self.pending.to_dict() if self.pending else None,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ParameterState:
        pending = data.get("pending")
        return ParameterState(
            name=data["name"],
            value=Decimal(data["value"]),
            pending=PendingMutation.from_dict(pending) if pending else None,
        )
