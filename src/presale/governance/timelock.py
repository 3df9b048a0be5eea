"""Timelocked parameter — single-pending-value mutation with a cool-down.

A privileged actor proposes a new value. The value is recorded as
pending with an effective time of ``now + delay``. It only becomes the
active value when an explicit ``apply`` runs at or after that time.

State machine:
    IDLE → PENDING(value, effective_at)   (propose)
    PENDING → PENDING(value', ...)        (propose again, overwrites)
    PENDING → IDLE                        (apply, once effective_at passed)

Readers only ever observe the active value. The pending value is exposed
for observability, never as a substitute for the active one.

Authorization is the caller's job; this class assumes every call it
receives is already privileged.
"""

from __future__ import annotations

import enum
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from presale.errors import (
    InvalidParameterValue,
    NoMutationPending,
    TimelockNotElapsed,
)
from presale.models.parameter import ParameterState, PendingMutation


class TimelockState(str, enum.Enum):
    IDLE = "idle"
    PENDING = "pending"


class TimelockedParameter:
    """A single configuration value guarded by a mandatory delay.

    Usage:
        increment = TimelockedParameter(
            "increment", Decimal("1"),
            ceiling=Decimal("10"), min_delay=timedelta(days=1),
        )
        increment.propose(Decimal("2"), now=now)
        increment.apply(now=now + timedelta(days=1))
        assert increment.value == Decimal("2")
    """

    def __init__(
        self,
        name: str,
        initial_value: Decimal,
        ceiling: Decimal,
        min_delay: timedelta,
    ) -> None:
        if initial_value <= Decimal("0"):
            raise ValueError(f"{name} must start positive, got {initial_value}")
        if initial_value > ceiling:
            raise ValueError(
                f"{name} initial value {initial_value} exceeds ceiling {ceiling}"
            )
        if min_delay < timedelta(0):
            raise ValueError(f"{name} timelock delay cannot be negative")
        self._name = name
        self._value = initial_value
        self._ceiling = ceiling
        self._min_delay = min_delay
        self._pending: Optional[PendingMutation] = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def value(self) -> Decimal:
        """The currently active value."""
        return self._value

    @property
    def ceiling(self) -> Decimal:
        return self._ceiling

    @property
    def min_delay(self) -> timedelta:
        return self._min_delay

    @property
    def pending(self) -> Optional[PendingMutation]:
        return self._pending

    @property
    def state(self) -> TimelockState:
        if self._pending is None:
            return TimelockState.IDLE
        return TimelockState.PENDING

    def propose(
        self,
        new_value: Decimal,
        now: Optional[datetime] = None,
        delay: Optional[timedelta] = None,
    ) -> PendingMutation:
        """Record ``new_value`` as pending until ``now + delay``.

        ``delay`` defaults to, and may not be shorter than, the minimum
        delay. Any earlier pending proposal is replaced.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        if delay is None:
            delay = self._min_delay
        if not new_value.is_finite():
            raise InvalidParameterValue(
                f"Proposed {self._name} must be finite, got {new_value}"
            )
        if new_value <= Decimal("0"):
            raise InvalidParameterValue(
                f"Proposed {self._name} must be positive, got {new_value}"
            )
        if new_value == self._value:
            raise InvalidParameterValue(
                f"Proposed {self._name} equals the active value {self._value}"
            )
        if new_value > self._ceiling:
            raise InvalidParameterValue(
                f"Proposed {self._name} {new_value} exceeds ceiling {self._ceiling}"
            )
        if delay < self._min_delay:
            raise InvalidParameterValue(
                f"Timelock delay {delay} is shorter than the minimum {self._min_delay}"
            )

        self._pending = PendingMutation(
            pending_value=new_value,
            proposed_utc=now,
            effective_at=now + delay,
        )
        return self._pending

    def apply(self, now: Optional[datetime] = None) -> Decimal:
        """Activate the pending value once its timelock has elapsed.

        Returns the new active value.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        if self._pending is None:
            raise NoMutationPending(f"No {self._name} change is pending")
        if not self._pending.is_due(now):
            raise TimelockNotElapsed(
                f"{self._name} change is not effective until "
                f"{self._pending.effective_at.isoformat()}"
            )
        self._value = self._pending.pending_value
        self._pending = None
        return self._value

    def to_state(self) -> ParameterState:
        return ParameterState(name=self._name, value=self._value, pending=self._pending)

    def restore(self, state: ParameterState) -> None:
        """Load active and pending values from persisted state."""
        if state.name != self._name:
            raise ValueError(
                f"Parameter state for {state.name!r} cannot restore {self._name!r}"
            )
        self._value = state.value
        self._pending = state.pending
