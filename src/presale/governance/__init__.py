"""Privileged controls — access gates and timelocked parameters."""

from presale.governance.access import OwnershipGate, PauseGate, ReentrancyGuard
from presale.governance.timelock import TimelockedParameter, TimelockState

__all__ = [
    "OwnershipGate",
    "PauseGate",
    "ReentrancyGuard",
    "TimelockedParameter",
    "TimelockState",
]
