"""Access gates wrapped around the ledger.

- OwnershipGate: a single privileged actor may call privileged operations.
- PauseGate: deposits can be suspended and resumed by the owner.
- ReentrancyGuard: a deposit in flight cannot be re-entered from the
  same thread (e.g. a custodian calling back into the service).

These are checks only. None of them touches ledger state.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from presale.errors import (
    InvalidParameterValue,
    ReentrantCall,
    SalePaused,
    Unauthorized,
)


class OwnershipGate:
    """Single-owner authorization check."""

    def __init__(self, owner: str) -> None:
        if not owner:
            raise ValueError("Owner identity must be non-empty")
        self._owner = owner

    @property
    def owner(self) -> str:
        return self._owner

    def is_owner(self, caller: str) -> bool:
        return caller == self._owner

    def require_owner(self, caller: str) -> None:
        if not self.is_owner(caller):
            raise Unauthorized(f"Caller {caller!r} is not the owner")

    def transfer_ownership(self, caller: str, new_owner: str) -> str:
        """Hand the privileged role to ``new_owner``. Returns the old owner."""
        self.require_owner(caller)
        if not new_owner:
            raise InvalidParameterValue("New owner identity must be non-empty")
        if new_owner == self._owner:
            raise InvalidParameterValue(f"{new_owner!r} is already the owner")
        previous = self._owner
        self._owner = new_owner
        return previous


class PauseGate:
    """Deposit acceptance switch."""

    def __init__(self, paused: bool = False) -> None:
        self._paused = paused

    @property
    def paused(self) -> bool:
        return self._paused

    def pause(self) -> None:
        if self._paused:
            raise InvalidParameterValue("Deposits are already paused")
        self._paused = True

    def resume(self) -> None:
        if not self._paused:
            raise InvalidParameterValue("Deposits are not paused")
        self._paused = False

    def require_active(self) -> None:
        if self._paused:
            raise SalePaused("Deposits are paused")


class ReentrancyGuard:
    """Refuses nested entry into a guarded section.

    Usage:
        guard = ReentrancyGuard()
        with guard.enter():
            ...  # a second guard.enter() in here raises ReentrantCall
    """

    def __init__(self) -> None:
        self._entered = False

    @property
    def entered(self) -> bool:
        return self._entered

    @contextmanager
    def enter(self) -> Iterator[None]:
        if self._entered:
            raise ReentrantCall("Re-entrant call into a guarded operation")
        self._entered = True
        try:
            yield
        finally:
            self._entered = False
