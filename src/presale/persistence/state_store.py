"""State store — durable JSON snapshot of the presale state.

The store holds the latest full state, not history (history lives in
the event log). Each save rewrites the document through a temporary
file so a crash mid-write never leaves a truncated state file.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from presale.models.parameter import ParameterState
from presale.models.sale import LedgerSnapshot

STATE_VERSION = 1


@dataclass(frozen=True)
class PersistedState:
    """Everything the service needs to resume where it stopped."""
    ledger: LedgerSnapshot
    increment: ParameterState
    owner: str
    paused: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": STATE_VERSION,
            "ledger": self.ledger.to_dict(),
            "increment": self.increment.to_dict(),
            "owner": self.owner,
            "paused": self.paused,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> PersistedState:
        version = data.get("version")
        if version != STATE_VERSION:
            raise ValueError(f"Unsupported state version: {version!r}")
        return PersistedState(
            ledger=LedgerSnapshot.from_dict(data["ledger"]),
            increment=ParameterState.from_dict(data["increment"]),
            owner=data["owner"],
            paused=bool(data["paused"]),
        )


class StateStore:
    """JSON file holding the latest PersistedState."""

    def __init__(self, storage_path: Path) -> None:
        self._storage_path = storage_path

    @property
    def storage_path(self) -> Path:
        return self._storage_path

    def load(self) -> Optional[PersistedState]:
        """Return the stored state, or None if nothing was saved yet."""
        if not self._storage_path.exists():
            return None
        with self._storage_path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return PersistedState.from_dict(data)

    def save(self, state: PersistedState) -> None:
        tmp_path = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(state.to_dict(), f, indent=2, sort_keys=True)
        tmp_path.replace(self._storage_path)
