"""Custodian abstraction — where accepted contributions are forwarded.

The ledger never moves value. Once a contribution is booked, the service
forwards the full original amount to a custodian through this interface.
Swapping the custodian requires zero changes to ledger logic.

A custodian signals failure by raising. The service treats any exception
from ``transfer`` as a failed transfer and rolls the deposit back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Protocol, runtime_checkable


@runtime_checkable
class Custodian(Protocol):
    """Contract for custodial destinations.

    Adding a new custodian = implement this Protocol and pass it to
    PresaleService. Nothing else changes.
    """

    @property
    def destination(self) -> str:
        """Address that receives forwarded funds."""
        ...

    def transfer(self, amount: Decimal, reference: str) -> str:
        """Move ``amount`` to the destination.

        Returns a transfer reference. Raises on failure.
        """
        ...


@dataclass(frozen=True)
class TransferReceipt:
    """Record of a completed forward to the custodial destination."""
    transfer_id: str
    destination: str
    amount: Decimal
    reference: str
    transferred_utc: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class RecordingCustodian:
    """In-process custodian that keeps an append-only list of receipts."""

    def __init__(self, destination: str) -> None:
        if not destination:
            raise ValueError("Custodial destination must be non-empty")
        self._destination = destination
        self._receipts: List[TransferReceipt] = []

    @property
    def destination(self) -> str:
        return self._destination

    @property
    def receipts(self) -> List[TransferReceipt]:
        return list(self._receipts)

    @property
    def total_forwarded(self) -> Decimal:
        return sum((r.amount for r in self._receipts), Decimal("0"))

    def transfer(self, amount: Decimal, reference: str) -> str:
        if amount <= Decimal("0"):
            raise ValueError(f"Transfer amount must be positive, got {amount}")
        transfer_id = f"TRF-{len(self._receipts) + 1:08d}"
        self._receipts.append(
            TransferReceipt(
                transfer_id=transfer_id,
                destination=self._destination,
                amount=amount,
                reference=reference,
            )
        )
        return transfer_id
