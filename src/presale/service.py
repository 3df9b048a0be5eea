"""Presale service — unified facade over the ledger and its collaborators.

This is the primary interface for programmatic access to the presale.
It orchestrates:
- Deposits (pause gate, reentrancy guard, tier ledger, custodial transfer)
- Reads (tier, totals, participant records, paginated listing)
- Privileged configuration (tier limits, cap, page size, increment timelock)
- Control (pause/resume, ownership, full ledger reset)
- Persistence (event log, state store)

Every operation runs under a single per-service lock, so no two calls
ever interleave. A deposit is atomic: if the custodial transfer fails,
the ledger is restored to its pre-deposit snapshot and the deposit fails
with TransferFailed. Notifications are only emitted once the change they
describe has fully completed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

from presale.custody.custodian import Custodian, RecordingCustodian
from presale.errors import (
    DirectTransferRejected,
    ErrorKind,
    PresaleError,
    ReentrantCall,
    TransferFailed,
)
from presale.governance.access import OwnershipGate, PauseGate, ReentrancyGuard
from presale.governance.timelock import TimelockedParameter
from presale.ledger.tier_ledger import TierLedger
from presale.models.sale import AcceptOutcome, LedgerSnapshot, ParticipantRecord, Tier
from presale.persistence.event_log import EventKind, EventLog, EventRecord
from presale.persistence.state_store import PersistedState, StateStore
from presale.policy.params import SaleParams

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[ErrorKind] = None


class PresaleService:
    """Presale facade.

    Usage:
        params = SaleParams.from_config_dir(config_dir)
        service = PresaleService(params)

        result = service.deposit("alice", Decimal("5"))
        result.data["bookings"]     # amounts per tier
        service.status()            # tier, totals, increment, ...

        # Privileged (owner only)
        service.update_tier_limit("owner", Tier.TWO, Decimal("90"))
        service.propose_increment("owner", Decimal("2"))
        service.apply_increment("owner")   # after the timelock elapsed

    Persistence (optional):
        service = PresaleService(params, event_log=log, state_store=store)
        # State is persisted on each mutation and loaded on construction.
    """

    def __init__(
        self,
        params: SaleParams,
        custodian: Optional[Custodian] = None,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
    ) -> None:
        self._params = params
        self._custodian: Custodian = (
            custodian if custodian is not None
            else RecordingCustodian(params.custodial_destination)
        )
        self._event_log = event_log if event_log is not None else EventLog()
        self._state_store = state_store

        self._lock = threading.RLock()
        self._guard = ReentrancyGuard()

        self._ledger = TierLedger(
            params.schedule(),
            individual_cap=params.individual_cap,
            max_page_size=params.max_page_size,
        )
        self._increment = TimelockedParameter(
            "increment",
            params.increment,
            ceiling=params.increment_ceiling,
            min_delay=params.increment_timelock,
        )
        self._ownership = OwnershipGate(params.owner)
        self._pause = PauseGate()

        # Persisted state wins over the config seed
        if state_store is not None:
            stored = state_store.load()
            if stored is not None:
                self._ledger.restore(stored.ledger)
                self._increment.restore(stored.increment)
                self._ownership = OwnershipGate(stored.owner)
                self._pause = PauseGate(paused=stored.paused)
                logger.info(
                    "Loaded presale state from %s (tier=%s, collected=%s)",
                    state_store.storage_path,
                    self._ledger.current_tier.value,
                    self._ledger.total_collected,
                )

        # Initialize counter from persisted log to avoid ID collision on restart
        self._event_counter = self._event_log.count

        # Set when an audit event or state write fails after value has
        # already left through the custodian. In-memory state stays correct;
        # the durable copies need operator attention.
        self._persistence_degraded: bool = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def params(self) -> SaleParams:
        """The configuration this service was seeded with."""
        return self._params

    @property
    def current_tier(self) -> Tier:
        return self._ledger.current_tier

    @property
    def total_collected(self) -> Decimal:
        return self._ledger.total_collected

    @property
    def owner(self) -> str:
        return self._ownership.owner

    @property
    def paused(self) -> bool:
        return self._pause.paused

    @property
    def persistence_degraded(self) -> bool:
        return self._persistence_degraded

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @property
    def custodian(self) -> Custodian:
        return self._custodian

    def required_increment(self) -> Decimal:
        """The active contribution increment (never the pending one)."""
        with self._lock:
            return self._increment.value

    def get_participant(self, participant: str) -> ParticipantRecord:
        with self._lock:
            return self._ledger.get_participant(participant)

    def list_participants(self, page: int, page_size: int) -> ServiceResult:
        with self._lock:
            try:
                result = self._ledger.list_participants(page, page_size)
            except PresaleError as e:
                return self._failure("list_participants", e)
        return ServiceResult(
            success=True,
            data={
                "page": result.page,
                "page_size": result.page_size,
                "total_participants": result.total_participants,
                "total_pages": result.total_pages,
                "participants": [
                    {"participant": p, **record.to_dict()}
                    for p, record in result.entries
                ],
            },
        )

    def status(self) -> dict[str, Any]:
        """Snapshot of the sale for operators and dashboards."""
        with self._lock:
            schedule = self._ledger.schedule
            pending = self._increment.pending
            return {
                "current_tier": self._ledger.current_tier.value,
                "total_collected": str(self._ledger.total_collected),
                "remaining_capacity": str(self._ledger.remaining_capacity()),
                "tier_limits": [str(v) for v in schedule.as_list()],
                "individual_cap": str(self._ledger.individual_cap),
                "increment": str(self._increment.value),
                "pending_increment": pending.to_dict() if pending else None,
                "max_page_size": self._ledger.max_page_size,
                "participants": self._ledger.participant_count,
                "paused": self._pause.paused,
                "owner": self._ownership.owner,
                "custodial_destination": self._custodian.destination,
                "events": self._event_log.count,
                "persistence_degraded": self._persistence_degraded,
            }

    # ------------------------------------------------------------------
    # Deposits
    # ------------------------------------------------------------------

    def deposit(
        self,
        participant: str,
        amount: Decimal,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Accept a contribution and forward the full amount to custody.

        The ledger mutation and the transfer succeed or fail together.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        with self._lock:
            try:
                with self._guard.enter():
                    self._pause.require_active()
                    snapshot = self._ledger.snapshot()
                    outcome = self._ledger.accept(
                        participant, amount, self._increment.value,
                    )
                    transfer_id = self._forward(participant, amount, snapshot)
            except PresaleError as e:
                return self._failure("deposit", e, actor=participant)

            logger.info(
                "Accepted %s from %s: booked %s, tier now %s",
                amount, participant, outcome.booked, outcome.current_tier.value,
            )
            if outcome.unbooked > Decimal("0"):
                logger.warning(
                    "Contribution from %s straddled the final limit: %s forwarded "
                    "but not booked to any tier",
                    participant, outcome.unbooked,
                )

            warnings = self._record_deposit_events(outcome, transfer_id, now)
            persist_warning = self._safe_persist()
            if persist_warning:
                warnings.append(persist_warning)

        data = self._outcome_data(outcome)
        data["transfer_id"] = transfer_id
        if warnings:
            data["warning"] = "; ".join(warnings)
        return ServiceResult(success=True, data=data)

    def receive(self, sender: str, amount: Decimal) -> ServiceResult:
        """Value sent without a deposit request is never credited."""
        error = DirectTransferRejected(
            f"Direct transfer of {amount} from {sender!r} rejected: "
            f"use deposit to contribute"
        )
        return self._failure("receive", error, actor=sender)

    def _forward(
        self,
        participant: str,
        amount: Decimal,
        snapshot: LedgerSnapshot,
    ) -> str:
        """Transfer the full amount to custody; roll back the ledger on failure."""
        try:
            return self._custodian.transfer(amount, reference=participant)
        except Exception as e:
            self._ledger.restore(snapshot)
            logger.warning(
                "Transfer of %s to %s failed; deposit from %s rolled back: %s",
                amount, self._custodian.destination, participant, e,
            )
            raise TransferFailed(
                f"Transfer of {amount} to {self._custodian.destination} failed: {e}"
            ) from e

    def _record_deposit_events(
        self,
        outcome: AcceptOutcome,
        transfer_id: str,
        now: datetime,
    ) -> list[str]:
        warnings: list[str] = []
        for booking in outcome.bookings:
            warnings.append(self._emit(
                EventKind.CONTRIBUTION_RECORDED,
                outcome.participant,
                {
                    "participant": outcome.participant,
                    "amount": str(booking.amount),
                    "tier": booking.tier.value,
                },
                now,
            ))
        for transition in outcome.transitions:
            logger.info(
                "Tier advanced %s -> %s at %s collected",
                transition.from_tier.value,
                transition.to_tier.value,
                transition.total_collected,
            )
            warnings.append(self._emit(
                EventKind.TIER_ADVANCED,
                "system",
                {
                    "from_tier": transition.from_tier.value,
                    "to_tier": transition.to_tier.value,
                    "total_collected": str(transition.total_collected),
                },
                now,
            ))
        if outcome.sale_closed:
            logger.info("Sale closed at %s collected", outcome.total_collected)
            warnings.append(self._emit(
                EventKind.SALE_CLOSED,
                "system",
                {"total_collected": str(outcome.total_collected)},
                now,
            ))
        warnings.append(self._emit(
            EventKind.FUNDS_FORWARDED,
            outcome.participant,
            {
                "amount": str(outcome.amount),
                "unbooked": str(outcome.unbooked),
                "destination": self._custodian.destination,
                "transfer_id": transfer_id,
            },
            now,
        ))
        return [w for w in warnings if w]

    # ------------------------------------------------------------------
    # Privileged configuration
    # ------------------------------------------------------------------

    def reset_ledger(self, caller: str, now: Optional[datetime] = None) -> ServiceResult:
        """Clear every participant record and re-open tier ONE."""
        with self._lock:
            try:
                self._require_idle()
                self._ownership.require_owner(caller)
            except PresaleError as e:
                return self._failure("reset_ledger", e, actor=caller)
            previous_total = self._ledger.total_collected
            cleared = self._ledger.reset_ledger()
            logger.info(
                "Ledger reset by %s: %d records cleared, %s collected discarded",
                caller, cleared, previous_total,
            )
            return self._committed(
                EventKind.LEDGER_RESET,
                caller,
                {"records_cleared": cleared, "previous_total": str(previous_total)},
                now,
            )

    def update_tier_limit(
        self,
        caller: str,
        tier: Tier,
        new_limit: Decimal,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        with self._lock:
            try:
                self._require_idle()
                self._ownership.require_owner(caller)
                previous = self._ledger.schedule.limit(tier) if tier is not Tier.CLOSED else None
                schedule = self._ledger.update_tier_limit(tier, new_limit)
            except PresaleError as e:
                return self._failure("update_tier_limit", e, actor=caller)
            logger.info("Tier %s limit %s -> %s", tier.value, previous, new_limit)
            return self._committed(
                EventKind.TIER_LIMIT_UPDATED,
                caller,
                {
                    "tier": tier.value,
                    "previous_limit": str(previous),
                    "new_limit": str(new_limit),
                    "tier_limits": [str(v) for v in schedule.as_list()],
                },
                now,
            )

    def update_individual_cap(
        self,
        caller: str,
        cap: Decimal,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        with self._lock:
            try:
                self._require_idle()
                self._ownership.require_owner(caller)
                previous = self._ledger.individual_cap
                self._ledger.update_individual_cap(cap)
            except PresaleError as e:
                return self._failure("update_individual_cap", e, actor=caller)
            logger.info("Individual cap %s -> %s", previous, cap)
            return self._committed(
                EventKind.INDIVIDUAL_CAP_UPDATED,
                caller,
                {"previous_cap": str(previous), "new_cap": str(cap)},
                now,
            )

    def update_max_page_size(
        self,
        caller: str,
        size: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        with self._lock:
            try:
                self._require_idle()
                self._ownership.require_owner(caller)
                previous = self._ledger.max_page_size
                self._ledger.update_max_page_size(size)
            except PresaleError as e:
                return self._failure("update_max_page_size", e, actor=caller)
            logger.info("Max page size %d -> %d", previous, size)
            return self._committed(
                EventKind.MAX_PAGE_SIZE_UPDATED,
                caller,
                {"previous_size": previous, "new_size": size},
                now,
            )

    def propose_increment(
        self,
        caller: str,
        new_value: Decimal,
        now: Optional[datetime] = None,
        delay: Optional[timedelta] = None,
    ) -> ServiceResult:
        """Queue an increment change behind the timelock."""
        if now is None:
            now = datetime.now(timezone.utc)
        with self._lock:
            try:
                self._require_idle()
                self._ownership.require_owner(caller)
                pending = self._increment.propose(new_value, now=now, delay=delay)
            except PresaleError as e:
                return self._failure("propose_increment", e, actor=caller)
            logger.info(
                "Increment change to %s proposed, effective at %s",
                new_value, pending.effective_at.isoformat(),
            )
            return self._committed(
                EventKind.INCREMENT_CHANGE_PROPOSED,
                caller,
                {
                    "active_value": str(self._increment.value),
                    "pending_value": str(pending.pending_value),
                    "effective_at": pending.effective_at.isoformat(),
                },
                now,
            )

    def apply_increment(
        self,
        caller: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Activate the pending increment once its timelock has elapsed."""
        if now is None:
            now = datetime.now(timezone.utc)
        with self._lock:
            try:
                self._require_idle()
                self._ownership.require_owner(caller)
                previous = self._increment.value
                value = self._increment.apply(now=now)
            except PresaleError as e:
                return self._failure("apply_increment", e, actor=caller)
            logger.info("Increment changed %s -> %s", previous, value)
            return self._committed(
                EventKind.INCREMENT_CHANGE_APPLIED,
                caller,
                {"previous_value": str(previous), "new_value": str(value)},
                now,
            )

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def pause(self, caller: str, now: Optional[datetime] = None) -> ServiceResult:
        with self._lock:
            try:
                self._require_idle()
                self._ownership.require_owner(caller)
                self._pause.pause()
            except PresaleError as e:
                return self._failure("pause", e, actor=caller)
            logger.info("Deposits paused by %s", caller)
            return self._committed(EventKind.SALE_PAUSED, caller, {}, now)

    def resume(self, caller: str, now: Optional[datetime] = None) -> ServiceResult:
        with self._lock:
            try:
                self._require_idle()
                self._ownership.require_owner(caller)
                self._pause.resume()
            except PresaleError as e:
                return self._failure("resume", e, actor=caller)
            logger.info("Deposits resumed by %s", caller)
            return self._committed(EventKind.SALE_RESUMED, caller, {}, now)

    def transfer_ownership(
        self,
        caller: str,
        new_owner: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        with self._lock:
            try:
                self._require_idle()
                previous = self._ownership.transfer_ownership(caller, new_owner)
            except PresaleError as e:
                return self._failure("transfer_ownership", e, actor=caller)
            logger.info("Ownership transferred %s -> %s", previous, new_owner)
            return self._committed(
                EventKind.OWNERSHIP_TRANSFERRED,
                caller,
                {"previous_owner": previous, "new_owner": new_owner},
                now,
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_idle(self) -> None:
        """Refuse privileged changes while a deposit is in flight."""
        if self._guard.entered:
            raise ReentrantCall("Privileged operation attempted during a deposit")

    def _failure(
        self,
        operation: str,
        error: PresaleError,
        actor: str = "",
    ) -> ServiceResult:
        logger.warning("%s rejected for %r: %s", operation, actor, error.message)
        return ServiceResult(
            success=False,
            errors=[error.message],
            error_kind=error.kind,
        )

    def _committed(
        self,
        kind: EventKind,
        actor: str,
        payload: dict[str, Any],
        now: Optional[datetime],
    ) -> ServiceResult:
        """Record the event and persist after a successful privileged change."""
        warnings = [w for w in (self._emit(kind, actor, payload, now), self._safe_persist()) if w]
        data = dict(payload)
        if warnings:
            data["warning"] = "; ".join(warnings)
        return ServiceResult(success=True, data=data)

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _emit(
        self,
        kind: EventKind,
        actor: str,
        payload: dict[str, Any],
        now: Optional[datetime],
    ) -> Optional[str]:
        """Append a notification. Returns a warning string or None.

        The change it describes has already happened, so a failed append
        degrades persistence instead of undoing the change.
        """
        try:
            event = EventRecord.create(
                event_id=self._next_event_id(),
                event_kind=kind,
                actor_id=actor or "system",
                payload=payload,
                timestamp_utc=now,
            )
            self._event_log.append(event)
        except (ValueError, OSError) as e:
            self._persistence_degraded = True
            logger.error("Event log failure for %s: %s", kind.value, e)
            return f"Event log failure: {e}"
        return None

    def _safe_persist(self) -> Optional[str]:
        """Write the state store. Returns a warning string or None."""
        if self._state_store is None:
            return None
        state = PersistedState(
            ledger=self._ledger.snapshot(),
            increment=self._increment.to_state(),
            owner=self._ownership.owner,
            paused=self._pause.paused,
        )
        try:
            self._state_store.save(state)
        except (OSError, ValueError) as e:
            self._persistence_degraded = True
            logger.error("State store write failed: %s", e)
            return f"State store write failed: {e}"
        return None

    @staticmethod
    def _outcome_data(outcome: AcceptOutcome) -> dict[str, Any]:
        return {
            "participant": outcome.participant,
            "amount": str(outcome.amount),
            "bookings": [
                {"tier": b.tier.value, "amount": str(b.amount)}
                for b in outcome.bookings
            ],
            "unbooked": str(outcome.unbooked),
            "current_tier": outcome.current_tier.value,
            "total_collected": str(outcome.total_collected),
            "sale_closed": outcome.sale_closed,
            "first_contribution": outcome.first_contribution,
            "record": outcome.record.to_dict(),
        }
