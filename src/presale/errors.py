"""Presale error kinds.

Every rejection raised by the ledger, the timelock, or the boundary gates
is a PresaleError carrying an ErrorKind. The service layer converts these
into failed ServiceResults; any other exception is a bug and propagates.

All validation errors are raised before state is touched. A raised error
therefore always means "nothing changed".
"""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    """Classification of presale rejections."""
    INVALID_AMOUNT = "InvalidAmount"
    INDIVIDUAL_CAP_EXCEEDED = "IndividualCapExceeded"
    SALE_CLOSED = "SaleClosed"
    SALE_PAUSED = "SalePaused"
    UNAUTHORIZED = "Unauthorized"
    INVALID_TIER_LIMIT_UPDATE = "InvalidTierLimitUpdate"
    INVALID_PARAMETER_VALUE = "InvalidParameterValue"
    NO_MUTATION_PENDING = "NoMutationPending"
    TIMELOCK_NOT_ELAPSED = "TimelockNotElapsed"
    PAGINATION_OUT_OF_RANGE = "PaginationOutOfRange"
    TRANSFER_FAILED = "TransferFailed"
    REENTRANT_CALL = "ReentrantCall"
    DIRECT_TRANSFER_REJECTED = "DirectTransferRejected"


class PresaleError(Exception):
    """Base class for all presale rejections."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidAmount(PresaleError):
    kind = ErrorKind.INVALID_AMOUNT


class IndividualCapExceeded(PresaleError):
    kind = ErrorKind.INDIVIDUAL_CAP_EXCEEDED


class SaleClosed(PresaleError):
    kind = ErrorKind.SALE_CLOSED


class SalePaused(PresaleError):
    kind = ErrorKind.SALE_PAUSED


class Unauthorized(PresaleError):
    kind = ErrorKind.UNAUTHORIZED


class InvalidTierLimitUpdate(PresaleError):
    kind = ErrorKind.INVALID_TIER_LIMIT_UPDATE


class InvalidParameterValue(PresaleError):
    kind = ErrorKind.INVALID_PARAMETER_VALUE


class NoMutationPending(PresaleError):
    kind = ErrorKind.NO_MUTATION_PENDING


class TimelockNotElapsed(PresaleError):
    kind = ErrorKind.TIMELOCK_NOT_ELAPSED


class PaginationOutOfRange(PresaleError):
    kind = ErrorKind.PAGINATION_OUT_OF_RANGE


class TransferFailed(PresaleError):
    """Raised when the custodian did not complete a transfer.

    The deposit that triggered it is rolled back in full.
    """
    kind = ErrorKind.TRANSFER_FAILED


class ReentrantCall(PresaleError):
    kind = ErrorKind.REENTRANT_CALL


class DirectTransferRejected(PresaleError):
    kind = ErrorKind.DIRECT_TRANSFER_REJECTED
