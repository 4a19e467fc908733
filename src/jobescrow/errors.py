"""Error kinds raised by the escrow ledger.

Every failure is synchronous and local to one call. A raised EscrowError
means the ledger state is exactly what it was before the call, with one
exception: a PersistenceFailedError whose transfer could not be reversed
leaves the move applied in memory and says so in its message.
"""

from __future__ import annotations

import enum
from typing import Optional


class ErrorKind(str, enum.Enum):
    INVALID_AMOUNT = "invalid_amount"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    ALREADY_RELEASED = "already_released"
    ALREADY_COMPLETED = "already_completed"
    NOT_COMPLETED = "not_completed"
    ALREADY_REFUNDED = "already_refunded"
    TRANSFER_FAILED = "transfer_failed"
    PERSISTENCE_FAILED = "persistence_failed"


class EscrowError(ValueError):
    """Base class for rejected ledger operations."""

    kind: ErrorKind

    def __init__(self, message: str, job_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.job_id = job_id


class InvalidAmountError(EscrowError):
    kind = ErrorKind.INVALID_AMOUNT


class JobNotFoundError(EscrowError):
    kind = ErrorKind.NOT_FOUND


class UnauthorizedError(EscrowError):
    kind = ErrorKind.UNAUTHORIZED


class AlreadyReleasedError(EscrowError):
    kind = ErrorKind.ALREADY_RELEASED


class AlreadyCompletedError(EscrowError):
    kind = ErrorKind.ALREADY_COMPLETED


class NotCompletedError(EscrowError):
    kind = ErrorKind.NOT_COMPLETED


class AlreadyRefundedError(EscrowError):
    kind = ErrorKind.ALREADY_REFUNDED


class TransferFailedError(EscrowError):
    kind = ErrorKind.TRANSFER_FAILED


class PersistenceFailedError(EscrowError):
    kind = ErrorKind.PERSISTENCE_FAILED
