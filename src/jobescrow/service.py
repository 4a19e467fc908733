"""Escrow service — unified facade over the ledger and its collaborators.

This is the primary interface for programmatic access. It wires:
- Ledger configuration (custody account, refund policy)
- Identity confirmation
- Value transfer backend
- Audit log (every committed operation is recorded)
- State store (ledger snapshot after every committed operation)

All operations produce typed results. A rejected operation returns
``success=False`` with the error message and its ErrorKind; ledger state
is unchanged in that case.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

from jobescrow.config import LedgerConfig
from jobescrow.errors import ErrorKind, EscrowError
from jobescrow.escrow.identity import IdentityVerifier
from jobescrow.escrow.ledger import EscrowLedger
from jobescrow.escrow.transfer import ValueTransfer
from jobescrow.models.job import Job
from jobescrow.persistence.event_log import EventLog
from jobescrow.persistence.state_store import StateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[ErrorKind] = None


class EscrowService:
    """Escrow facade.

    Usage:
        service = EscrowService(BookTransfer(), event_log=EventLog())
        service.fund_account("client", "100")
        result = service.create_job("client", "provider", "100", "30", "30")
        job_id = result.data["job_id"]
        service.release_initial_payment("client", job_id)
        service.mark_job_complete("provider", job_id)
        service.release_final_payment("client", job_id)
    """

    def __init__(
        self,
        transfer: ValueTransfer,
        config: Optional[LedgerConfig] = None,
        identity: Optional[IdentityVerifier] = None,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
    ) -> None:
        self._transfer = transfer
        self._event_log = event_log
        self._ledger = EscrowLedger(
            transfer,
            identity=identity,
            config=config,
            state_store=state_store,
        )
        if event_log is not None:
            self._ledger.subscribe(event_log.record)

    @property
    def ledger(self) -> EscrowLedger:
        return self._ledger

    @property
    def event_log(self) -> Optional[EventLog]:
        return self._event_log

    # ------------------------------------------------------------------
    # Job lifecycle
    # ------------------------------------------------------------------

    def create_job(
        self,
        client: str,
        provider: str,
        total_payment: Any,
        initial_payment: Any,
        deposited_value: Any,
    ) -> ServiceResult:
        """Open a job funded by the client's deposit of the initial payment."""
        try:
            total = _parse_amount(total_payment)
            initial = _parse_amount(initial_payment)
            deposit = _parse_amount(deposited_value)
        except (InvalidOperation, TypeError, ValueError) as e:
            return ServiceResult(
                success=False,
                errors=[f"Invalid amount: {e}"],
                error_kind=ErrorKind.INVALID_AMOUNT,
            )
        return self._run(
            lambda: self._ledger.create_job(client, provider, total, initial, deposit)
        )

    def release_initial_payment(self, caller: str, job_id: int) -> ServiceResult:
        return self._run(lambda: self._ledger.release_initial_payment(caller, job_id))

    def mark_job_complete(self, caller: str, job_id: int) -> ServiceResult:
        return self._run(lambda: self._ledger.mark_job_complete(caller, job_id))

    def release_final_payment(self, caller: str, job_id: int) -> ServiceResult:
        return self._run(lambda: self._ledger.release_final_payment(caller, job_id))

    def request_refund(self, caller: str, job_id: int) -> ServiceResult:
        return self._run(lambda: self._ledger.request_refund(caller, job_id))

    # ------------------------------------------------------------------
    # Queries and accounts
    # ------------------------------------------------------------------

    def get_job(self, job_id: int) -> Optional[Job]:
        """Look up a job."""
        try:
            return self._ledger.get_job(job_id)
        except EscrowError:
            return None

    def list_jobs(
        self,
        client: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> list[Job]:
        return self._ledger.jobs(client=client, provider=provider)

    def fund_account(self, account: str, amount: Any) -> ServiceResult:
        """Credit an account on a backend that supports direct funding."""
        credit = getattr(self._transfer, "credit", None)
        if credit is None:
            return ServiceResult(
                success=False,
                errors=["Transfer backend does not support direct funding"],
            )
        try:
            balance = credit(account, _parse_amount(amount))
        except (InvalidOperation, TypeError, ValueError) as e:
            return ServiceResult(
                success=False,
                errors=[f"Invalid amount: {e}"],
                error_kind=ErrorKind.INVALID_AMOUNT,
            )
        return ServiceResult(
            success=True, data={"account": account, "balance": str(balance)},
        )

    def balance_of(self, account: str) -> Optional[Decimal]:
        balance_of = getattr(self._transfer, "balance_of", None)
        if balance_of is None:
            return None
        return balance_of(account)

    def status(self) -> dict[str, Any]:
        """Summary of ledger state."""
        jobs = self._ledger.jobs()
        return {
            "jobs": len(jobs),
            "next_job_id": self._ledger.next_job_id,
            "completed": sum(1 for j in jobs if j.completed),
            "final_paid": sum(1 for j in jobs if j.final_paid),
            "refunded": sum(1 for j in jobs if j.refunded),
            "custody_account": self._ledger.custody_account,
            "custody_balance": _str_or_none(
                self.balance_of(self._ledger.custody_account)
            ),
            "refund_policy": self._ledger.config.refund_policy.value,
            "events": self._event_log.count if self._event_log else None,
        }

    def _run(self, operation: Callable[[], Job]) -> ServiceResult:
        try:
            job = operation()
        except EscrowError as e:
            logger.debug("operation rejected (%s): %s", e.kind.value, e)
            return ServiceResult(success=False, errors=[str(e)], error_kind=e.kind)
        return ServiceResult(
            success=True, data={"job_id": job.job_id, "job": job.to_dict()},
        )


def _parse_amount(value: Any) -> Decimal:
    """Accept Decimal, int or a decimal string. Floats are rejected."""
    if isinstance(value, float):
        raise TypeError("floats are not accepted for monetary amounts")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _str_or_none(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)
