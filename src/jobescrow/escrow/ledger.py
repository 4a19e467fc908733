"""Escrow ledger — two-tranche job payments between a client and a provider.

The client opens a job by depositing the initial payment into escrow
custody. From there:

    release_initial_payment (client)   custody → provider, initial tranche
    mark_job_complete       (provider) completion flag, no value moves
    release_final_payment   (client)   custody → provider, final tranche
    request_refund          (client)   custody → client, initial tranche

Flags:
    initial_paid  false → true (release), true/false → false (refund)
    completed     false → true (terminal; forecloses refund, gates final)
    final_paid    false → true (terminal)

Every value-moving operation is transfer-then-flip: the flag changes only
after the ValueTransfer backend confirms the move. A failed transfer
raises TransferFailedError and leaves the job untouched.

A flip becomes visible only after the state store has accepted the new
snapshot. If the snapshot cannot be written, the transfer is reversed and
PersistenceFailedError is raised, so a restarted ledger never pays the
same tranche twice.

Each job carries two locks:
    order  (reentrant) held for the whole operation, delivery included,
           so notifications for one job arrive in commit order
    state  held across precondition check, transfer and mutation only,
           so subscribers may read the job back while being notified
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from threading import Lock, RLock
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from jobescrow.config import LedgerConfig
from jobescrow.errors import (
    AlreadyCompletedError,
    AlreadyRefundedError,
    AlreadyReleasedError,
    InvalidAmountError,
    JobNotFoundError,
    NotCompletedError,
    PersistenceFailedError,
    TransferFailedError,
    UnauthorizedError,
)
from jobescrow.escrow.access import require_role
from jobescrow.escrow.identity import IdentityVerifier, OpenIdentity
from jobescrow.escrow.transfer import ValueTransfer
from jobescrow.models.job import (
    EscrowEvent,
    EscrowEventKind,
    Job,
    PartyRole,
    RefundPolicy,
)
from jobescrow.persistence.state_store import StateStore

logger = logging.getLogger(__name__)

Subscriber = Callable[[EscrowEvent], Any]
AmountLike = Union[Decimal, int]
# (source, destination, amount) of the transfer that undoes a committed move
Reversal = Tuple[str, str, Decimal]


def _as_amount(value: AmountLike, name: str) -> Decimal:
    """Coerce to a finite, non-negative Decimal or raise InvalidAmountError."""
    if isinstance(value, bool) or not isinstance(value, (Decimal, int)):
        raise InvalidAmountError(
            f"{name} must be a Decimal or int, got {type(value).__name__}"
        )
    amount = Decimal(value)
    if not amount.is_finite():
        raise InvalidAmountError(f"{name} must be finite, got {amount}")
    if amount < Decimal("0"):
        raise InvalidAmountError(f"{name} must be non-negative, got {amount}")
    return amount


class _JobGuard:
    """Per-job locks. Always take ``order`` before ``state``."""

    def __init__(self) -> None:
        self.order = RLock()
        self.state = Lock()


class EscrowLedger:
    """Keyed collection of jobs with guarded, atomic mutators.

    Usage:
        ledger = EscrowLedger(BookTransfer({"client": Decimal("100")}))
        job = ledger.create_job(
            "client", "provider", Decimal("100"), Decimal("30"), Decimal("30")
        )
        ledger.release_initial_payment("client", job.job_id)
        ledger.mark_job_complete("provider", job.job_id)
        ledger.release_final_payment("client", job.job_id)

    With a state_store the ledger restores its jobs and counter on
    construction and writes a snapshot before every commit becomes visible.
    """

    def __init__(
        self,
        transfer: ValueTransfer,
        identity: Optional[IdentityVerifier] = None,
        config: Optional[LedgerConfig] = None,
        state_store: Optional[StateStore] = None,
    ) -> None:
        self._transfer = transfer
        self._identity = identity if identity is not None else OpenIdentity()
        self._config = config if config is not None else LedgerConfig()
        self._state_store = state_store
        self._lock = Lock()
        self._jobs: Dict[int, Job] = {}
        self._guards: Dict[int, _JobGuard] = {}
        self._next_job_id = self._config.first_job_id
        self._subscribers: List[Subscriber] = []

        if state_store is not None and state_store.exists():
            self._next_job_id, self._jobs = state_store.load()
            self._guards = {job_id: _JobGuard() for job_id in self._jobs}
            logger.info(
                "restored %d jobs from %s (next id %d)",
                len(self._jobs), state_store.storage_path, self._next_job_id,
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def config(self) -> LedgerConfig:
        return self._config

    @property
    def custody_account(self) -> str:
        return self._config.custody_account

    @property
    def job_count(self) -> int:
        with self._lock:
            return len(self._jobs)

    @property
    def next_job_id(self) -> int:
        with self._lock:
            return self._next_job_id

    def get_job(self, job_id: int) -> Job:
        """Return a detached copy of the job."""
        guard = self._guard_for(job_id)
        with guard.state:
            return self._jobs[job_id].snapshot()

    def jobs(
        self,
        client: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> List[Job]:
        """Return copies of all jobs, optionally filtered by party, by id."""
        with self._lock:
            selected = [
                job.snapshot() for job in self._jobs.values()
                if (client is None or job.client == client)
                and (provider is None or job.provider == provider)
            ]
        return sorted(selected, key=lambda j: j.job_id)

    def subscribe(self, callback: Subscriber) -> None:
        """Register a consumer for committed-operation notifications."""
        self._subscribers.append(callback)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create_job(
        self,
        caller: str,
        provider: str,
        total_payment: AmountLike,
        initial_payment: AmountLike,
        deposited_value: AmountLike,
        now: Optional[datetime] = None,
    ) -> Job:
        """Open a job funded by the caller's deposit of the initial payment.

        The deposit moves into custody before an id is allocated, so a
        failed deposit consumes no id and stores nothing.

        Raises:
            InvalidAmountError: deposit differs from the initial payment,
                or the initial payment exceeds the total.
            UnauthorizedError: the caller's identity is not confirmed.
            TransferFailedError: the deposit did not move.
            PersistenceFailedError: the snapshot could not be written; the
                deposit has been returned.
        """
        total = _as_amount(total_payment, "total_payment")
        initial = _as_amount(initial_payment, "initial_payment")
        deposit = _as_amount(deposited_value, "deposited_value")
        if deposit != initial:
            raise InvalidAmountError(
                f"Deposited value ({deposit}) must equal initial payment ({initial})"
            )
        if initial > total:
            raise InvalidAmountError(
                f"Initial payment ({initial}) exceeds total payment ({total})"
            )
        self._confirm(caller)
        if now is None:
            now = datetime.now(timezone.utc)

        self._move(caller, self.custody_account, deposit, None, "deposit")

        with self._lock:
            job_id = self._next_job_id
            job = Job.create(job_id, caller, provider, total, initial, now=now)
            try:
                self._save_locked(job, next_job_id=job_id + 1)
            except OSError as e:
                self._recover_locked(job, (self.custody_account, caller, deposit), e)
            self._next_job_id = job_id + 1
            self._jobs[job_id] = job
            guard = _JobGuard()
            guard.order.acquire()
            self._guards[job_id] = guard
        try:
            logger.info(
                "job %d created: client=%s provider=%s total=%s initial=%s",
                job_id, caller, provider, total, initial,
            )
            self._notify(EscrowEvent(
                kind=EscrowEventKind.JOB_CREATED,
                job_id=job_id,
                actor_id=caller,
                payload={
                    "client": caller,
                    "provider": provider,
                    "total_payment": str(total),
                },
            ))
            return job.snapshot()
        finally:
            guard.order.release()

    def release_initial_payment(self, caller: str, job_id: int) -> Job:
        """Pay the initial tranche from custody to the provider."""
        guard = self._guard_for(job_id)
        with guard.order:
            with guard.state:
                job = self._jobs[job_id]
                self._authorize(caller, job, PartyRole.CLIENT)
                if job.initial_paid:
                    raise AlreadyReleasedError(
                        f"Initial payment for job {job_id} already released",
                        job_id=job_id,
                    )
                if job.refunded and self._config.refund_policy == RefundPolicy.HELD_ONLY:
                    raise AlreadyRefundedError(
                        f"Initial payment for job {job_id} was refunded to the client",
                        job_id=job_id,
                    )

                self._move(
                    self.custody_account, job.provider, job.initial_payment,
                    job_id, "initial release",
                )
                updated = replace(job, initial_paid=True)
                self._commit(
                    updated,
                    (job.provider, self.custody_account, job.initial_payment),
                )
            logger.info("job %d: initial payment %s released", job_id, job.initial_payment)
            self._notify(EscrowEvent(
                kind=EscrowEventKind.INITIAL_PAYMENT_RELEASED,
                job_id=job_id,
                actor_id=caller,
                payload={"amount": str(job.initial_payment)},
            ))
            return updated.snapshot()

    def mark_job_complete(self, caller: str, job_id: int) -> Job:
        """Provider declares the work done. No value moves."""
        guard = self._guard_for(job_id)
        with guard.order:
            with guard.state:
                job = self._jobs[job_id]
                self._authorize(caller, job, PartyRole.PROVIDER)
                if job.completed:
                    raise AlreadyCompletedError(
                        f"Job {job_id} is already complete", job_id=job_id,
                    )

                updated = replace(job, completed=True)
                self._commit(updated, None)
            logger.info("job %d marked complete", job_id)
            self._notify(EscrowEvent(
                kind=EscrowEventKind.JOB_COMPLETED,
                job_id=job_id,
                actor_id=caller,
            ))
            return updated.snapshot()

    def release_final_payment(self, caller: str, job_id: int) -> Job:
        """Pay the final tranche from custody to the provider once complete.

        Completion is checked before the caller's role, so an incomplete
        job reports NotCompleted to every caller.
        """
        guard = self._guard_for(job_id)
        with guard.order:
            with guard.state:
                job = self._jobs[job_id]
                if not job.completed:
                    raise NotCompletedError(
                        f"Job {job_id} must be marked complete before final release",
                        job_id=job_id,
                    )
                self._authorize(caller, job, PartyRole.CLIENT)
                if job.final_paid:
                    raise AlreadyReleasedError(
                        f"Final payment for job {job_id} already released",
                        job_id=job_id,
                    )

                self._move(
                    self.custody_account, job.provider, job.final_payment,
                    job_id, "final release",
                )
                updated = replace(job, final_paid=True)
                self._commit(
                    updated,
                    (job.provider, self.custody_account, job.final_payment),
                )
            logger.info("job %d: final payment %s released", job_id, job.final_payment)
            self._notify(EscrowEvent(
                kind=EscrowEventKind.FINAL_PAYMENT_RELEASED,
                job_id=job_id,
                actor_id=caller,
                payload={"amount": str(job.final_payment)},
            ))
            return updated.snapshot()

    def request_refund(self, caller: str, job_id: int) -> Job:
        """Return the initial tranche from custody to the client.

        Forbidden once the job is complete. Under the held_only policy the
        deposit must still be in custody: neither released nor refunded.
        """
        guard = self._guard_for(job_id)
        with guard.order:
            with guard.state:
                job = self._jobs[job_id]
                self._authorize(caller, job, PartyRole.CLIENT)
                if job.completed:
                    raise AlreadyCompletedError(
                        f"Job {job_id} is complete; refund is no longer possible",
                        job_id=job_id,
                    )
                if self._config.refund_policy == RefundPolicy.HELD_ONLY:
                    if job.initial_paid:
                        raise AlreadyReleasedError(
                            f"Initial payment for job {job_id} was already released "
                            f"to the provider",
                            job_id=job_id,
                        )
                    if job.refunded:
                        raise AlreadyRefundedError(
                            f"Job {job_id} was already refunded", job_id=job_id,
                        )

                self._move(
                    self.custody_account, job.client, job.initial_payment,
                    job_id, "refund",
                )
                updated = replace(job, initial_paid=False, refunded=True)
                self._commit(
                    updated,
                    (job.client, self.custody_account, job.initial_payment),
                )
            logger.info("job %d: refunded %s to client", job_id, job.initial_payment)
            self._notify(EscrowEvent(
                kind=EscrowEventKind.REFUND_ISSUED,
                job_id=job_id,
                actor_id=caller,
                payload={"amount": str(job.initial_payment)},
            ))
            return updated.snapshot()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _guard_for(self, job_id: int) -> _JobGuard:
        """Internal lookup with clear error on missing ID."""
        with self._lock:
            guard = self._guards.get(job_id)
        if guard is None:
            raise JobNotFoundError(f"Unknown job ID: {job_id}", job_id=job_id)
        return guard

    def _confirm(self, caller: str, job_id: Optional[int] = None) -> None:
        if not self._identity.confirm(caller):
            logger.warning("identity not confirmed for caller %r", caller)
            raise UnauthorizedError(
                f"Caller identity {caller!r} could not be confirmed",
                job_id=job_id,
            )

    def _authorize(self, caller: str, job: Job, required: PartyRole) -> None:
        self._confirm(caller, job.job_id)
        require_role(caller, job, required)

    def _move(
        self,
        source: str,
        destination: str,
        amount: Decimal,
        job_id: Optional[int],
        purpose: str,
    ) -> None:
        result = self._transfer.transfer(source, destination, amount)
        if not result.success:
            logger.warning(
                "%s of %s from %s to %s failed: %s",
                purpose, amount, source, destination, result.reason,
            )
            raise TransferFailedError(
                f"{purpose.capitalize()} of {amount} from {source} to "
                f"{destination} failed: {result.reason}",
                job_id=job_id,
            )

    def _commit(self, updated: Job, reversal: Optional[Reversal]) -> None:
        """Write the snapshot carrying ``updated``, then make it visible."""
        with self._lock:
            try:
                self._save_locked(updated)
            except OSError as e:
                self._recover_locked(updated, reversal, e)
            self._jobs[updated.job_id] = updated

    def _save_locked(self, updated: Job, next_job_id: Optional[int] = None) -> None:
        if self._state_store is None:
            return
        jobs = dict(self._jobs)
        jobs[updated.job_id] = updated
        self._state_store.save(
            self._next_job_id if next_job_id is None else next_job_id,
            [jobs[k] for k in sorted(jobs)],
        )

    def _recover_locked(
        self,
        updated: Job,
        reversal: Optional[Reversal],
        error: OSError,
    ) -> None:
        """Undo a move whose snapshot could not be written, then raise.

        If the reversal itself fails the funds stay moved, so the in-memory
        job records the move and the error says the snapshot is stale.
        """
        logger.error(
            "could not persist ledger snapshot for job %d: %s", updated.job_id, error,
        )
        if reversal is not None:
            result = self._transfer.transfer(*reversal)
            if not result.success:
                if updated.job_id in self._jobs:
                    self._jobs[updated.job_id] = updated
                logger.critical(
                    "job %d: reversal of %s from %s to %s failed: %s",
                    updated.job_id, reversal[2], reversal[0], reversal[1],
                    result.reason,
                )
                raise PersistenceFailedError(
                    f"Snapshot for job {updated.job_id} could not be written "
                    f"({error}) and the transfer could not be reversed "
                    f"({result.reason}); stored state is stale",
                    job_id=updated.job_id,
                ) from error
        raise PersistenceFailedError(
            f"Snapshot for job {updated.job_id} could not be written ({error}); "
            f"operation rolled back",
            job_id=updated.job_id,
        ) from error

    def _notify(self, event: EscrowEvent) -> None:
        """Deliver a committed event. Called with the job's order lock held."""
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "subscriber %r failed on %s for job %d",
                    callback, event.kind.value, event.job_id,
                )
