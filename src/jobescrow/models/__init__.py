"""Data models for the job escrow ledger."""

from jobescrow.models.job import (
    EscrowEvent,
    EscrowEventKind,
    Job,
    PartyRole,
    RefundPolicy,
)

__all__ = [
    "EscrowEvent",
    "EscrowEventKind",
    "Job",
    "PartyRole",
    "RefundPolicy",
]
