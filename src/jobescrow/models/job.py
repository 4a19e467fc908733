"""Job models — the escrow agreement record and its notification kinds.

All monetary values use Decimal for exact arithmetic. No floats in finance.

Invariants enforced by these models:
- 0 <= initial_payment <= total_payment
- final_payment == total_payment - initial_payment for the job's lifetime
- final_paid implies completed
- client, provider and the payment split never change after creation
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional


class PartyRole(str, enum.Enum):
    """Role a caller holds with respect to a single job."""
    CLIENT = "client"
    PROVIDER = "provider"
    NONE = "none"


class RefundPolicy(str, enum.Enum):
    """How strictly request_refund guards the escrowed deposit.

    HELD_ONLY: refund only while the deposit is still in custody.
    PERMISSIVE: refund whenever the job is not completed.
    """
    HELD_ONLY = "held_only"
    PERMISSIVE = "permissive"


class EscrowEventKind(str, enum.Enum):
    """Notifications emitted after a committed ledger operation."""
    JOB_CREATED = "job_created"
    INITIAL_PAYMENT_RELEASED = "initial_payment_released"
    JOB_COMPLETED = "job_completed"
    FINAL_PAYMENT_RELEASED = "final_payment_released"
    REFUND_ISSUED = "refund_issued"


@dataclass(frozen=True)
class EscrowEvent:
    """A notification delivered to ledger subscribers."""
    kind: EscrowEventKind
    job_id: int
    actor_id: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Job:
    """One escrow agreement between a client and a provider.

    Mutable — only the flags change during the lifecycle. The party
    identities and the payment split are fixed at creation.
    """
    job_id: int
    client: str
    provider: str
    total_payment: Decimal
    initial_payment: Decimal
    final_payment: Decimal
    initial_paid: bool = False
    completed: bool = False
    final_paid: bool = False
    refunded: bool = False
    created_utc: Optional[datetime] = None

    @staticmethod
    def create(
        job_id: int,
        client: str,
        provider: str,
        total_payment: Decimal,
        initial_payment: Decimal,
        now: Optional[datetime] = None,
    ) -> Job:
        """Build a new job with the final tranche derived from the split."""
        if initial_payment < Decimal("0") or initial_payment > total_payment:
            raise ValueError(
                f"Initial payment ({initial_payment}) must lie between 0 and "
                f"total payment ({total_payment})"
            )
        return Job(
            job_id=job_id,
            client=client,
            provider=provider,
            total_payment=total_payment,
            initial_payment=initial_payment,
            final_payment=total_payment - initial_payment,
            created_utc=now,
        )

    @property
    def deposit_held(self) -> bool:
        """True while the initial deposit sits in escrow custody."""
        return not self.initial_paid and not self.refunded

    def snapshot(self) -> Job:
        """Detached copy safe to hand to callers."""
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "client": self.client,
            "provider": self.provider,
            "total_payment": str(self.total_payment),
            "initial_payment": str(self.initial_payment),
            "final_payment": str(self.final_payment),
            "initial_paid": self.initial_paid,
            "completed": self.completed,
            "final_paid": self.final_paid,
            "refunded": self.refunded,
            "created_utc": (
                self.created_utc.isoformat() if self.created_utc else None
            ),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> Job:
        total = Decimal(data["total_payment"])
        initial = Decimal(data["initial_payment"])
        final = Decimal(data["final_payment"])
        if not Decimal("0") <= initial <= total:
            raise ValueError(
                f"Job {data['job_id']}: initial payment ({initial}) must lie "
                f"between 0 and total payment ({total})"
            )
        if final != total - initial:
            raise ValueError(
                f"Job {data['job_id']}: final payment ({final}) does not equal "
                f"total ({total}) minus initial ({initial})"
            )
        if data["final_paid"] and not data["completed"]:
            raise ValueError(
                f"Job {data['job_id']}: final payment recorded before completion"
            )
        created = data.get("created_utc")
        return Job(
            job_id=int(data["job_id"]),
            client=data["client"],
            provider=data["provider"],
            total_payment=total,
            initial_payment=initial,
            final_payment=final,
            initial_paid=bool(data["initial_paid"]),
            completed=bool(data["completed"]),
            final_paid=bool(data["final_paid"]),
            refunded=bool(data.get("refunded", False)),
            created_utc=datetime.fromisoformat(created) if created else None,
        )
