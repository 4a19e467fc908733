"""Escrow subsystem — the job ledger and its collaborators.

The ledger never moves value itself; it asks a ValueTransfer backend and
only records a payment once the backend confirms it.
"""

from jobescrow.escrow.access import require_role, role_of
from jobescrow.escrow.identity import IdentityRegistry, IdentityVerifier, OpenIdentity
from jobescrow.escrow.ledger import EscrowLedger
from jobescrow.escrow.transfer import BookTransfer, TransferResult, ValueTransfer

__all__ = [
    "BookTransfer",
    "EscrowLedger",
    "IdentityRegistry",
    "IdentityVerifier",
    "OpenIdentity",
    "TransferResult",
    "ValueTransfer",
    "require_role",
    "role_of",
]
