"""Identity collaborator — confirms who is calling before role checks run.

How a caller authenticates (signature, session, token) is outside the
ledger. The ledger only asks whether the presented identity is confirmed.
"""

from __future__ import annotations

from typing import Iterable, Protocol, Set, runtime_checkable


@runtime_checkable
class IdentityVerifier(Protocol):
    """Contract for identity backends consulted on every ledger call."""

    def confirm(self, caller: str) -> bool:
        """Return True if ``caller`` is an authenticated identity."""
        ...


class OpenIdentity:
    """Accepts any non-blank identity string."""

    def confirm(self, caller: str) -> bool:
        return isinstance(caller, str) and bool(caller.strip())


class IdentityRegistry:
    """Accepts only identities that have been registered."""

    def __init__(self, identities: Iterable[str] = ()) -> None:
        self._identities: Set[str] = set()
        for identity in identities:
            self.register(identity)

    def register(self, identity: str) -> None:
        if not identity or not identity.strip():
            raise ValueError("Identity must be a non-blank string")
        self._identities.add(identity)

    def revoke(self, identity: str) -> None:
        self._identities.discard(identity)

    def confirm(self, caller: str) -> bool:
        return caller in self._identities
