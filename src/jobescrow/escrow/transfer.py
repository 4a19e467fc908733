"""Value transfer abstraction — the ledger's only way to move funds.

The escrow state machine is independent of any specific settlement
backend. Settlement is a pluggable object behind the ValueTransfer
Protocol: deposits into custody, the two releases and the refund all go
through ``transfer``. A transfer either moves the full amount or moves
nothing and reports why.

BookTransfer is the in-process book-entry backend: per-account balances,
no overdraft, optional JSON persistence of the balances.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from threading import RLock
from typing import Dict, Mapping, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferResult:
    """Outcome of a single value transfer."""
    success: bool
    reason: str = ""

    @staticmethod
    def ok() -> TransferResult:
        return TransferResult(success=True)

    @staticmethod
    def failed(reason: str) -> TransferResult:
        return TransferResult(success=False, reason=reason)


@runtime_checkable
class ValueTransfer(Protocol):
    """Abstract contract for settlement backends.

    Implementations must be atomic: on failure no value has moved.
    Failures are reported through the result, not retried.
    """

    def transfer(
        self,
        source: str,
        destination: str,
        amount: Decimal,
    ) -> TransferResult:
        """Move ``amount`` from ``source`` to ``destination``."""
        ...


class BookTransfer:
    """Book-entry settlement over in-memory balances.

    Usage:
        book = BookTransfer({"alice": Decimal("100")})
        result = book.transfer("alice", "escrow:custody", Decimal("30"))
        book.balance_of("escrow:custody")  # Decimal("30")

    Balances never go negative. With a storage_path the balances are
    loaded on construction and rewritten after every committed change.
    """

    def __init__(
        self,
        balances: Optional[Mapping[str, Decimal]] = None,
        storage_path: Optional[Path] = None,
    ) -> None:
        self._lock = RLock()
        self._balances: Dict[str, Decimal] = {}
        self._storage_path = storage_path

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)
        for account, amount in (balances or {}).items():
            self.credit(account, amount)

    def balance_of(self, account: str) -> Decimal:
        with self._lock:
            return self._balances.get(account, Decimal("0"))

    def balances(self) -> Dict[str, Decimal]:
        with self._lock:
            return dict(self._balances)

    def credit(self, account: str, amount: Decimal) -> Decimal:
        """Add externally sourced funds to ``account``; returns the new balance."""
        if (
            not isinstance(amount, Decimal)
            or not amount.is_finite()
            or amount <= Decimal("0")
        ):
            raise ValueError(f"Credit amount must be a positive finite Decimal, got {amount!r}")
        with self._lock:
            new = self._balances.get(account, Decimal("0")) + amount
            self._balances[account] = new
            self._save()
        logger.info("credited %s to %s (balance %s)", amount, account, new)
        return new

    def transfer(
        self,
        source: str,
        destination: str,
        amount: Decimal,
    ) -> TransferResult:
        if not isinstance(amount, Decimal) or amount < Decimal("0"):
            return TransferResult.failed(f"invalid transfer amount: {amount!r}")
        if source == destination:
            return TransferResult.failed("source and destination are the same account")
        with self._lock:
            available = self._balances.get(source, Decimal("0"))
            if available < amount:
                logger.warning(
                    "transfer %s -> %s of %s rejected: balance %s",
                    source, destination, amount, available,
                )
                return TransferResult.failed(
                    f"insufficient balance in {source}: have {available}, need {amount}"
                )
            previous = dict(self._balances)
            self._balances[source] = available - amount
            self._balances[destination] = (
                self._balances.get(destination, Decimal("0")) + amount
            )
            try:
                self._save()
            except OSError as e:
                self._balances = previous
                return TransferResult.failed(f"could not persist balances: {e}")
        logger.debug("transferred %s from %s to %s", amount, source, destination)
        return TransferResult.ok()

    def _save(self) -> None:
        if not self._storage_path:
            return
        data = {k: str(v) for k, v in sorted(self._balances.items())}
        tmp = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(tmp, self._storage_path)

    def _load_from_file(self, path: Path) -> None:
        data = json.loads(path.read_text(encoding="utf-8"))
        for account, raw in data.items():
            amount = Decimal(raw)
            if amount < Decimal("0"):
                raise ValueError(f"Negative stored balance for {account}: {amount}")
            self._balances[account] = amount
