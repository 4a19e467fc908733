"""Ledger configuration.

Loaded from config/escrow_params.json:

    {
      "custody_account": "escrow:custody",
      "refund_policy": "held_only",
      "first_job_id": 0
    }

Missing keys fall back to the defaults below.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

from jobescrow.models.job import RefundPolicy

DEFAULT_CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"
CONFIG_FILENAME = "escrow_params.json"


@dataclass(frozen=True)
class LedgerConfig:
    """Ledger-wide parameters."""

    custody_account: str = "escrow:custody"
    refund_policy: RefundPolicy = RefundPolicy.HELD_ONLY
    first_job_id: int = 0

    def __post_init__(self) -> None:
        if not self.custody_account or not self.custody_account.strip():
            raise ValueError("custody_account must be a non-blank identity")
        if self.first_job_id < 0:
            raise ValueError(f"first_job_id must be non-negative, got {self.first_job_id}")

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> LedgerConfig:
        defaults = cls()
        return cls(
            custody_account=params.get("custody_account", defaults.custody_account),
            refund_policy=RefundPolicy(
                params.get("refund_policy", defaults.refund_policy.value)
            ),
            first_job_id=int(params.get("first_job_id", defaults.first_job_id)),
        )

    @classmethod
    def from_config_dir(cls, config_dir: Path = DEFAULT_CONFIG_DIR) -> LedgerConfig:
        """Load from ``config_dir/escrow_params.json``; defaults if absent."""
        config_path = config_dir / CONFIG_FILENAME
        if not config_path.exists():
            return cls()
        return cls.from_params(json.loads(config_path.read_text(encoding="utf-8")))
