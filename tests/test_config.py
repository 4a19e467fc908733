"""Tests for ledger configuration loading."""

import json
import pytest
from pathlib import Path

from jobescrow.config import DEFAULT_CONFIG_DIR, LedgerConfig
from jobescrow.models.job import RefundPolicy


class TestLedgerConfig:
    def test_defaults(self) -> None:
        config = LedgerConfig()
        assert config.custody_account == "escrow:custody"
        assert config.refund_policy == RefundPolicy.HELD_ONLY
        assert config.first_job_id == 0

    def test_shipped_config_loads(self) -> None:
        config = LedgerConfig.from_config_dir(DEFAULT_CONFIG_DIR)
        assert config.refund_policy == RefundPolicy.HELD_ONLY

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        assert LedgerConfig.from_config_dir(tmp_path) == LedgerConfig()

    def test_partial_params(self, tmp_path: Path) -> None:
        (tmp_path / "escrow_params.json").write_text(
            json.dumps({"refund_policy": "permissive"})
        )
        config = LedgerConfig.from_config_dir(tmp_path)
        assert config.refund_policy == RefundPolicy.PERMISSIVE
        assert config.custody_account == "escrow:custody"

    def test_unknown_policy_rejected(self) -> None:
        with pytest.raises(ValueError):
            LedgerConfig.from_params({"refund_policy": "sometimes"})

    def test_blank_custody_rejected(self) -> None:
        with pytest.raises(ValueError, match="custody_account"):
            LedgerConfig(custody_account=" ")

    def test_negative_first_id_rejected(self) -> None:
        with pytest.raises(ValueError, match="first_job_id"):
            LedgerConfig(first_job_id=-1)
