"""Tests for job models — proves the payment split invariants hold."""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from jobescrow.models.job import Job


def _now() -> datetime:
    return datetime(2026, 2, 16, 12, 0, 0, tzinfo=timezone.utc)


class TestJobCreation:
    def test_final_payment_is_derived(self) -> None:
        job = Job.create(0, "client", "provider", Decimal("100"), Decimal("30"))
        assert job.final_payment == Decimal("70")
        assert job.total_payment == job.initial_payment + job.final_payment

    def test_all_flags_start_false(self) -> None:
        job = Job.create(0, "client", "provider", Decimal("100"), Decimal("30"))
        assert not job.initial_paid
        assert not job.completed
        assert not job.final_paid
        assert not job.refunded
        assert job.deposit_held

    def test_zero_initial_payment(self) -> None:
        job = Job.create(0, "client", "provider", Decimal("50"), Decimal("0"))
        assert job.final_payment == Decimal("50")

    def test_initial_equal_to_total(self) -> None:
        job = Job.create(0, "client", "provider", Decimal("50"), Decimal("50"))
        assert job.final_payment == Decimal("0")

    def test_rejects_initial_above_total(self) -> None:
        with pytest.raises(ValueError, match="between 0 and"):
            Job.create(0, "client", "provider", Decimal("10"), Decimal("11"))

    def test_rejects_negative_initial(self) -> None:
        with pytest.raises(ValueError, match="between 0 and"):
            Job.create(0, "client", "provider", Decimal("10"), Decimal("-1"))


class TestJobSnapshot:
    def test_snapshot_is_detached(self) -> None:
        job = Job.create(0, "client", "provider", Decimal("100"), Decimal("30"))
        copy = job.snapshot()
        copy.completed = True
        assert not job.completed

    def test_deposit_not_held_after_release(self) -> None:
        job = Job.create(0, "client", "provider", Decimal("100"), Decimal("30"))
        job.initial_paid = True
        assert not job.deposit_held


class TestJobSerialization:
    def test_dict_round_trip_preserves_fields(self) -> None:
        job = Job.create(
            7, "client", "provider", Decimal("100.50"), Decimal("0.50"), now=_now()
        )
        job.initial_paid = True
        restored = Job.from_dict(job.to_dict())
        assert restored == job
        assert restored.final_payment == Decimal("100.00")

    def test_amounts_serialized_as_strings(self) -> None:
        job = Job.create(0, "client", "provider", Decimal("100"), Decimal("30"))
        data = job.to_dict()
        assert data["total_payment"] == "100"
        assert data["final_payment"] == "70"

    def test_rejects_inconsistent_split(self) -> None:
        data = Job.create(0, "client", "provider", Decimal("100"), Decimal("30")).to_dict()
        data["final_payment"] = "80"
        with pytest.raises(ValueError, match="does not equal"):
            Job.from_dict(data)

    @pytest.mark.parametrize("initial,final", [("130", "-30"), ("-10", "110")])
    def test_rejects_initial_outside_total(self, initial: str, final: str) -> None:
        data = Job.create(0, "client", "provider", Decimal("100"), Decimal("30")).to_dict()
        data["initial_payment"] = initial
        data["final_payment"] = final
        with pytest.raises(ValueError, match="must lie between 0 and total"):
            Job.from_dict(data)

    def test_rejects_final_paid_without_completion(self) -> None:
        data = Job.create(0, "client", "provider", Decimal("100"), Decimal("30")).to_dict()
        data["final_paid"] = True
        with pytest.raises(ValueError, match="before completion"):
            Job.from_dict(data)
