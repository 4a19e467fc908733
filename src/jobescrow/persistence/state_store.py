"""State store — durable snapshot of the ledger's job mapping and counter.

Layout (JSON):
    {"next_job_id": 3, "jobs": {"0": {...}, "1": {...}, "2": {...}}}

Amounts are stored as strings so Decimal values round-trip exactly.
Writes go to a temporary file that replaces the target, so a crash never
leaves a half-written snapshot behind.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Dict, Iterable, Tuple

from jobescrow.models.job import Job


class StateStore:
    """File-backed snapshot of ledger state."""

    def __init__(self, storage_path: Path) -> None:
        self._storage_path = storage_path

    @property
    def storage_path(self) -> Path:
        return self._storage_path

    def exists(self) -> bool:
        return self._storage_path.exists()

    def save(self, next_job_id: int, jobs: Iterable[Job]) -> None:
        """Write the full snapshot atomically."""
        payload = {
            "next_job_id": next_job_id,
            "jobs": {str(job.job_id): job.to_dict() for job in jobs},
        }
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        tmp.write_text(
            json.dumps(payload, indent=2, sort_keys=True),
            encoding="utf-8",
        )
        os.replace(tmp, self._storage_path)

    def load(self) -> Tuple[int, Dict[int, Job]]:
        """Load the snapshot, validating every job record.

        Raises ValueError if a job id is at or beyond the stored counter,
        which would let the ledger reissue an id.
        """
        data = json.loads(self._storage_path.read_text(encoding="utf-8"))
        next_job_id = int(data["next_job_id"])
        jobs: Dict[int, Job] = {}
        for key, record in data.get("jobs", {}).items():
            job = Job.from_dict(record)
            if str(job.job_id) != key:
                raise ValueError(f"Job record keyed {key} carries id {job.job_id}")
            if job.job_id >= next_job_id:
                raise ValueError(
                    f"Job id {job.job_id} is not below stored counter {next_job_id}"
                )
            jobs[job.job_id] = job
        return next_job_id, jobs
