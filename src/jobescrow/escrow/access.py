"""Access control — derive a caller's role from the job's stored parties."""

from __future__ import annotations

from jobescrow.errors import UnauthorizedError
from jobescrow.models.job import Job, PartyRole


def role_of(caller: str, job: Job) -> PartyRole:
    """Return the role ``caller`` holds on ``job``.

    A job whose client and provider are the same identity resolves to
    CLIENT; the provider-only operation checks the provider field directly.
    """
    if caller == job.client:
        return PartyRole.CLIENT
    if caller == job.provider:
        return PartyRole.PROVIDER
    return PartyRole.NONE


def require_role(caller: str, job: Job, required: PartyRole) -> None:
    """Raise UnauthorizedError unless ``caller`` holds ``required`` on ``job``."""
    if required == PartyRole.CLIENT:
        allowed = caller == job.client
    elif required == PartyRole.PROVIDER:
        allowed = caller == job.provider
    else:
        allowed = False
    if not allowed:
        raise UnauthorizedError(
            f"Caller {caller!r} is not the {required.value} of job {job.job_id} "
            f"(role: {role_of(caller, job).value})",
            job_id=job.job_id,
        )
