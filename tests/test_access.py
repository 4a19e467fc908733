"""Tests for access control and identity confirmation."""

import pytest
from decimal import Decimal

from jobescrow.errors import ErrorKind, UnauthorizedError
from jobescrow.escrow.access import require_role, role_of
from jobescrow.escrow.identity import IdentityRegistry, IdentityVerifier, OpenIdentity
from jobescrow.models.job import Job, PartyRole


def _job() -> Job:
    return Job.create(3, "client", "provider", Decimal("100"), Decimal("30"))


class TestRoleOf:
    def test_client(self) -> None:
        assert role_of("client", _job()) == PartyRole.CLIENT

    def test_provider(self) -> None:
        assert role_of("provider", _job()) == PartyRole.PROVIDER

    def test_stranger(self) -> None:
        assert role_of("mallory", _job()) == PartyRole.NONE


class TestRequireRole:
    def test_client_allowed_client_role(self) -> None:
        require_role("client", _job(), PartyRole.CLIENT)

    def test_provider_allowed_provider_role(self) -> None:
        require_role("provider", _job(), PartyRole.PROVIDER)

    def test_provider_denied_client_role(self) -> None:
        with pytest.raises(UnauthorizedError, match="not the client") as exc:
            require_role("provider", _job(), PartyRole.CLIENT)
        assert exc.value.kind == ErrorKind.UNAUTHORIZED
        assert exc.value.job_id == 3

    def test_client_denied_provider_role(self) -> None:
        with pytest.raises(UnauthorizedError, match="not the provider"):
            require_role("client", _job(), PartyRole.PROVIDER)

    def test_none_role_never_granted(self) -> None:
        with pytest.raises(UnauthorizedError):
            require_role("client", _job(), PartyRole.NONE)

    def test_self_dealing_job_grants_both_roles(self) -> None:
        job = Job.create(0, "solo", "solo", Decimal("10"), Decimal("5"))
        require_role("solo", job, PartyRole.CLIENT)
        require_role("solo", job, PartyRole.PROVIDER)


class TestIdentity:
    def test_open_identity_accepts_non_blank(self) -> None:
        identity = OpenIdentity()
        assert identity.confirm("alice")
        assert not identity.confirm("")
        assert not identity.confirm("   ")

    def test_registry_accepts_registered_only(self) -> None:
        registry = IdentityRegistry(["alice"])
        assert registry.confirm("alice")
        assert not registry.confirm("bob")

    def test_registry_revoke(self) -> None:
        registry = IdentityRegistry(["alice"])
        registry.revoke("alice")
        assert not registry.confirm("alice")

    def test_registry_rejects_blank(self) -> None:
        with pytest.raises(ValueError, match="non-blank"):
            IdentityRegistry([" "])

    def test_backends_satisfy_protocol(self) -> None:
        assert isinstance(OpenIdentity(), IdentityVerifier)
        assert isinstance(IdentityRegistry(), IdentityVerifier)
