"""
test_access.py - Unit tests for AccessControl
"""

import logging

import pytest

from lockvault import (
    AccessControl, Role, Unauthorized,
    DEFAULT_ADMIN_ROLE, PAUSER_ROLE, EMERGENCY_ROLE,
)


@pytest.fixture
def acl():
    return AccessControl(admin="root")


class TestRoles:

    def test_role_names(self):
        assert [r.value for r in Role] == ["DEFAULT_ADMIN_ROLE", "PAUSER_ROLE", "EMERGENCY_ROLE"]

    def test_admin_only_holds_admin_role(self, acl):
        assert acl.has_role(DEFAULT_ADMIN_ROLE, "root")
        assert not acl.has_role(PAUSER_ROLE, "root")
        assert acl.members(DEFAULT_ADMIN_ROLE) == {"root"}

    def test_grant_and_revoke(self, acl):
        assert acl.grant_role(PAUSER_ROLE, "bob", caller="root") is True
        assert acl.grant_role(PAUSER_ROLE, "bob", caller="root") is False
        assert acl.has_role(PAUSER_ROLE, "bob")

        assert acl.revoke_role(PAUSER_ROLE, "bob", caller="root") is True
        assert acl.revoke_role(PAUSER_ROLE, "bob", caller="root") is False
        assert not acl.has_role(PAUSER_ROLE, "bob")

    def test_only_admin_grants(self, acl):
        acl.grant_role(EMERGENCY_ROLE, "bob", caller="root")
        with pytest.raises(Unauthorized) as exc:
            acl.grant_role(PAUSER_ROLE, "carol", caller="bob")
        assert exc.value.account == "bob"
        assert exc.value.role == "DEFAULT_ADMIN_ROLE"

    def test_admin_can_hand_over(self, acl):
        acl.grant_role(DEFAULT_ADMIN_ROLE, "new", caller="root")
        acl.revoke_role(DEFAULT_ADMIN_ROLE, "root", caller="new")
        with pytest.raises(Unauthorized):
            acl.grant_role(PAUSER_ROLE, "root", caller="root")

    def test_members_is_a_copy(self, acl):
        acl.members(DEFAULT_ADMIN_ROLE).add("intruder")
        assert not acl.has_role(DEFAULT_ADMIN_ROLE, "intruder")


class TestRequireRole:

    def test_denial_logged(self, acl, caplog):
        with caplog.at_level(logging.WARNING, logger="lockvault.access"):
            with pytest.raises(Unauthorized):
                acl.require_role(PAUSER_ROLE, "mallory")
        assert "mallory lacks PAUSER_ROLE" in caplog.text

    def test_passes_for_holder(self, acl):
        acl.require_role(DEFAULT_ADMIN_ROLE, "root")
