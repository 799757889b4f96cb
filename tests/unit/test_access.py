"""Unit tests for the access policy."""

import pytest

from iquota_service.services.access import AccessPolicy, Caller
from iquota_service.utils.errors import UnauthorizedError


@pytest.fixture
def policy():
    return AccessPolicy(["root", "hpcadmin"])


class TestUserAccess:
    """Test user quota visibility."""

    def test_own_quota(self, policy):
        assert policy.can_view(Caller("alice"), "alice", "USER")

    def test_implicit_target_is_self(self, policy):
        assert policy.user_to_view(Caller("alice")) == "alice"

    def test_other_user_denied(self, policy):
        with pytest.raises(UnauthorizedError):
            policy.user_to_view(Caller("alice"), "bob")

    def test_admin_by_uid(self, policy):
        assert policy.user_to_view(Caller("root"), "bob") == "bob"

    def test_admin_by_group(self, policy):
        assert policy.user_to_view(Caller("carol", ["hpcadmin"]), "bob") == "bob"

    def test_admin_match_is_exact(self, policy):
        assert not policy.is_admin(Caller("roots", ["hpcadmins"]))


class TestGroupAccess:
    """Test group quota visibility."""

    def test_implicit_expands_to_caller_groups(self, policy):
        assert policy.groups_to_view(Caller("alice", ["staff", "dev"])) == ["staff", "dev"]

    def test_implicit_with_no_groups(self, policy):
        assert policy.groups_to_view(Caller("alice")) == []

    def test_member_may_name_own_group(self, policy):
        assert policy.groups_to_view(Caller("alice", ["staff"]), "staff") == ["staff"]

    def test_non_member_denied(self, policy):
        with pytest.raises(UnauthorizedError):
            policy.groups_to_view(Caller("alice", ["staff"]), "finance")

    def test_admin_may_name_any_group(self, policy):
        assert policy.groups_to_view(Caller("root"), "finance") == ["finance"]


class TestAdminListing:
    """Test the admin gate."""

    def test_non_admin_denied(self, policy):
        with pytest.raises(UnauthorizedError):
            policy.require_admin(Caller("alice", ["staff"]))

    def test_admin_allowed(self, policy):
        policy.require_admin(Caller("hpcadmin"))

    def test_empty_admin_set_denies_everyone(self):
        with pytest.raises(UnauthorizedError):
            AccessPolicy().require_admin(Caller("root"))


def test_caller_groups_are_immutable():
    caller = Caller("alice", ["staff"])
    assert caller.groups == ("staff",)
