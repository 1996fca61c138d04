"""
Tests for policy identifier building and parsing.
"""
from concurrent.futures import ThreadPoolExecutor

import pytest

from rbac.features.authorization.provider import (
    NamedPolicyProvider,
    PermissionPolicyProvider,
    PolicyProviderProtocol,
    has_permissions,
    is_permission_policy,
    parse_required_permissions,
)
from rbac.features.authorization.requirements import (
    AuthorizationPolicy,
    PermissionsRequirement,
)


class TestHasPermissions:

    def test_single(self):
        assert has_permissions("Orders.Read") == "Rbac:Orders.Read"

    def test_several_keep_order(self):
        assert has_permissions("Orders.Read", "Orders.Write") == "Rbac:Orders.Read,Orders.Write"

    @pytest.mark.parametrize("names", [(), ("",), ("  ",), ("Orders,Read",)])
    def test_rejects_bad_names(self, names):
        with pytest.raises(ValueError):
            has_permissions(*names)


class TestParsing:

    @pytest.mark.parametrize("policy_name", ["Rbac:a", "rbac:a", "RBAC:a", "Rbac:"])
    def test_prefix_is_case_insensitive(self, policy_name):
        assert is_permission_policy(policy_name)

    @pytest.mark.parametrize("policy_name", ["Rbac", "Rbacx:a", "Admins", "", ":Rbac"])
    def test_not_permission_policies(self, policy_name):
        assert not is_permission_policy(policy_name)
        assert parse_required_permissions(policy_name) is None

    def test_names_split_on_comma(self):
        assert parse_required_permissions("Rbac:Orders.Read,Orders.Write") == {"Orders.Read", "Orders.Write"}

    def test_empty_and_blank_segments_dropped(self):
        assert parse_required_permissions("Rbac:a,,b, ,") == {"a", "b"}
        assert parse_required_permissions("Rbac: a , b") == {"a", "b"}

    def test_nothing_after_prefix(self):
        assert parse_required_permissions("Rbac:") == frozenset()

    def test_name_case_preserved(self):
        assert parse_required_permissions("rbac:Orders.Read") == {"Orders.Read"}


class TestPermissionPolicyProvider:

    def test_satisfies_protocol(self):
        assert isinstance(PermissionPolicyProvider(), PolicyProviderProtocol)
        assert isinstance(NamedPolicyProvider(), PolicyProviderProtocol)

    def test_builds_single_requirement(self):
        policy = PermissionPolicyProvider().get_policy("Rbac:Orders.Read,Orders.Write")

        assert len(policy.requirements) == 1
        assert policy.requirements[0].required_permissions == {"Orders.Read", "Orders.Write"}

    def test_memoized(self):
        provider = PermissionPolicyProvider()

        first = provider.get_policy("Rbac:Orders.Read")
        second = provider.get_policy("Rbac:Orders.Read")

        assert first is second
        assert provider.cached_policy_names == ["Rbac:Orders.Read"]

    def test_identifiers_cached_separately(self):
        provider = PermissionPolicyProvider()

        provider.get_policy("Rbac:a")
        provider.get_policy("rbac:a")

        assert sorted(provider.cached_policy_names) == ["Rbac:a", "rbac:a"]

    def test_unknown_delegates_to_fallback(self):
        admins = AuthorizationPolicy.of(PermissionsRequirement.of(["Admin"]))
        fallback = NamedPolicyProvider()
        fallback.add_policy("Admins", admins)
        provider = PermissionPolicyProvider(fallback)

        assert provider.get_policy("Admins") is admins
        assert provider.get_policy("Rbac") is None
        assert provider.cached_policy_names == []

    def test_default_and_fallback_policies_come_from_fallback(self):
        default = AuthorizationPolicy.of(PermissionsRequirement.of(["Signed.In"]))
        provider = PermissionPolicyProvider(NamedPolicyProvider(default_policy=default))

        assert provider.get_default_policy() is default
        assert provider.get_fallback_policy() is None

    def test_none_rejected(self):
        with pytest.raises(TypeError):
            PermissionPolicyProvider().get_policy(None)

    def test_concurrent_lookups_agree(self):
        provider = PermissionPolicyProvider()
        names = [f"Rbac:perm.{i % 10},other.{i % 10}" for i in range(200)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            policies = list(pool.map(provider.get_policy, names))

        for name, policy in zip(names, policies):
            assert policy == provider.get_policy(name)
            assert policy.requirements[0].required_permissions == parse_required_permissions(name)
        assert len(provider.cached_policy_names) == 10
