"""
Policy identifier parsing.

PermissionPolicyProvider recognises identifiers of the form
"Rbac:<name>,<name>,..." and turns each into a one-requirement policy. Any
other identifier is handed to a fallback provider unchanged.
"""
from typing import Dict, Optional, Protocol, runtime_checkable

from rbac.features.authorization.constants import (
    PERMISSION_DELIMITER,
    PERMISSIONS_POLICY_PREFIX,
    POLICY_SEPARATOR,
)
from rbac.features.authorization.requirements import (
    AuthorizationPolicy,
    PermissionsRequirement,
)
from rbac.utils import get_logger


log = get_logger(__name__)

_POLICY_MARKER = (PERMISSIONS_POLICY_PREFIX + POLICY_SEPARATOR).casefold()


def has_permissions(*permissions: str) -> str:
    """
    Build the policy identifier for a declaration requiring any of ``permissions``.
    
    has_permissions("Orders.Read", "Orders.Write") == "Rbac:Orders.Read,Orders.Write"
    """
    if not permissions:
        raise ValueError("At least one permission name is required")
    for name in permissions:
        if not name or not name.strip():
            raise ValueError("Permission names must not be blank")
        if PERMISSION_DELIMITER in name:
            raise ValueError(f"Permission name {name!r} contains {PERMISSION_DELIMITER!r}")
    return f"{PERMISSIONS_POLICY_PREFIX}{POLICY_SEPARATOR}{PERMISSION_DELIMITER.join(permissions)}"


def is_permission_policy(policy_name: str) -> bool:
    return policy_name[:len(_POLICY_MARKER)].casefold() == _POLICY_MARKER


def parse_required_permissions(policy_name: str) -> Optional[frozenset[str]]:
    """
    Names listed in a permission policy identifier, or None when the
    identifier does not carry the permission prefix.
    
    Segments are trimmed and empty ones dropped, so "Rbac:a,,b" and
    "Rbac:a, b" both require {"a", "b"}.
    """
    if not is_permission_policy(policy_name):
        return None
    remainder = policy_name[len(_POLICY_MARKER):]
    return frozenset(
        segment.strip()
        for segment in remainder.split(PERMISSION_DELIMITER)
        if segment.strip()
    )


@runtime_checkable
class PolicyProviderProtocol(Protocol):
    def get_policy(self, policy_name: str) -> Optional[AuthorizationPolicy]:
        ...

    def get_default_policy(self) -> Optional[AuthorizationPolicy]:
        ...

    def get_fallback_policy(self) -> Optional[AuthorizationPolicy]:
        ...


class NamedPolicyProvider:
    """
    Policies registered by name at startup.
    
    Usage:
        provider = NamedPolicyProvider()
        provider.add_policy("Admins", AuthorizationPolicy.of(PermissionsRequirement.of(["Admin"])))
    """

    def __init__(
        self,
        default_policy: Optional[AuthorizationPolicy] = None,
        fallback_policy: Optional[AuthorizationPolicy] = None,
    ):
        self._policies: Dict[str, AuthorizationPolicy] = {}
        self.default_policy = default_policy
        self.fallback_policy = fallback_policy

    def add_policy(self, name: str, policy: AuthorizationPolicy) -> None:
        self._policies[name] = policy

    def get_policy(self, policy_name: str) -> Optional[AuthorizationPolicy]:
        return self._policies.get(policy_name)

    def get_default_policy(self) -> Optional[AuthorizationPolicy]:
        return self.default_policy

    def get_fallback_policy(self) -> Optional[AuthorizationPolicy]:
        return self.fallback_policy


class PermissionPolicyProvider:
    """
    Resolves permission policy identifiers, delegating everything else.
    
    Parsed policies are memoized per identifier. Parsing is deterministic, so
    two callers racing on the same identifier store equal values and no lock
    is taken.
    """

    def __init__(self, fallback: Optional[PolicyProviderProtocol] = None):
        self.fallback = fallback if fallback is not None else NamedPolicyProvider()
        self._policies: Dict[str, AuthorizationPolicy] = {}

    def get_policy(self, policy_name: str) -> Optional[AuthorizationPolicy]:
        if policy_name is None:
            raise TypeError("policy_name is required")
        
        policy = self._policies.get(policy_name)
        if policy is not None:
            return policy
        
        required = parse_required_permissions(policy_name)
        if required is None:
            log.debug(f"Policy {policy_name!r} is not a permission policy, using fallback")
            return self.fallback.get_policy(policy_name)
        
        policy = AuthorizationPolicy.of(PermissionsRequirement.of(required))
        self._policies[policy_name] = policy
        log.debug(f"Parsed permission policy {policy_name!r}: {sorted(required)}")
        return policy

    def get_default_policy(self) -> Optional[AuthorizationPolicy]:
        return self.fallback.get_default_policy()

    def get_fallback_policy(self) -> Optional[AuthorizationPolicy]:
        return self.fallback.get_fallback_policy()

    @property
    def cached_policy_names(self) -> list[str]:
        return list(self._policies)
