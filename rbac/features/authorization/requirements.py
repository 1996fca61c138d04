"""
Evaluable forms of a parsed policy identifier.
"""
from collections.abc import Iterable
from pydantic import BaseModel, ConfigDict


class PermissionsRequirement(BaseModel):
    """
    The principal must hold at least one of ``required_permissions``.
    
    Immutable once built.
    """
    required_permissions: frozenset[str]
    
    model_config = ConfigDict(frozen=True)
    
    @classmethod
    def of(cls, permissions: Iterable[str]) -> "PermissionsRequirement":
        return cls(required_permissions=frozenset(permissions))
    
    def __str__(self) -> str:
        return f"Requires one of: {', '.join(sorted(self.required_permissions))}"


class AuthorizationPolicy(BaseModel):
    """A set of requirements that must all succeed."""
    requirements: tuple[PermissionsRequirement, ...] = ()
    
    model_config = ConfigDict(frozen=True)
    
    @classmethod
    def of(cls, *requirements: PermissionsRequirement) -> "AuthorizationPolicy":
        return cls(requirements=tuple(requirements))
    
    def combine(self, other: "AuthorizationPolicy") -> "AuthorizationPolicy":
        return AuthorizationPolicy(requirements=self.requirements + other.requirements)
