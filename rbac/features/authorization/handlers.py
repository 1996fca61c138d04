"""
Requirement evaluation.

Handlers only ever mark requirements as succeeded. A requirement no handler
succeeded stays pending, and a pending requirement denies access.
"""
from collections.abc import Iterable
from typing import List, Protocol, Set, runtime_checkable

from rbac.features.authorization.principal import Principal
from rbac.features.authorization.requirements import PermissionsRequirement
from rbac.features.permissions.manager import normalize_key


class AuthorizationContext:
    """Requirements being evaluated for one principal, and which have succeeded."""

    def __init__(self, principal: Principal, requirements: Iterable[PermissionsRequirement]):
        self.principal = principal
        self.requirements = tuple(requirements)
        self._succeeded: Set[int] = set()

    def succeed(self, requirement: PermissionsRequirement) -> None:
        self._succeeded.add(id(requirement))

    @property
    def pending_requirements(self) -> List[PermissionsRequirement]:
        return [r for r in self.requirements if id(r) not in self._succeeded]

    @property
    def has_succeeded(self) -> bool:
        # Nothing required means nothing granted
        return bool(self.requirements) and not self.pending_requirements


@runtime_checkable
class AuthorizationHandlerProtocol(Protocol):
    async def handle(self, context: AuthorizationContext) -> None:
        ...


class PermissionsRequirementHandler:
    """
    Succeeds a PermissionsRequirement when the principal holds at least one of
    its permissions. Names compare case-insensitively.
    """

    async def handle(self, context: AuthorizationContext) -> None:
        held = {
            normalize_key(claim_value)
            for claim_value in context.principal.permission_names
        }
        for requirement in context.pending_requirements:
            if not isinstance(requirement, PermissionsRequirement):
                continue
            if any(normalize_key(name) in held for name in requirement.required_permissions):
                context.succeed(requirement)
