"""
Authorization decisions over one or more policy identifiers.

Each identifier contributes its own requirement. The decision succeeds only
when every requirement succeeds, while a single requirement is satisfied by
any one of its permissions:

    authorize(p, ["Rbac:Orders.Read,Orders.Write"])       # Read OR Write
    authorize(p, ["Rbac:Orders.Read", "Rbac:Billing.View"])  # Read AND View
"""
from collections.abc import Iterable
from typing import List, Optional
from pydantic import BaseModel, ConfigDict

from rbac.features.authorization.handlers import (
    AuthorizationContext,
    AuthorizationHandlerProtocol,
    PermissionsRequirementHandler,
)
from rbac.features.authorization.principal import Principal
from rbac.features.authorization.provider import PolicyProviderProtocol
from rbac.features.authorization.requirements import (
    AuthorizationPolicy,
    PermissionsRequirement,
)


class AuthorizationResult(BaseModel):
    succeeded: bool
    unsatisfied: tuple[PermissionsRequirement, ...] = ()
    
    model_config = ConfigDict(frozen=True)


class AuthorizationService:
    """
    Args:
        policy_provider: Resolves identifiers to policies
        handlers: Requirement evaluators, all of which run for every decision
    """

    def __init__(
        self,
        policy_provider: PolicyProviderProtocol,
        handlers: Optional[Iterable[AuthorizationHandlerProtocol]] = None,
    ):
        if policy_provider is None:
            raise TypeError("policy_provider is required")
        self.policy_provider = policy_provider
        self.handlers: List[AuthorizationHandlerProtocol] = (
            list(handlers) if handlers is not None else [PermissionsRequirementHandler()]
        )

    def combine_policies(self, policy_names: Iterable[str]) -> AuthorizationPolicy:
        combined = AuthorizationPolicy()
        for name in policy_names:
            policy = self.policy_provider.get_policy(name)
            if policy is None:
                raise LookupError(f"No authorization policy found for {name!r}")
            combined = combined.combine(policy)
        return combined

    async def authorize(self, principal: Principal, policy_names: Iterable[str]) -> AuthorizationResult:
        return await self.authorize_policy(principal, self.combine_policies(policy_names))

    async def authorize_policy(self, principal: Principal, policy: AuthorizationPolicy) -> AuthorizationResult:
        context = AuthorizationContext(principal, policy.requirements)
        for handler in self.handlers:
            await handler.handle(context)
        return AuthorizationResult(
            succeeded=context.has_succeeded,
            unsatisfied=tuple(context.pending_requirements),
        )
