"""
FastAPI dependencies for permission-protected routes.

Usage:
    @router.get("/orders", dependencies=[Depends(HasPermissions("Orders.Read", "Orders.Write"))])
    async def list_orders(): ...

    # Two declarations: the caller needs Orders.Read AND Billing.View
    @router.get(
        "/orders/{order_id}/invoice",
        dependencies=[
            Depends(HasPermissions("Orders.Read")),
            Depends(HasPermissions("Billing.View")),
        ],
    )
    async def get_invoice(order_id: str): ...
"""
from typing import Annotated, Any, Dict
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from rbac.core import config
from rbac.features.authorization.principal import Principal
from rbac.features.authorization.provider import PermissionPolicyProvider, has_permissions
from rbac.features.authorization.service import AuthorizationService
from rbac.utils import get_logger


log = get_logger(__name__)

security = HTTPBearer(auto_error=False)

# Process-wide: the provider memoizes parsed identifiers across requests
policy_provider = PermissionPolicyProvider()
authorization_service = AuthorizationService(policy_provider)


def verify_jwt_token(token: str) -> Dict[str, Any]:
    """
    Verify a bearer token and return its payload.
    
    Raises:
        HTTPException: 401 if the token is invalid or expired
    """
    try:
        return jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            audience=config.JWT_AUDIENCE,
            options={"verify_aud": config.JWT_AUDIENCE is not None},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Principal:
    """Principal for the bearer token on the request."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Principal.from_token_payload(verify_jwt_token(credentials.credentials))


def get_authorization_service() -> AuthorizationService:
    return authorization_service


async def _authorize_or_403(
    service: AuthorizationService,
    principal: Principal,
    policy_names: list[str],
) -> None:
    result = await service.authorize(principal, policy_names)
    if not result.succeeded:
        log.info(f"Principal {principal.subject} denied for policies {policy_names}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Permission denied: " + "; ".join(str(r) for r in result.unsatisfied),
        )


class HasPermissions:
    """
    Route dependency requiring any one of ``permissions``.
    
    Each instance is one declaration; attach several to require all of them.
    Returns the authorized principal.
    """

    def __init__(self, *permissions: str):
        self.permissions = permissions
        self.policy_name = has_permissions(*permissions)

    async def __call__(
        self,
        principal: Annotated[Principal, Depends(get_current_principal)],
        service: Annotated[AuthorizationService, Depends(get_authorization_service)],
    ) -> Principal:
        await _authorize_or_403(service, principal, [self.policy_name])
        return principal

    def __repr__(self) -> str:
        return f"HasPermissions({self.policy_name!r})"


def require_policies(*policy_names: str):
    """
    Route dependency requiring every listed policy identifier.
    
    Usage:
        principal: Principal = Depends(require_policies("Rbac:Orders.Read", "Rbac:Billing.View"))
    """
    if not policy_names:
        raise ValueError("At least one policy identifier is required")

    async def policy_dependency(
        principal: Annotated[Principal, Depends(get_current_principal)],
        service: Annotated[AuthorizationService, Depends(get_authorization_service)],
    ) -> Principal:
        await _authorize_or_403(service, principal, list(policy_names))
        return principal

    return policy_dependency


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
