"""
Permission management API routes.

Every write goes through PermissionManager, so validation, normalization and
the concurrency check apply exactly as they do for library callers.
"""
from typing import List, NoReturn, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from rbac.core.cancellation import CancellationToken
from rbac.core.database.engine import get_db
from rbac.features.authorization.dependencies import (
    HasPermissions,
    get_authorization_service,
    get_current_principal,
)
from rbac.features.authorization.principal import Principal
from rbac.features.authorization.service import AuthorizationService
from rbac.features.permissions.dependencies import (
    get_cancellation_token,
    get_permission_manager,
)
from rbac.features.permissions.manager import PermissionManager
from rbac.features.permissions.models import Permission
from rbac.features.permissions.schemas import (
    CONCURRENCY_FAILURE,
    DUPLICATE_PERMISSION_NAME,
    OperationFailureResponse,
    OperationResult,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionCreate,
    PermissionResponse,
    PermissionUpdate,
    concurrency_failure,
)
from rbac.utils import get_logger


log = get_logger(__name__)
router = APIRouter()

MANAGE_PERMISSIONS = "permissions.manage"
READ_PERMISSIONS = "permissions.read"

_CONFLICT_CODES = {DUPLICATE_PERMISSION_NAME, CONCURRENCY_FAILURE}
_FAILURE_RESPONSES = {
    400: {"model": OperationFailureResponse, "description": "Validation failed"},
    409: {"model": OperationFailureResponse, "description": "Duplicate name or stale concurrency stamp"},
}


def raise_for_failure(result: OperationResult) -> NoReturn:
    """Map a failed OperationResult to 409 for conflicts, 400 otherwise."""
    conflict = any(code in _CONFLICT_CODES for code in result.error_codes)
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT if conflict else status.HTTP_400_BAD_REQUEST,
        detail=OperationFailureResponse(errors=list(result.errors)).model_dump(),
    )


async def _get_or_404(manager: PermissionManager, permission_id: str, token: CancellationToken) -> Permission:
    permission = await manager.find_by_id(permission_id, token)
    if permission is None:
        raise HTTPException(status_code=404, detail="Permission not found")
    return permission


# ============================================================================
# Permission Routes
# ============================================================================

@router.post(
    "/",
    response_model=PermissionResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_FAILURE_RESPONSES,
)
async def create_permission(
    payload: PermissionCreate,
    manager: PermissionManager = Depends(get_permission_manager),
    token: CancellationToken = Depends(get_cancellation_token),
    principal: Principal = Depends(HasPermissions(MANAGE_PERMISSIONS)),
):
    """Create a new permission."""
    permission = Permission(payload.name)
    result = await manager.create(permission, token)
    if not result.succeeded:
        raise_for_failure(result)
    
    log.info(f"Permission {permission.id} ({permission.name}) created by {principal.subject}")
    return permission


@router.get("/", response_model=List[PermissionResponse])
async def list_permissions(
    skip: int = 0,
    limit: int = 100,
    name: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    manager: PermissionManager = Depends(get_permission_manager),
    token: CancellationToken = Depends(get_cancellation_token),
    _principal: Principal = Depends(HasPermissions(READ_PERMISSIONS, MANAGE_PERMISSIONS)),
):
    """List permissions, optionally filtered by name prefix (case-insensitive)."""
    prefix = manager.normalize_key(name) if name else None
    
    if not manager.supports_queryable_permissions:
        permissions = await manager.get_all(token)
        if prefix:
            permissions = [p for p in permissions if (p.normalized_name or "").startswith(prefix)]
        permissions.sort(key=lambda p: p.normalized_name or "")
        return permissions[skip:skip + limit]
    
    stmt = manager.permissions
    if prefix:
        stmt = stmt.where(Permission.normalized_name.startswith(prefix, autoescape=True))
    stmt = stmt.order_by(Permission.normalized_name).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return result.scalars().all()


@router.post("/check", response_model=PermissionCheckResponse)
async def check_permissions(
    request: PermissionCheckRequest,
    principal: Principal = Depends(get_current_principal),
    service: AuthorizationService = Depends(get_authorization_service),
):
    """Evaluate policy identifiers against the current principal; all must succeed."""
    try:
        result = await service.authorize(principal, request.policies)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    
    return PermissionCheckResponse(
        succeeded=result.succeeded,
        unsatisfied=[sorted(r.required_permissions) for r in result.unsatisfied],
    )


@router.get("/{permission_id}", response_model=PermissionResponse)
async def get_permission(
    permission_id: str,
    manager: PermissionManager = Depends(get_permission_manager),
    token: CancellationToken = Depends(get_cancellation_token),
    _principal: Principal = Depends(HasPermissions(READ_PERMISSIONS, MANAGE_PERMISSIONS)),
):
    """Get a specific permission by ID."""
    return await _get_or_404(manager, permission_id, token)


@router.put("/{permission_id}", response_model=PermissionResponse, responses=_FAILURE_RESPONSES)
async def update_permission(
    permission_id: str,
    payload: PermissionUpdate,
    manager: PermissionManager = Depends(get_permission_manager),
    token: CancellationToken = Depends(get_cancellation_token),
    principal: Principal = Depends(HasPermissions(MANAGE_PERMISSIONS)),
):
    """
    Rename a permission.
    
    The request must carry the concurrency_stamp the client last read; a
    different stamp means someone else changed the permission first.
    """
    permission = await _get_or_404(manager, permission_id, token)
    if payload.concurrency_stamp != permission.concurrency_stamp:
        raise_for_failure(OperationResult.failed(concurrency_failure()))
    
    await manager.set_permission_name(permission, payload.name, token)
    result = await manager.update(permission, token)
    if not result.succeeded:
        raise_for_failure(result)
    
    log.info(f"Permission {permission_id} renamed to {permission.name} by {principal.subject}")
    return permission


@router.delete(
    "/{permission_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={409: _FAILURE_RESPONSES[409]},
)
async def delete_permission(
    permission_id: str,
    concurrency_stamp: str,
    manager: PermissionManager = Depends(get_permission_manager),
    token: CancellationToken = Depends(get_cancellation_token),
    principal: Principal = Depends(HasPermissions(MANAGE_PERMISSIONS)),
):
    """Delete a permission; concurrency_stamp must match the stored one."""
    permission = await _get_or_404(manager, permission_id, token)
    if concurrency_stamp != permission.concurrency_stamp:
        raise_for_failure(OperationResult.failed(concurrency_failure()))
    
    result = await manager.delete(permission, token)
    if not result.succeeded:
        raise_for_failure(result)
    
    log.info(f"Permission {permission_id} deleted by {principal.subject}")
    return None
