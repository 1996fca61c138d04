"""
FastAPI dependencies for the permission feature.
"""
from collections.abc import AsyncGenerator
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from rbac.core import config
from rbac.core.cancellation import CancellationToken
from rbac.core.database.engine import get_db
from rbac.features.permissions.manager import PermissionManager
from rbac.features.permissions.registry import default_registry


async def get_cancellation_token(request: Request) -> CancellationToken:
    """
    Token for the current request, already cancelled if the client is gone.
    """
    token = CancellationToken()
    if await request.is_disconnected():
        token.cancel()
    return token


async def get_permission_manager(
    db: AsyncSession = Depends(get_db),
) -> AsyncGenerator[PermissionManager, None]:
    """
    Request-scoped PermissionManager built from the configured registry key.
    
    Usage in FastAPI routes:
        @router.get("/permissions/{permission_id}")
        async def get_permission(
            permission_id: str,
            manager: PermissionManager = Depends(get_permission_manager),
            token: CancellationToken = Depends(get_cancellation_token),
        ):
            return await manager.find_by_id(permission_id, token)
    """
    manager = default_registry.create_manager(config.PERMISSION_STORE, db)
    try:
        yield manager
    finally:
        await manager.close()
