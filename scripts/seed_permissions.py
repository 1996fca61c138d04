"""
Seed script to populate the default permission catalogue.

Permissions are created through PermissionManager, so names are validated and
normalized exactly as they are for API callers. Names that already exist are
skipped.

Usage:
    python -m scripts.seed_permissions
"""
import asyncio
from typing import List, Tuple
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rbac.core import config
from rbac.core.cancellation import CancellationToken
from rbac.core.database.engine import AsyncSessionLocal, init_db
from rbac.features.permissions.models import Permission
from rbac.features.permissions.registry import default_registry
from rbac.features.permissions.schemas import DUPLICATE_PERMISSION_NAME
from rbac.utils import get_logger


log = get_logger(__name__)


DEFAULT_PERMISSIONS = [
    # Permission administration
    "permissions.read",
    "permissions.manage",
    
    # Orders
    "Orders.Read",
    "Orders.Write",
    "Orders.Delete",
    
    # Billing
    "Billing.View",
    "Billing.Process",
    
    # Reports
    "Reports.Read",
    "Reports.Export",
]


async def seed_permissions(
    names: List[str],
    token: CancellationToken,
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
) -> Tuple[List[str], List[str]]:
    """
    Create each permission that does not exist yet.
    
    Returns:
        (created names, skipped names)
    """
    created: List[str] = []
    skipped: List[str] = []
    
    async with session_factory() as session:
        async with default_registry.create_manager(config.PERMISSION_STORE, session) as manager:
            for name in names:
                result = await manager.create(Permission(name), token)
                if result.succeeded:
                    created.append(name)
                elif DUPLICATE_PERMISSION_NAME in result.error_codes:
                    skipped.append(name)
                else:
                    log.error(f"Could not seed permission {name!r}: {result}")
    
    return created, skipped


async def main():
    log.info("Initializing database...")
    await init_db()
    
    created, skipped = await seed_permissions(DEFAULT_PERMISSIONS, CancellationToken())
    log.info(f"Created {len(created)} permissions, skipped {len(skipped)} existing")
    for name in created:
        log.info(f"  + {name}")


if __name__ == "__main__":
    asyncio.run(main())
