"""
Persistence for Permission entities.

PermissionStoreProtocol is what PermissionManager depends on. PermissionStore
is the SQLAlchemy implementation; it also satisfies
QueryablePermissionStoreProtocol, so callers can filter or stream the whole
table without loading it into a list first.
"""
from collections.abc import AsyncIterator, Iterable
from typing import List, Optional, Protocol, runtime_checkable
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from rbac.core.cancellation import CancellationToken
from rbac.core.errors import StoreClosedError
from rbac.features.permissions.models import Permission, generate_concurrency_stamp
from rbac.features.permissions.schemas import OperationResult, concurrency_failure
from rbac.utils import get_logger, require


log = get_logger(__name__)


# ============================================================================
# Protocols
# ============================================================================

@runtime_checkable
class PermissionStoreProtocol(Protocol):
    """Storage operations PermissionManager relies on."""

    async def create(self, permission: Permission, cancellation: CancellationToken) -> OperationResult:
        ...

    async def update(self, permission: Permission, cancellation: CancellationToken) -> OperationResult:
        """Persist changes, failing with ConcurrencyFailure on a stale stamp."""
        ...

    async def delete(self, permission: Permission, cancellation: CancellationToken) -> OperationResult:
        """Remove, failing with ConcurrencyFailure on a stale stamp."""
        ...

    async def get_permission_id(self, permission: Permission, cancellation: CancellationToken) -> str:
        ...

    async def get_permission_name(self, permission: Permission, cancellation: CancellationToken) -> Optional[str]:
        ...

    async def set_permission_name(
        self, permission: Permission, name: Optional[str], cancellation: CancellationToken
    ) -> None:
        ...

    async def get_normalized_permission_name(
        self, permission: Permission, cancellation: CancellationToken
    ) -> Optional[str]:
        ...

    async def set_normalized_permission_name(
        self, permission: Permission, normalized_name: Optional[str], cancellation: CancellationToken
    ) -> None:
        ...

    async def find_by_id(self, permission_id: str, cancellation: CancellationToken) -> Optional[Permission]:
        ...

    async def find_by_name(self, normalized_name: str, cancellation: CancellationToken) -> Optional[Permission]:
        ...

    async def find_by_names(
        self, normalized_names: Iterable[str], cancellation: CancellationToken
    ) -> List[Permission]:
        ...

    async def get_all(self, cancellation: CancellationToken) -> List[Permission]:
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class QueryablePermissionStoreProtocol(PermissionStoreProtocol, Protocol):
    """A store that also exposes all permissions as a query and a stream."""

    @property
    def permissions(self) -> Select[tuple[Permission]]:
        ...

    def stream(self, cancellation: CancellationToken) -> AsyncIterator[Permission]:
        ...


# ============================================================================
# SQLAlchemy Store
# ============================================================================

class PermissionStore:
    """
    SQLAlchemy-backed permission store.

    Usage:
        async with AsyncSessionLocal() as session:
            async with PermissionStore(session) as store:
                permission = await store.find_by_id(permission_id, token)

    Args:
        session: Session every operation runs on
        auto_save_changes: Commit after each write; when False writes are only
            flushed and the caller owns the transaction
        owns_session: Close the session when the store is closed
    """

    def __init__(
        self,
        session: AsyncSession,
        auto_save_changes: bool = True,
        owns_session: bool = False,
    ):
        if session is None:
            raise TypeError("session is required")
        self.session = session
        self.auto_save_changes = auto_save_changes
        self.owns_session = owns_session
        self._closed = False

    async def __aenter__(self) -> "PermissionStore":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.owns_session:
            await self.session.close()

    def _ensure_usable(self, cancellation: CancellationToken) -> None:
        if cancellation is None:
            raise TypeError("cancellation is required")
        cancellation.raise_if_cancellation_requested()
        if self._closed:
            raise StoreClosedError(type(self).__name__)

    async def _save_changes(self) -> None:
        """
        Commit, or only flush when the caller owns the transaction.

        A failed flush has already discarded the database transaction, so the
        session is rolled back before the error propagates and stays usable.
        """
        try:
            if self.auto_save_changes:
                await self.session.commit()
            else:
                await self.session.flush()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

    async def _stored_stamp(self, permission_id: str) -> Optional[str]:
        result = await self.session.execute(
            select(Permission.concurrency_stamp).where(Permission.id == permission_id)
        )
        return result.scalar_one_or_none()

    async def _stamp_is_current(self, permission: Permission, action: str) -> bool:
        """
        Compare the stamp the permission was read with against the stored one.

        On a mismatch nothing is flushed; the stale instance is detached so its
        unsaved changes never reach the database, and every other write in the
        session is left alone.
        """
        if await self._stored_stamp(permission.id) == permission.concurrency_stamp:
            return True
        if permission in self.session:
            self.session.expunge(permission)
        log.warning(f"Concurrency failure {action} permission {permission.id}")
        return False

    # ------------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------------

    async def create(self, permission: Permission, cancellation: CancellationToken) -> OperationResult:
        self._ensure_usable(cancellation)
        require(permission, "permission")
        self.session.add(permission)
        await self._save_changes()
        log.debug(f"Created permission {permission.id} ({permission.normalized_name})")
        return OperationResult.success()

    async def update(self, permission: Permission, cancellation: CancellationToken) -> OperationResult:
        """
        Persist changes under a new concurrency stamp.

        A stamp that no longer matches the stored row returns ConcurrencyFailure.
        If another writer gets in between the check and the flush the ORM raises
        StaleDataError: with auto_save_changes it is reported the same way,
        otherwise it propagates because the caller's transaction is gone.
        """
        self._ensure_usable(cancellation)
        require(permission, "permission")
        permission_id = permission.id
        if not await self._stamp_is_current(permission, "updating"):
            return OperationResult.failed(concurrency_failure())
        # add() re-attaches a detached instance with the stamp it was read with
        self.session.add(permission)
        permission.concurrency_stamp = generate_concurrency_stamp()
        try:
            await self._save_changes()
        except StaleDataError:
            if not self.auto_save_changes:
                raise
            log.warning(f"Concurrency failure updating permission {permission_id}")
            return OperationResult.failed(concurrency_failure())
        log.debug(f"Updated permission {permission_id}")
        return OperationResult.success()

    async def delete(self, permission: Permission, cancellation: CancellationToken) -> OperationResult:
        """Remove the permission; stale stamps are handled as in update()."""
        self._ensure_usable(cancellation)
        require(permission, "permission")
        permission_id = permission.id
        if not await self._stamp_is_current(permission, "deleting"):
            return OperationResult.failed(concurrency_failure())
        await self.session.delete(permission)
        try:
            await self._save_changes()
        except StaleDataError:
            if not self.auto_save_changes:
                raise
            log.warning(f"Concurrency failure deleting permission {permission_id}")
            return OperationResult.failed(concurrency_failure())
        log.debug(f"Deleted permission {permission_id}")
        return OperationResult.success()

    # ------------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------------

    async def get_permission_id(self, permission: Permission, cancellation: CancellationToken) -> str:
        self._ensure_usable(cancellation)
        require(permission, "permission")
        return permission.id

    async def get_permission_name(self, permission: Permission, cancellation: CancellationToken) -> Optional[str]:
        self._ensure_usable(cancellation)
        require(permission, "permission")
        return permission.name

    async def set_permission_name(
        self, permission: Permission, name: Optional[str], cancellation: CancellationToken
    ) -> None:
        self._ensure_usable(cancellation)
        require(permission, "permission")
        permission.name = name

    async def get_normalized_permission_name(
        self, permission: Permission, cancellation: CancellationToken
    ) -> Optional[str]:
        self._ensure_usable(cancellation)
        require(permission, "permission")
        return permission.normalized_name

    async def set_normalized_permission_name(
        self, permission: Permission, normalized_name: Optional[str], cancellation: CancellationToken
    ) -> None:
        self._ensure_usable(cancellation)
        require(permission, "permission")
        permission.normalized_name = normalized_name

    # ------------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------------

    @property
    def permissions(self) -> Select[tuple[Permission]]:
        """All permissions as a statement callers can filter further."""
        return select(Permission)

    async def find_by_id(self, permission_id: str, cancellation: CancellationToken) -> Optional[Permission]:
        self._ensure_usable(cancellation)
        result = await self.session.execute(
            self.permissions.where(Permission.id == permission_id)
        )
        return result.scalar_one_or_none()

    async def find_by_name(self, normalized_name: str, cancellation: CancellationToken) -> Optional[Permission]:
        self._ensure_usable(cancellation)
        result = await self.session.execute(
            self.permissions.where(Permission.normalized_name == normalized_name)
        )
        return result.scalar_one_or_none()

    async def find_by_names(
        self, normalized_names: Iterable[str], cancellation: CancellationToken
    ) -> List[Permission]:
        self._ensure_usable(cancellation)
        require(normalized_names, "normalized_names")
        names = list(normalized_names)
        if not names:
            return []
        result = await self.session.execute(
            self.permissions.where(Permission.normalized_name.in_(names))
        )
        return list(result.scalars().all())

    async def get_all(self, cancellation: CancellationToken) -> List[Permission]:
        self._ensure_usable(cancellation)
        result = await self.session.execute(self.permissions)
        return list(result.scalars().all())

    async def stream(self, cancellation: CancellationToken) -> AsyncIterator[Permission]:
        """Yield every permission without materializing the full list."""
        self._ensure_usable(cancellation)
        result = await self.session.stream_scalars(self.permissions)
        async for permission in result:
            yield permission
