"""
PermissionManager: the entry point for creating, changing and looking up
permissions.

Every write goes validate -> normalize -> persist, and every read by name goes
through normalize_key, so the store is always queried with the same
normalization it indexes on.
"""
import logging
import unicodedata
from collections.abc import AsyncIterator, Iterable
from typing import List, Optional

from sqlalchemy import Select

from rbac.core.cancellation import CancellationToken
from rbac.core.errors import ManagerClosedError, UnsupportedStoreCapabilityError
from rbac.features.permissions.models import Permission
from rbac.features.permissions.schemas import OperationError, OperationResult
from rbac.features.permissions.store import (
    PermissionStoreProtocol,
    QueryablePermissionStoreProtocol,
)
from rbac.features.permissions.validators import PermissionValidatorProtocol
from rbac.utils import get_logger, require


log = get_logger(__name__)


def normalize_key(key: Optional[str]) -> Optional[str]:
    """
    Culture-invariant case fold used for every permission name lookup.

    normalize_key("Orders.Read") == normalize_key("ORDERS.READ") == "orders.read"
    """
    if key is None:
        return None
    # NFKC_Casefold: compatibility forms fold like their plain equivalents and
    # the folded text is recomposed, so the result is a fixed point
    return unicodedata.normalize("NFKC", unicodedata.normalize("NFKC", key).casefold())


class PermissionManager:
    """
    Orchestrates validation, normalization and persistence of permissions.

    Usage:
        manager = PermissionManager(PermissionStore(session), [PermissionValidator()])
        result = await manager.create(Permission("Orders.Read"), token)
        if not result.succeeded:
            ...

    Args:
        store: Persistence for permissions
        validators: Rules run, all of them, before create and update
        logger: Sink for validation diagnostics
    """

    def __init__(
        self,
        store: PermissionStoreProtocol,
        validators: Optional[Iterable[PermissionValidatorProtocol]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if store is None:
            raise TypeError("store is required")
        self.store = store
        self.validators: List[PermissionValidatorProtocol] = list(validators or [])
        self.logger = logger or log
        self._closed = False

    # ------------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------------

    async def __aenter__(self) -> "PermissionManager":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if not self._closed:
            await self.store.close()
        self._closed = True

    def _ensure_open(self) -> None:
        if self._closed:
            raise ManagerClosedError(type(self).__name__)

    # ------------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------------

    @property
    def supports_queryable_permissions(self) -> bool:
        self._ensure_open()
        return isinstance(self.store, QueryablePermissionStoreProtocol)

    @property
    def permissions(self) -> Select[tuple[Permission]]:
        """Statement over all permissions; requires a queryable store."""
        self._ensure_open()
        if not isinstance(self.store, QueryablePermissionStoreProtocol):
            raise UnsupportedStoreCapabilityError("QueryablePermissionStoreProtocol", self.store)
        return self.store.permissions

    def stream(self, cancellation: CancellationToken) -> AsyncIterator[Permission]:
        self._ensure_open()
        if not isinstance(self.store, QueryablePermissionStoreProtocol):
            raise UnsupportedStoreCapabilityError("QueryablePermissionStoreProtocol", self.store)
        return self.store.stream(cancellation)

    # ------------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------------

    async def create(self, permission: Permission, cancellation: CancellationToken) -> OperationResult:
        self._ensure_open()
        require(permission, "permission")
        result = await self._validate(permission, cancellation)
        if not result.succeeded:
            return result
        await self.update_normalized_permission_name(permission, cancellation)
        return await self.store.create(permission, cancellation)

    async def update(self, permission: Permission, cancellation: CancellationToken) -> OperationResult:
        """Persist changes; fails with ConcurrencyFailure if the permission was modified since it was read."""
        self._ensure_open()
        require(permission, "permission")
        result = await self._validate(permission, cancellation)
        if not result.succeeded:
            return result
        await self.update_normalized_permission_name(permission, cancellation)
        return await self.store.update(permission, cancellation)

    async def delete(self, permission: Permission, cancellation: CancellationToken) -> OperationResult:
        self._ensure_open()
        require(permission, "permission")
        return await self.store.delete(permission, cancellation)

    async def set_permission_name(
        self, permission: Permission, name: Optional[str], cancellation: CancellationToken
    ) -> OperationResult:
        """Rename in memory; call update() to persist."""
        self._ensure_open()
        await self.store.set_permission_name(permission, name, cancellation)
        await self.update_normalized_permission_name(permission, cancellation)
        return OperationResult.success()

    async def update_normalized_permission_name(
        self, permission: Permission, cancellation: CancellationToken
    ) -> None:
        name = await self.get_permission_name(permission, cancellation)
        await self.store.set_normalized_permission_name(permission, self.normalize_key(name), cancellation)

    # ------------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------------

    def normalize_key(self, key: Optional[str]) -> Optional[str]:
        return normalize_key(key)

    async def exists(self, name: str, cancellation: CancellationToken) -> bool:
        self._ensure_open()
        require(name, "name")
        return await self.find_by_name(name, cancellation) is not None

    async def find_by_id(self, permission_id: str, cancellation: CancellationToken) -> Optional[Permission]:
        self._ensure_open()
        return await self.store.find_by_id(permission_id, cancellation)

    async def find_by_name(self, name: str, cancellation: CancellationToken) -> Optional[Permission]:
        self._ensure_open()
        require(name, "name")
        return await self.store.find_by_name(self.normalize_key(name), cancellation)

    async def find_by_names(self, names: Iterable[str], cancellation: CancellationToken) -> List[Permission]:
        self._ensure_open()
        require(names, "names")
        normalized = [self.normalize_key(name) for name in names]
        return await self.store.find_by_names(normalized, cancellation)

    async def get_all(self, cancellation: CancellationToken) -> List[Permission]:
        self._ensure_open()
        return await self.store.get_all(cancellation)

    async def get_permission_id(self, permission: Permission, cancellation: CancellationToken) -> str:
        self._ensure_open()
        return await self.store.get_permission_id(permission, cancellation)

    async def get_permission_name(self, permission: Permission, cancellation: CancellationToken) -> Optional[str]:
        self._ensure_open()
        return await self.store.get_permission_name(permission, cancellation)

    # ------------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------------

    async def _validate(self, permission: Permission, cancellation: CancellationToken) -> OperationResult:
        errors: List[OperationError] = []
        for validator in self.validators:
            errors.extend(await validator.validate(self, permission, cancellation))

        if errors:
            if self.logger.isEnabledFor(logging.WARNING):
                self.logger.warning(
                    "Permission %s validation failed: %s.",
                    await self.get_permission_id(permission, cancellation),
                    ";".join(error.code for error in errors),
                )
            return OperationResult.failed(*errors)
        return OperationResult.success()
