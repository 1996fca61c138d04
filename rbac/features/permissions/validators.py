"""
Validation rules run by PermissionManager before every create and update.

Each validator returns the list of violations it found; the manager runs all
of them and reports every violation together.
"""
from typing import TYPE_CHECKING, List, Protocol, runtime_checkable

from rbac.core.cancellation import CancellationToken
from rbac.features.permissions.models import Permission
from rbac.features.permissions.schemas import (
    OperationError,
    duplicate_permission_name,
    invalid_permission_name,
    invalid_permission_name_format,
)

if TYPE_CHECKING:
    from rbac.features.permissions.manager import PermissionManager


@runtime_checkable
class PermissionValidatorProtocol(Protocol):
    """A pluggable rule check."""

    async def validate(
        self,
        manager: "PermissionManager",
        permission: Permission,
        cancellation: CancellationToken,
    ) -> List[OperationError]:
        ...


class PermissionValidator:
    """
    Default rules.
    
    - the name must not be empty or whitespace (InvalidPermissionName)
    - no other permission may own the same normalized name (DuplicatePermissionName)
    """

    async def validate(
        self,
        manager: "PermissionManager",
        permission: Permission,
        cancellation: CancellationToken,
    ) -> List[OperationError]:
        if manager is None:
            raise TypeError("manager is required")
        if permission is None:
            raise TypeError("permission is required")
        
        errors: List[OperationError] = []
        name = await manager.get_permission_name(permission, cancellation)
        if name is None or not name.strip():
            errors.append(invalid_permission_name(name))
            return errors
        
        owner = await manager.find_by_name(name, cancellation)
        if owner is not None:
            owner_id = await manager.get_permission_id(owner, cancellation)
            permission_id = await manager.get_permission_id(permission, cancellation)
            if owner_id != permission_id:
                errors.append(duplicate_permission_name(name))
        return errors


class PermissionNameFormatValidator:
    """
    Restrict names to letters, digits and a small set of separators.
    
    The policy identifier format uses ',' between names, so names containing
    it could never be required by a declaration. Blank names are left to
    PermissionValidator.
    
    Usage:
        registry.add_validator("sqlalchemy", PermissionNameFormatValidator)
    """
    
    DEFAULT_ALLOWED = "._:-"

    def __init__(self, allowed: str = DEFAULT_ALLOWED):
        if "," in allowed:
            raise ValueError("',' separates names in policy identifiers and cannot be allowed")
        self.allowed = allowed

    async def validate(
        self,
        manager: "PermissionManager",
        permission: Permission,
        cancellation: CancellationToken,
    ) -> List[OperationError]:
        name = await manager.get_permission_name(permission, cancellation)
        if name is None or not name.strip():
            return []
        if all(char.isalnum() or char in self.allowed for char in name):
            return []
        return [invalid_permission_name_format(name, self.allowed)]
