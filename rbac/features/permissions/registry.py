"""
Explicit wiring of permission stores and validators.

A registry maps a configuration key (config.PERMISSION_STORE) to the store
factory and validator factories used to build a request-scoped
PermissionManager.

Usage:
    registry = PermissionServiceRegistry().add_default()
    registry.add_validator("sqlalchemy", PermissionNameFormatValidator)
    manager = registry.create_manager("sqlalchemy", session)
"""
import logging
from collections.abc import Callable
from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from rbac.features.permissions.manager import PermissionManager
from rbac.features.permissions.store import PermissionStore, PermissionStoreProtocol
from rbac.features.permissions.validators import (
    PermissionValidator,
    PermissionValidatorProtocol,
)


DEFAULT_KEY = "sqlalchemy"

StoreFactory = Callable[[AsyncSession], PermissionStoreProtocol]
ValidatorFactory = Callable[[], PermissionValidatorProtocol]


class PermissionServiceRegistry:
    """Key -> (store factory, validator factories)."""

    def __init__(self):
        self._stores: Dict[str, StoreFactory] = {}
        self._validators: Dict[str, List[ValidatorFactory]] = {}

    def register_store(self, key: str, factory: StoreFactory) -> "PermissionServiceRegistry":
        self._stores[key] = factory
        self._validators.setdefault(key, [])
        return self

    def add_validator(self, key: str, factory: ValidatorFactory) -> "PermissionServiceRegistry":
        self._validators.setdefault(key, []).append(factory)
        return self

    def add_default(self, key: str = DEFAULT_KEY) -> "PermissionServiceRegistry":
        """Register the SQLAlchemy store and the default validator under ``key``."""
        return self.register_store(key, PermissionStore).add_validator(key, PermissionValidator)

    def keys(self) -> List[str]:
        return sorted(self._stores)

    def create_store(self, key: str, session: AsyncSession) -> PermissionStoreProtocol:
        try:
            factory = self._stores[key]
        except KeyError:
            raise KeyError(
                f"No permission store registered for {key!r}; registered: {self.keys()}"
            ) from None
        return factory(session)

    def create_validators(self, key: str) -> List[PermissionValidatorProtocol]:
        return [factory() for factory in self._validators.get(key, [])]

    def create_manager(
        self,
        key: str,
        session: AsyncSession,
        logger: Optional[logging.Logger] = None,
    ) -> PermissionManager:
        return PermissionManager(
            self.create_store(key, session),
            self.create_validators(key),
            logger=logger,
        )


default_registry = PermissionServiceRegistry().add_default()
