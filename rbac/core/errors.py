"""
Fatal errors raised by the permission store and manager.

These signal caller bugs (use after close, cancelled work, missing store
capabilities). Business-rule outcomes are returned as OperationResult values
instead, see rbac.features.permissions.schemas.
"""


class RbacError(Exception):
    """Base class for non-recoverable RBAC errors."""


class OperationCancelledError(RbacError):
    """The caller's cancellation token was already set when the operation started."""

    def __init__(self, message: str = "The operation was cancelled."):
        super().__init__(message)


class ObjectClosedError(RbacError):
    """An operation was attempted on a store or manager after close()."""

    def __init__(self, object_name: str):
        super().__init__(f"Cannot access a closed object: {object_name}.")
        self.object_name = object_name


class StoreClosedError(ObjectClosedError):
    pass


class ManagerClosedError(ObjectClosedError):
    pass


class UnsupportedStoreCapabilityError(RbacError, NotImplementedError):
    """The configured store does not implement an optional capability."""

    def __init__(self, capability: str, store: object):
        super().__init__(
            f"Store {type(store).__name__} does not implement {capability}."
        )
        self.capability = capability
