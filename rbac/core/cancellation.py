"""
Cooperative cancellation passed explicitly through store and manager calls.

Usage:
    token = CancellationToken()
    permission = await manager.find_by_name("orders.read", token)

    token.cancel()
    await manager.find_by_name("orders.read", token)  # OperationCancelledError
"""
from rbac.core.errors import OperationCancelledError


class CancellationToken:
    """A one-way flag: once cancelled it stays cancelled."""

    __slots__ = ("_cancelled",)

    def __init__(self, cancelled: bool = False):
        self._cancelled = cancelled

    @classmethod
    def none(cls) -> "CancellationToken":
        """A token nobody can cancel; callers must ask for it explicitly."""
        return _NeverCancelled()

    @property
    def is_cancellation_requested(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancellation_requested(self) -> None:
        if self._cancelled:
            raise OperationCancelledError()

    def __repr__(self) -> str:
        return f"<CancellationToken(cancelled={self._cancelled})>"


class _NeverCancelled(CancellationToken):
    __slots__ = ()

    def cancel(self) -> None:
        raise RuntimeError("CancellationToken.none() cannot be cancelled")
