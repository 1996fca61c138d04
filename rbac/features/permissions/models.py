"""
Permission model for data-driven RBAC.

A permission is a persisted, named capability. Its normalized name is the
lookup and uniqueness key; its concurrency stamp is the optimistic
concurrency token checked by every UPDATE and DELETE.
"""
import uuid
from typing import Any
from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column
from ulid import ULID

from rbac.core.database.base import Base, TimestampMixin


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ULID())


def generate_concurrency_stamp() -> str:
    return str(uuid.uuid4())


class Permission(Base, TimestampMixin):
    """
    Permission entity.
    
    - id is assigned when the object is constructed, before it is persisted
    - normalized_name is maintained by PermissionManager, never set directly
    - concurrency_stamp is compared on write; a mismatch means another writer
      got there first
    
    Examples:
        Permission("Orders.Read")
        Permission(name="Billing.View")
    """
    __tablename__ = "permissions"
    __table_args__ = (
        Index("permission_name_index", "normalized_name", unique=True),
    )
    
    # Primary key using ULID
    id: Mapped[str] = mapped_column(String(26), primary_key=True)
    
    name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    normalized_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    
    # Application-managed version column: the ORM puts the loaded value in the
    # WHERE clause of UPDATE/DELETE and raises StaleDataError on zero rows
    concurrency_stamp: Mapped[str] = mapped_column(String(36), nullable=False)
    
    __mapper_args__ = {
        "version_id_col": concurrency_stamp,
        "version_id_generator": False,
        "eager_defaults": True,
    }
    
    def __init__(self, name: str | None = None, **kwargs: Any):
        kwargs.setdefault("id", generate_ulid())
        kwargs.setdefault("concurrency_stamp", generate_concurrency_stamp())
        super().__init__(name=name, **kwargs)
    
    def __str__(self) -> str:
        return self.name or ""
    
    def __repr__(self) -> str:
        return f"<Permission(id={self.id}, name={self.name!r}, normalized_name={self.normalized_name!r})>"
