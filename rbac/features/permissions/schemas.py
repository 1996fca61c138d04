"""
Pydantic schemas for permission management.

Operation results returned by the store and manager, plus request and
response models for the administration routes.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Operation Results
# ============================================================================

INVALID_PERMISSION_NAME = "InvalidPermissionName"
INVALID_PERMISSION_NAME_FORMAT = "InvalidPermissionNameFormat"
DUPLICATE_PERMISSION_NAME = "DuplicatePermissionName"
CONCURRENCY_FAILURE = "ConcurrencyFailure"


class OperationError(BaseModel):
    """A single business-rule violation."""
    code: str
    description: str
    
    model_config = ConfigDict(frozen=True)


class OperationResult(BaseModel):
    """
    Outcome of a create, update or delete.
    
    Callers branch on ``succeeded``; ``errors`` carries every violation found,
    not just the first one.
    """
    succeeded: bool
    errors: tuple[OperationError, ...] = ()
    
    model_config = ConfigDict(frozen=True)
    
    @classmethod
    def success(cls) -> "OperationResult":
        return cls(succeeded=True)
    
    @classmethod
    def failed(cls, *errors: OperationError) -> "OperationResult":
        return cls(succeeded=False, errors=tuple(errors))
    
    @property
    def error_codes(self) -> List[str]:
        return [error.code for error in self.errors]
    
    def __str__(self) -> str:
        if self.succeeded:
            return "Succeeded"
        return f"Failed : {','.join(self.error_codes)}"


def invalid_permission_name(name: Optional[str]) -> OperationError:
    return OperationError(
        code=INVALID_PERMISSION_NAME,
        description=f"Permission name '{name or ''}' is invalid.",
    )


def invalid_permission_name_format(name: str, allowed: str) -> OperationError:
    return OperationError(
        code=INVALID_PERMISSION_NAME_FORMAT,
        description=(
            f"Permission name '{name}' may only contain letters, digits "
            f"and the characters '{allowed}'."
        ),
    )


def duplicate_permission_name(name: str) -> OperationError:
    return OperationError(
        code=DUPLICATE_PERMISSION_NAME,
        description=f"Permission name '{name}' is already taken.",
    )


def concurrency_failure() -> OperationError:
    return OperationError(
        code=CONCURRENCY_FAILURE,
        description="Optimistic concurrency failure, object has been modified.",
    )


# ============================================================================
# Permission Schemas
# ============================================================================

class PermissionCreate(BaseModel):
    """Schema for creating a new permission."""
    name: str = Field(..., max_length=256, description="Permission name, e.g. 'Orders.Read'")


class PermissionUpdate(BaseModel):
    """Schema for renaming a permission."""
    name: str = Field(..., max_length=256)
    concurrency_stamp: str = Field(..., description="Stamp from the last read of this permission")


class PermissionResponse(BaseModel):
    """Schema for permission response."""
    id: str
    name: Optional[str]
    normalized_name: Optional[str]
    concurrency_stamp: str
    created_at: datetime
    updated_at: datetime
    
    model_config = ConfigDict(from_attributes=True)


class OperationFailureResponse(BaseModel):
    """Body returned when the manager rejects a write."""
    errors: List[OperationError]


# ============================================================================
# Permission Check Schemas
# ============================================================================

class PermissionCheckRequest(BaseModel):
    """Policy identifiers to evaluate against the current principal."""
    policies: List[str] = Field(..., min_length=1, description="e.g. ['Rbac:Orders.Read,Orders.Write']")


class PermissionCheckResponse(BaseModel):
    """Schema for permission check response."""
    succeeded: bool
    unsatisfied: List[List[str]] = []
