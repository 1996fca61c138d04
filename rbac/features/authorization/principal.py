"""
Authenticated principal and its claims.
"""
from typing import Any, Dict, List, Mapping
from pydantic import BaseModel, ConfigDict

from rbac.features.authorization.constants import PERMISSION_CLAIM_TYPE


class Claim(BaseModel):
    type: str
    value: str
    
    model_config = ConfigDict(frozen=True)


class Principal(BaseModel):
    """
    The caller an authorization decision is made for.
    
    Example:
        Principal(subject="u-1", claims=(Claim(type="permission", value="Orders.Read"),))
    """
    subject: str | None = None
    claims: tuple[Claim, ...] = ()
    
    model_config = ConfigDict(frozen=True)
    
    def find_all(self, claim_type: str) -> List[Claim]:
        """Claims of the given type; type names compare case-insensitively."""
        wanted = claim_type.casefold()
        return [claim for claim in self.claims if claim.type.casefold() == wanted]
    
    @property
    def permission_names(self) -> List[str]:
        return [claim.value for claim in self.find_all(PERMISSION_CLAIM_TYPE)]
    
    @classmethod
    def with_permissions(cls, *names: str, subject: str | None = None) -> "Principal":
        return cls(
            subject=subject,
            claims=tuple(Claim(type=PERMISSION_CLAIM_TYPE, value=name) for name in names),
        )
    
    @classmethod
    def from_token_payload(cls, payload: Mapping[str, Any]) -> "Principal":
        """
        Build a principal from a decoded JWT payload.
        
        Held permissions are read from a "permissions" list and/or a single
        "permission" string; other payload keys are ignored.
        """
        names: List[str] = []
        listed = payload.get("permissions")
        if isinstance(listed, str):
            names.append(listed)
        elif isinstance(listed, (list, tuple)):
            names.extend(str(name) for name in listed)
        single = payload.get(PERMISSION_CLAIM_TYPE)
        if isinstance(single, str):
            names.append(single)
        return cls.with_permissions(*names, subject=payload.get("sub"))
    
    def to_token_payload(self) -> Dict[str, Any]:
        return {"sub": self.subject, "permissions": self.permission_names}
