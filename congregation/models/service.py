"""Service roster models"""

from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class ServiceCreate(BaseModel):
    date: date
    type: str = Field(..., min_length=1, max_length=100)
    roles: Optional[List[str]] = None  # None = configured default roles

    @field_validator("roles")
    @classmethod
    def validate_roles(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        roles = []
        for role in v:
            role = role.strip()
            if not role:
                raise ValueError("Role names cannot be blank")
            if role not in roles:
                roles.append(role)
        return roles


class RoleRequest(BaseModel):
    role: str = Field(..., min_length=1)


class RoleRestrictionUpdate(BaseModel):
    role: str = Field(..., min_length=1)
    team_id: Optional[str] = None  # None lifts the restriction


class Service(BaseModel):
    id: str
    date: str
    type: str
    roles: Dict[str, Optional[str]] = {}
    created_at: Optional[str] = None
