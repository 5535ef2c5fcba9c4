"""Team models"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class TeamCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        name = " ".join(v.split())
        if not name:
            raise ValueError("Team name cannot be blank")
        return name


class TeamUpdate(TeamCreate):
    pass


class Team(BaseModel):
    id: str
    name: str
    created_at: str
    created_by: Optional[str] = None
