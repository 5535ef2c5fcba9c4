"""User and authentication models"""

from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class SignUpRequest(BaseModel):
    email: EmailStr
    password: str
    display_name: str = Field(..., min_length=1, max_length=100)


class LoginRequest(BaseModel):
    email: str
    password: str


class DisplayNameUpdate(BaseModel):
    display_name: str = Field(..., min_length=1, max_length=100)


class TeamMembershipRequest(BaseModel):
    team_id: str


class IdentityResponse(BaseModel):
    id: str
    email: str
    display_name: str
    is_admin: bool


class SessionResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: str
    user: IdentityResponse


class UserProfile(BaseModel):
    id: str
    email: str
    display_name: str
    teams: List[str] = []
    role: str = "member"
    created_at: Optional[str] = None
