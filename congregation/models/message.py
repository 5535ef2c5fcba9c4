"""Team chat message models"""

from pydantic import BaseModel, Field, field_validator


class MessageCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=2000)

    @field_validator("text")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Message cannot be blank")
        return v


class Message(BaseModel):
    id: str
    text: str
    sender: str
    sender_id: str
    team_id: str
    timestamp: str
