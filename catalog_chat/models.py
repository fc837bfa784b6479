from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChatRequest(BaseModel):
    """Request payload for the chat API. Client-side history is ignored."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    message: Optional[str] = None
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class ChatResponse(BaseModel):
    """Response payload returned by the chat API."""
    reply: str
    timestamp: str


class ClearRequest(BaseModel):
    """Clear payload; clearing is idempotent, so an unusable id is treated as absent."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    session_id: Optional[str] = Field(default=None, alias="sessionId")

    @field_validator("session_id", mode="before")
    @classmethod
    def _coerce_session_id(cls, value):
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return None


class ClearResponse(BaseModel):
    ok: bool = True


class TurnView(BaseModel):
    """Serialized conversation turn for the session transcript endpoint."""
    role: str
    content: str
    timestamp: str


class SessionTranscript(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    turns: List[TurnView]
