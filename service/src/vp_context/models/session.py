"""Chat session models."""

import uuid
from datetime import datetime
from typing import List, Literal
from pydantic import BaseModel, ConfigDict, Field


def new_session_id() -> str:
    """Generate a unique chat session identifier."""
    return uuid.uuid4().hex


class Message(BaseModel):
    """One chat message."""

    role: Literal["user", "assistant"] = Field(..., description="Message author")
    content: str = Field(..., description="Message text")
    timestamp: datetime = Field(default_factory=datetime.now, alias="ts")

    model_config = ConfigDict(populate_by_name=True)


class ChatSession(BaseModel):
    """A persisted conversation owning its own context buffer."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_session_id, description="Session identifier")
    title: str = Field("New chat", description="Display title")
    created_at: datetime = Field(default_factory=datetime.now, alias="createdAt")
    updated_at: datetime = Field(default_factory=datetime.now, alias="updatedAt")
    messages: List[Message] = Field(default_factory=list)
    context: str = Field("", description="Rolling context text")

    def touch(self) -> None:
        """Update last modification timestamp."""
        self.updated_at = datetime.now()
