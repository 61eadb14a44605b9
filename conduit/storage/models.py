"""Data models for session and conversation persistence."""

from pydantic import BaseModel, Field


class Preferences(BaseModel):
    agentic_mode: bool = False
    temperature: float = 0.7
    max_tokens: int = 1000


class SessionRecord(BaseModel):
    """Short-lived per-user record; absence means a new user."""

    user_id: str
    preferences: Preferences = Field(default_factory=Preferences)
    context: str = ""
    last_activity: str
    conversation_count: int = 0


class ConversationEntry(BaseModel):
    """One completed request, successful or not."""

    timestamp: str
    user_message: str
    ai_response: str
    processing_time_ms: int = 0
    agent_rounds: int = 0
    tools_used: list[str] = Field(default_factory=list)
    madness_level: str = ""
