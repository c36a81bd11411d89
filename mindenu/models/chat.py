"""
Chat-related Pydantic models.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ChatRequest(BaseModel):
    """Chat message request from the mobile client."""
    model_config = ConfigDict(extra="forbid")

    message: str = Field(min_length=1, max_length=4000)
    uid: Optional[str] = None


class ChatResponse(BaseModel):
    """Successful chat turn."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ok: bool = True
    assistant_text: str
    outcome: str = "reply"  # executed, mismatch, nothing_pending, cancelled, proposed, reply
    pending_action_summary: Optional[dict] = None


class ErrorResponse(BaseModel):
    """Error envelope returned for every failure."""
    ok: bool = False
    error: str
    details: Optional[Any] = None
