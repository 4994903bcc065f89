"""
Pydantic schemas for query and event bridge responses.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class EventResponse(BaseModel):
    """Response schema for POST /events/{event_name}."""
    status: str = Field(default="ok")
    event: str
    processed: int = 0


class MessageResponse(BaseModel):
    """Schema for a single stored message."""
    message_id: str
    sender_name: Optional[str] = None
    sender: str
    text: Optional[str] = None
    message_type: str
    device: str
    time: Optional[str] = None
    media_path: Optional[str] = None
    media_caption: Optional[str] = None
    media_mime_type: Optional[str] = None
    media_size: Optional[int] = None
    media_duration: Optional[int] = None
    media_width: Optional[int] = None
    media_height: Optional[int] = None
    quoted_message_id: Optional[str] = None
    forwarded: bool = False
    from_me: bool = False


class ReactionResponse(BaseModel):
    message_id: str
    from_jid: str
    reaction_text: str
    timestamp: Optional[str] = None


class StatusResponse(BaseModel):
    message_id: str
    to_jid: Optional[str] = None
    status: str
    timestamp: Optional[str] = None


class MessageDetailResponse(MessageResponse):
    """A message with its reactions and delivery statuses."""
    reactions: List[ReactionResponse] = Field(default_factory=list)
    statuses: List[StatusResponse] = Field(default_factory=list)


class MessagesListResponse(BaseModel):
    """Response schema for GET /messages."""
    data: List[MessageResponse]
    total: int
    limit: int
    offset: int


class SenderCount(BaseModel):
    """Schema for sender message count."""
    sender: str
    count: int


class StatsResponse(BaseModel):
    """Response schema for GET /stats."""
    total_messages: int
    total_reactions: int
    total_statuses: int
    total_contacts: int
    total_groups: int
    senders_count: int
    messages_per_type: Dict[str, int]
    messages_per_sender: List[SenderCount]
    first_message_time: Optional[str] = None
    last_message_time: Optional[str] = None


class HealthResponse(BaseModel):
    """Response schema for health endpoints."""
    status: str
    checks: Optional[dict] = None
    timestamp: Optional[str] = None


class ErrorResponse(BaseModel):
    """Standard error response schema."""
    detail: str
