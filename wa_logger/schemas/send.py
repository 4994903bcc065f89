"""
Request and response schemas for the send API.
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

MediaType = Literal["image", "video", "audio", "document", "sticker"]


class TextMessageRequest(BaseModel):
    jid: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)


class MediaMessageRequest(BaseModel):
    jid: str = Field(..., min_length=1)
    media: str = Field(..., min_length=1, description="http(s) URL or base64 data")
    type: MediaType
    caption: Optional[str] = None
    filename: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def lowercase_type(cls, v):
        return v.lower() if isinstance(v, str) else v


class Button(BaseModel):
    id: str
    text: str


class ButtonsMessageRequest(BaseModel):
    jid: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    buttons: List[Button] = Field(..., min_length=1)
    footer: Optional[str] = None


class ListMessageRequest(BaseModel):
    jid: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    button_text: str = Field(..., alias="buttonText", min_length=1)
    sections: List[Dict[str, Any]] = Field(..., min_length=1)
    footer: Optional[str] = None

    model_config = {"populate_by_name": True}


class SendResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
