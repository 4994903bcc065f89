"""
Send API: validates requests and passes them through to the transport.
"""
import base64
import binascii
import re
from typing import Any, Dict, Optional, Type

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from wa_logger.api.deps import get_transport
from wa_logger.core.logging import get_logger
from wa_logger.schemas.send import (
    ButtonsMessageRequest,
    ListMessageRequest,
    MediaMessageRequest,
    SendResponse,
    TextMessageRequest,
)
from wa_logger.transport.base import Transport

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["Send"])

DEFAULT_MIME_TYPES = {
    "image": "image/jpeg",
    "video": "video/mp4",
    "audio": "audio/mpeg",
    "document": "application/pdf",
    "sticker": "image/webp",
}
DATA_URL_PREFIX = re.compile(r"^data:[\w.+-]+/[\w.+-]+;base64,")


def _failure(status_code: int, error: str, details: Optional[str] = None) -> JSONResponse:
    content: Dict[str, Any] = {"success": False, "error": error}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def _parse(model: Type[BaseModel], body: Any, error: str):
    """Validate ``body``; returns (request, None) or (None, 400 response)."""
    try:
        return model.model_validate(body), None
    except ValidationError as e:
        logger.warning(f"Send request validation failed: {e}")
        return None, _failure(400, error, str(e))


async def _send(transport: Optional[Transport], jid: str, payload: Dict[str, Any], what: str):
    """Send through the transport; returns a failure response or None."""
    if transport is None:
        return _failure(503, "WhatsApp socket not connected")
    try:
        await transport.send_message(jid, payload)
    except Exception as e:
        logger.error(f"Error sending {what}: {e}")
        return _failure(500, f"Failed to send {what}", str(e))
    return None


def build_media_content(request: MediaMessageRequest) -> Dict[str, Any]:
    """
    Transport payload for a media send.

    Raises:
        ValueError: ``media`` is neither a URL nor valid base64.
    """
    mime_type = DEFAULT_MIME_TYPES[request.type]
    if request.media.startswith(("http://", "https://")):
        source = {"url": request.media}
    else:
        data = DATA_URL_PREFIX.sub("", request.media)
        try:
            base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid base64 media data: {e}") from e
        source = {"base64": data}

    content: Dict[str, Any] = {
        request.type: source,
        "caption": request.caption or "",
        "mimetype": mime_type,
    }
    if request.type == "document" and request.filename:
        content["fileName"] = request.filename
    return content


@router.post("/text", response_model=SendResponse, summary="Send a text message")
async def send_text(
    body: Any = Body(...),
    transport: Optional[Transport] = Depends(get_transport),
):
    request, error = _parse(TextMessageRequest, body, "Missing required fields: jid and message")
    if error:
        return error

    failure = await _send(transport, request.jid, {"text": request.message}, "message")
    if failure:
        return failure
    return SendResponse(
        message="Message sent successfully",
        data={"jid": request.jid, "message": request.message},
    )


@router.post("/media", response_model=SendResponse, summary="Send a media message")
async def send_media(
    body: Any = Body(...),
    transport: Optional[Transport] = Depends(get_transport),
):
    request, error = _parse(
        MediaMessageRequest, body,
        "Missing or invalid fields: jid, media, and type (image, video, audio, document, sticker)",
    )
    if error:
        return error

    try:
        content = build_media_content(request)
    except ValueError as e:
        logger.warning(f"Error processing base64 media: {e}")
        return _failure(400, "Invalid base64 media data", str(e))

    failure = await _send(transport, request.jid, content, "media")
    if failure:
        return failure
    return SendResponse(
        message="Media sent successfully",
        data={
            "jid": request.jid,
            "type": request.type,
            "caption": request.caption,
            "filename": request.filename,
        },
    )


@router.post("/buttons", response_model=SendResponse, summary="Send a message with buttons")
async def send_buttons(
    body: Any = Body(...),
    transport: Optional[Transport] = Depends(get_transport),
):
    request, error = _parse(
        ButtonsMessageRequest, body, "Missing required fields: jid, text, and buttons (array)"
    )
    if error:
        return error

    content = {
        "text": request.text,
        "footer": request.footer or "",
        "buttons": [
            {"buttonId": button.id, "buttonText": {"displayText": button.text}, "type": 1}
            for button in request.buttons
        ],
        "headerType": 1,
    }
    failure = await _send(transport, request.jid, content, "message with buttons")
    if failure:
        return failure
    return SendResponse(
        message="Message with buttons sent successfully",
        data={
            "jid": request.jid,
            "text": request.text,
            "buttons": [button.model_dump() for button in request.buttons],
            "footer": request.footer,
        },
    )


@router.post("/list", response_model=SendResponse, summary="Send a list message")
async def send_list(
    body: Any = Body(...),
    transport: Optional[Transport] = Depends(get_transport),
):
    request, error = _parse(
        ListMessageRequest, body, "Missing required fields: jid, text, buttonText, and sections (array)"
    )
    if error:
        return error

    content = {
        "text": request.text,
        "footer": request.footer or "",
        "buttonText": request.button_text,
        "sections": request.sections,
        "listType": 1,
    }
    failure = await _send(transport, request.jid, content, "list message")
    if failure:
        return failure
    return SendResponse(
        message="List message sent successfully",
        data={
            "jid": request.jid,
            "text": request.text,
            "buttonText": request.button_text,
            "sections": request.sections,
            "footer": request.footer,
        },
    )


@router.get("/status", response_model=SendResponse, summary="Transport connection status")
async def connection_status(transport: Optional[Transport] = Depends(get_transport)):
    if transport is None:
        return SendResponse(data={"connected": False, "user": None})
    try:
        status = await transport.connection_status()
    except Exception as e:
        logger.error(f"Error getting connection status: {e}")
        return _failure(500, "Failed to get connection status", str(e))

    user = status.get("user")
    connected = bool(status.get("connected", user is not None))
    return SendResponse(data={"connected": connected, "user": user if connected else None})
