"""
Event bridge endpoint: the transport sidecar forwards its events here.
"""
import json
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from wa_logger.api.deps import get_dispatcher
from wa_logger.core.logging import get_logger
from wa_logger.core.security import get_validated_body
from wa_logger.pipeline.dispatcher import EventDispatcher
from wa_logger.schemas.message import ErrorResponse, EventResponse

logger = get_logger(__name__)

router = APIRouter(tags=["Events"])


@router.post(
    "/events/{event_name}",
    response_model=EventResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid signature"},
        422: {"model": ErrorResponse, "description": "Invalid JSON"},
    },
    summary="Ingest a transport event",
    description="Receive one named transport event (messages.upsert, messages.reaction, "
                "message-receipt.update, contacts.update, groups.update, group-participants.update). "
                "Requires a valid HMAC-SHA256 signature."
)
async def ingest_event(
    event_name: str,
    validated_body: Annotated[bytes, Depends(get_validated_body)],
    dispatcher: Annotated[EventDispatcher, Depends(get_dispatcher)],
) -> EventResponse:
    """
    Ingest one transport event.

    - Validates HMAC-SHA256 signature (via dependency)
    - Routes the payload to the matching pipeline handler
    - Per-event failures are logged by the pipeline, never returned as errors
    """
    try:
        payload = json.loads(validated_body)
    except ValueError as e:
        logger.warning(f"Invalid JSON in event request: {e}")
        raise HTTPException(status_code=422, detail="Invalid JSON")

    processed = await dispatcher.dispatch(event_name, payload)

    logger.debug(
        "Event handled",
        extra={"extra_data": {"event": event_name, "processed": processed}}
    )
    return EventResponse(status="ok", event=event_name, processed=processed)
