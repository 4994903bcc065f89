"""
Messages endpoint for querying stored messages.
"""
from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from sqlalchemy import func

from wa_logger.core.database import get_db
from wa_logger.core.logging import get_logger
from wa_logger.models.message import Message
from wa_logger.models.receipt import MessageStatus, Reaction
from wa_logger.pipeline.normalize import CANONICAL_FORMAT
from wa_logger.schemas.message import (
    MessageDetailResponse,
    MessageResponse,
    MessagesListResponse,
    ReactionResponse,
    StatusResponse,
)

logger = get_logger(__name__)

router = APIRouter(tags=["Messages"])


def parse_since(value: str) -> str:
    """
    Convert an ISO-8601 timestamp to the stored canonical form.

    Stored times are canonical UTC strings, so the comparison is lexicographic.
    Naive inputs are taken as UTC.
    """
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid 'since' timestamp: {value}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.strftime(CANONICAL_FORMAT)


@router.get(
    "/messages",
    response_model=MessagesListResponse,
    summary="List messages",
    description="Retrieve stored messages with pagination and filtering."
)
def list_messages(
    db: Annotated[Session, Depends(get_db)],
    limit: Annotated[int, Query(ge=1, le=100, description="Number of messages to return")] = 50,
    offset: Annotated[int, Query(ge=0, description="Number of messages to skip")] = 0,
    sender: Annotated[Optional[str], Query(description="Filter by sender jid")] = None,
    since: Annotated[Optional[str], Query(description="Filter messages since timestamp (ISO-8601)")] = None,
    q: Annotated[Optional[str], Query(description="Case-insensitive text search")] = None,
    message_type: Annotated[Optional[str], Query(description="Filter by message type")] = None,
) -> MessagesListResponse:
    """
    List messages with pagination and optional filters.

    - **limit**: Number of messages per page (1-100, default 50)
    - **offset**: Number of messages to skip (default 0)
    - **sender**: Filter by exact sender jid
    - **since**: Filter messages with time >= given timestamp
    - **q**: Case-insensitive substring search in message text
    - **message_type**: Filter by type (text, image, video, ...)
    """
    query = db.query(Message)
    count_query = db.query(func.count(Message.message_id))

    if sender:
        query = query.filter(Message.sender == sender)
        count_query = count_query.filter(Message.sender == sender)

    if since:
        since_time = parse_since(since)
        query = query.filter(Message.time >= since_time)
        count_query = count_query.filter(Message.time >= since_time)

    if q:
        search_pattern = f"%{q}%"
        query = query.filter(Message.message.ilike(search_pattern))
        count_query = count_query.filter(Message.message.ilike(search_pattern))

    if message_type:
        query = query.filter(Message.message_type == message_type)
        count_query = count_query.filter(Message.message_type == message_type)

    total = count_query.scalar()

    # ORDER BY time ASC, message_id ASC
    query = query.order_by(Message.time.asc(), Message.message_id.asc())
    messages = query.offset(offset).limit(limit).all()

    data = [MessageResponse(**msg.to_dict()) for msg in messages]

    logger.debug(
        "Listed messages",
        extra={
            "extra_data": {
                "total": total,
                "returned": len(data),
                "limit": limit,
                "offset": offset,
            }
        }
    )

    return MessagesListResponse(
        data=data,
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/messages/{message_id}",
    response_model=MessageDetailResponse,
    responses={404: {"description": "Message not found"}},
    summary="Get one message",
    description="Retrieve a stored message with its reactions and delivery statuses."
)
def get_message(
    message_id: str,
    db: Annotated[Session, Depends(get_db)],
) -> MessageDetailResponse:
    message = db.get(Message, message_id)
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")

    reactions = (
        db.query(Reaction)
        .filter(Reaction.message_id == message_id)
        .order_by(Reaction.id.asc())
        .all()
    )
    statuses = (
        db.query(MessageStatus)
        .filter(MessageStatus.message_id == message_id)
        .order_by(MessageStatus.id.asc())
        .all()
    )

    return MessageDetailResponse(
        **message.to_dict(),
        reactions=[ReactionResponse(**reaction.to_dict()) for reaction in reactions],
        statuses=[StatusResponse(**status.to_dict()) for status in statuses],
    )
