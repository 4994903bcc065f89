"""
Stats endpoint for analytics.
"""
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import func

from wa_logger.core.database import get_db
from wa_logger.core.logging import get_logger
from wa_logger.models.contact import Contact
from wa_logger.models.group import Group
from wa_logger.models.message import Message
from wa_logger.models.receipt import MessageStatus, Reaction
from wa_logger.schemas.message import StatsResponse, SenderCount

logger = get_logger(__name__)

router = APIRouter(tags=["Analytics"])


@router.get(
    "/stats",
    response_model=StatsResponse,
    summary="Get message statistics",
    description="Returns lightweight analytics about stored messages and directory entries."
)
def get_stats(
    db: Annotated[Session, Depends(get_db)],
) -> StatsResponse:
    """
    Get statistics including:

    - Message, reaction, status, contact and group totals
    - Unique sender count and per-type message counts
    - Top 10 senders by message count
    - First and last message times
    """
    total_messages = db.query(func.count(Message.message_id)).scalar() or 0
    total_reactions = db.query(func.count(Reaction.id)).scalar() or 0
    total_statuses = db.query(func.count(MessageStatus.id)).scalar() or 0
    total_contacts = db.query(func.count(Contact.jid)).scalar() or 0
    total_groups = db.query(func.count(Group.group_id)).scalar() or 0

    senders_count = db.query(func.count(func.distinct(Message.sender))).scalar() or 0

    per_type = (
        db.query(Message.message_type, func.count(Message.message_id))
        .group_by(Message.message_type)
        .all()
    )
    messages_per_type = {message_type: count for message_type, count in per_type}

    # Top 10 senders by message count
    top_senders_query = (
        db.query(
            Message.sender,
            func.count(Message.message_id).label("count")
        )
        .group_by(Message.sender)
        .order_by(func.count(Message.message_id).desc(), Message.sender.asc())
        .limit(10)
        .all()
    )

    messages_per_sender = [
        SenderCount(sender=sender, count=count)
        for sender, count in top_senders_query
    ]

    first_message_time = db.query(func.min(Message.time)).scalar()
    last_message_time = db.query(func.max(Message.time)).scalar()

    logger.debug(
        "Generated stats",
        extra={
            "extra_data": {
                "total_messages": total_messages,
                "senders_count": senders_count,
            }
        }
    )

    return StatsResponse(
        total_messages=total_messages,
        total_reactions=total_reactions,
        total_statuses=total_statuses,
        total_contacts=total_contacts,
        total_groups=total_groups,
        senders_count=senders_count,
        messages_per_type=messages_per_type,
        messages_per_sender=messages_per_sender,
        first_message_time=first_message_time,
        last_message_time=last_message_time,
    )
