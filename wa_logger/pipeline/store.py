"""
Store calls used by the ingestion pipeline.

Constraint failures are translated here: a duplicate message id is a benign
skip, and a too-long status value is reported through ``is_value_too_long``
so the caller can retry with a shorter value.
"""
from enum import Enum
from typing import Optional

from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from wa_logger.core.logging import get_logger
from wa_logger.models.message import Message
from wa_logger.models.receipt import STATUS_LENGTH_CHECK, MessageStatus, Reaction

logger = get_logger(__name__)

VALUE_TOO_LONG_MARKERS = (
    "data too long",          # MySQL 1406
    "value too long",         # PostgreSQL
    STATUS_LENGTH_CHECK,
)


class IngestResult(str, Enum):
    """Outcome of handling one event."""
    CREATED = "created"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"    # nothing to store, or precondition not met
    DROPPED = "dropped"    # malformed input
    QUEUED = "queued"      # handed to the metadata queue
    FAILED = "failed"


def is_value_too_long(error: BaseException) -> bool:
    """True if a store error says a value exceeded its column width."""
    if not isinstance(error, (DataError, IntegrityError)):
        return False
    text = str(getattr(error, "orig", None) or error).lower()
    if any(marker in text for marker in VALUE_TOO_LONG_MARKERS):
        return True
    # Older SQLite builds omit the constraint name
    return "check constraint failed" in text and "message_status" in text


def message_exists(db: Session, message_id: str) -> bool:
    """Check if a message id is already stored; lookup errors count as absent."""
    try:
        found = db.query(Message.message_id).filter(Message.message_id == message_id).first()
        return found is not None
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error checking message existence: {message_id}: {e}")
        return False


def insert_message(db: Session, message: Message) -> bool:
    """
    Insert a message row.

    Returns:
        True if the row was created, False if another writer already stored
        the same id (unique constraint), which is a benign duplicate.
    """
    try:
        db.add(message)
        db.commit()
        return True
    except IntegrityError:
        # Race: another insert for the same message_id won
        db.rollback()
        logger.info(
            "Duplicate message detected via constraint",
            extra={"extra_data": {"message_id": message.message_id}}
        )
        return False
    except Exception:
        db.rollback()
        raise


def insert_reaction(
    db: Session,
    message_id: str,
    from_jid: str,
    reaction_text: str,
    timestamp: Optional[str],
) -> Reaction:
    """Append a reaction row; no dedup against earlier reactions."""
    reaction = Reaction(
        message_id=message_id,
        from_jid=from_jid,
        reaction_text=reaction_text,
        timestamp=timestamp,
    )
    try:
        db.add(reaction)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return reaction


def insert_status(
    db: Session,
    message_id: str,
    to_jid: Optional[str],
    status: str,
    timestamp: Optional[str],
) -> MessageStatus:
    """Append a status row."""
    row = MessageStatus(
        message_id=message_id,
        to_jid=to_jid,
        status=status,
        timestamp=timestamp,
    )
    try:
        db.add(row)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return row
