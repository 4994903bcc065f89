"""
Reaction and receipt normalization.

The transport delivers reactions and receipts in several shapes with
synonymous field names. Each logical value is read through an ordered list of
field paths; the first usable value wins. An empty jid or an unparsable
timestamp falls through to the next synonym.
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from wa_logger.core.logging import get_logger
from wa_logger.pipeline.normalize import (
    first_present,
    format_timestamp,
    get_path,
    numeric_keys,
    to_epoch_seconds,
)
from wa_logger.pipeline.store import (
    IngestResult,
    insert_reaction,
    insert_status,
    is_value_too_long,
    message_exists,
)

logger = get_logger(__name__)

REACTION_TEXT_FIELDS = ("text", "reaction", "emoji")
REACTION_TIMESTAMP_FIELDS = ("timestamp", "senderTimestampMs", "reactionTimestamp", "timestampMs")
REACTION_ACTOR_FIELDS = ("key.participant", "key.remoteJid", "from")

STATUS_TIMESTAMP_FIELDS = ("receipt.readTimestamp", "receipt.receiptTimestamp")

GROUP_RECEIPT_TIMESTAMP_FIELDS = ("receipt.readTimestamp", "receipt.receiptTimestamp")
GROUP_RECEIPT_ACTOR_FIELDS = ("receipt.userJid", "receipt.participantJid")

RECEIPT_STATUS = {
    "read": "read",
    "delivery": "delivered",
    "sent": "sent",
    "error": "failed",
}
UNKNOWN_STATUS = "unknown"
DEFAULT_STATUS_FALLBACK_WIDTH = 10


def is_epoch_value(value: Any) -> bool:
    return to_epoch_seconds(value) is not None


@dataclass
class NormalizedReaction:
    message_id: str
    from_jid: str
    reaction_text: str
    timestamp: Optional[str]


def _describe(payload: Any) -> str:
    try:
        return json.dumps(payload, default=str)[:500]
    except (TypeError, ValueError):
        return repr(payload)[:500]


def unwrap_reaction_events(payload: Any) -> List[Dict[str, Any]]:
    """
    Flatten every supported reaction shape into flat ``{key, text, timestamp}``
    events.

    Shapes: an indexed map (``{"0": {key, reaction: {...}}}``) or a list of
    such entries, and a flat object carrying ``key`` directly.
    """
    if isinstance(payload, list):
        entries = payload
    elif isinstance(payload, dict) and numeric_keys(payload):
        entries = [payload[k] for k in numeric_keys(payload)]
    elif isinstance(payload, dict) and "key" in payload:
        return [payload]
    else:
        logger.warning(f"Unknown reaction data structure: {_describe(payload)}")
        return []

    events = []
    for entry in entries:
        if not isinstance(entry, dict):
            logger.warning(f"Skipping non-object reaction entry: {_describe(entry)}")
            continue
        inner = entry.get("reaction")
        if not isinstance(inner, dict):
            # Already flat
            events.append(entry)
            continue
        flat = {"key": entry.get("key")}
        _, flat["text"] = first_present(inner, ("text",))
        _, flat["timestamp"] = first_present(inner, ("senderTimestampMs", "timestamp"), accept=is_epoch_value)
        if entry.get("from") is not None:
            flat["from"] = entry["from"]
        events.append(flat)
    return events


def normalize_reaction(event: Any) -> Optional[NormalizedReaction]:
    """
    Reduce one flat reaction event to the canonical shape.

    Checks, in order: key, message id, reaction text, timestamp, actor jid.
    The first missing value drops the event with a logged diagnostic.
    An empty text is a reaction removal and is kept.
    """
    if not isinstance(event, dict) or not event:
        logger.error("Empty reaction object")
        return None

    key = event.get("key")
    if not isinstance(key, dict):
        logger.error(f"Missing key in reaction: {_describe(event)}")
        return None

    message_id = key.get("id")
    if not message_id:
        logger.error(f"Missing message ID in reaction: {_describe(event)}")
        return None

    _, reaction_text = first_present(event, REACTION_TEXT_FIELDS, accept=lambda v: isinstance(v, str))
    if reaction_text is None:
        logger.error(f"Missing reaction text in reaction: {_describe(event)}")
        return None

    timestamp_field, raw_timestamp = first_present(event, REACTION_TIMESTAMP_FIELDS, accept=is_epoch_value)
    seconds = to_epoch_seconds(raw_timestamp)
    if seconds is None:
        logger.error(f"Missing timestamp in reaction: {_describe(event)}")
        return None

    _, participant_jid = first_present(event, REACTION_ACTOR_FIELDS, accept=bool)
    if not participant_jid:
        logger.error(f"Missing participant JID in reaction: {_describe(event)}")
        return None

    return NormalizedReaction(
        message_id=message_id,
        from_jid=participant_jid,
        reaction_text=reaction_text,
        timestamp=format_timestamp(seconds),
    )


def handle_reaction(db: Session, event: Dict[str, Any]) -> IngestResult:
    """Validate and append one reaction; unknown messages are dropped."""
    try:
        reaction = normalize_reaction(event)
        if reaction is None:
            return IngestResult.DROPPED

        if not message_exists(db, reaction.message_id):
            logger.info(f"Message {reaction.message_id} not found in database, skipping reaction")
            return IngestResult.SKIPPED

        insert_reaction(
            db,
            message_id=reaction.message_id,
            from_jid=reaction.from_jid,
            reaction_text=reaction.reaction_text,
            timestamp=reaction.timestamp,
        )
        logger.info(
            f"Reaction saved for message {reaction.message_id}: {reaction.reaction_text} by {reaction.from_jid}"
        )
        return IngestResult.CREATED
    except Exception as e:
        logger.error(f"Error saving reaction: {e}; reaction data: {_describe(event)}", exc_info=True)
        return IngestResult.FAILED


def handle_reaction_update(db: Session, payload: Any) -> List[IngestResult]:
    """Handle a reaction event of any supported shape."""
    return [handle_reaction(db, event) for event in unwrap_reaction_events(payload)]


def map_receipt_status(receipt_type: Optional[str]) -> str:
    return RECEIPT_STATUS.get(receipt_type or "", UNKNOWN_STATUS)


def save_status(
    db: Session,
    message_id: str,
    to_jid: Optional[str],
    status: str,
    timestamp: Optional[str],
    fallback_width: int = DEFAULT_STATUS_FALLBACK_WIDTH,
) -> IngestResult:
    """
    Append a status row, retrying once with ``status[:fallback_width]`` when
    the store rejects the value as too long.
    """
    try:
        insert_status(db, message_id, to_jid, status, timestamp)
        logger.info(f"Saved status for message {message_id}: {status}")
        return IngestResult.CREATED
    except Exception as e:
        if not is_value_too_long(e):
            logger.error(f"Error saving message status: {e}")
            return IngestResult.FAILED
        logger.error(f"Data too long for status column: {status}")

    truncated = status[:fallback_width]
    try:
        insert_status(db, message_id, to_jid, truncated, timestamp)
    except Exception as retry_error:
        logger.error(f"Failed to save even with truncated status: {retry_error}")
        return IngestResult.FAILED

    logger.info(f"Saved truncated status for message {message_id}: {truncated}")
    return IngestResult.CREATED


def handle_status_update(
    db: Session,
    update: Dict[str, Any],
    fallback_width: int = DEFAULT_STATUS_FALLBACK_WIDTH,
) -> IngestResult:
    """Record one delivery/read receipt for an already stored message."""
    try:
        message_id = get_path(update, "key.id")
        if not message_id:
            logger.warning("Missing message ID in receipt, skipping")
            return IngestResult.DROPPED

        if not message_exists(db, message_id):
            logger.info(f"Message {message_id} not found in database, skipping status update")
            return IngestResult.SKIPPED

        status = map_receipt_status(get_path(update, "receipt.type"))
        _, raw_timestamp = first_present(update, STATUS_TIMESTAMP_FIELDS, accept=is_epoch_value)
        timestamp = format_timestamp(raw_timestamp)

        return save_status(
            db,
            message_id=message_id,
            to_jid=get_path(update, "key.remoteJid"),
            status=status,
            timestamp=timestamp,
            fallback_width=fallback_width,
        )
    except Exception as e:
        logger.error(f"Error handling message status update: {e}", exc_info=True)
        return IngestResult.FAILED


def handle_group_read_receipt(db: Session, update: Dict[str, Any]) -> IngestResult:
    """Record a group member's read receipt as a ``read`` status row."""
    try:
        message_id = get_path(update, "key.id")
        if not message_id:
            logger.error(f"Invalid group read receipt: {_describe(update)}")
            return IngestResult.DROPPED

        if not isinstance(update.get("receipt"), dict):
            logger.error(f"Missing receipt in group read receipt: {_describe(update)}")
            return IngestResult.DROPPED

        _, raw_timestamp = first_present(update, GROUP_RECEIPT_TIMESTAMP_FIELDS, accept=is_epoch_value)
        timestamp = format_timestamp(raw_timestamp)
        if timestamp is None:
            logger.error(f"Missing timestamp in group read receipt: {_describe(update)}")
            return IngestResult.DROPPED

        _, user_jid = first_present(update, GROUP_RECEIPT_ACTOR_FIELDS, accept=bool)
        if not user_jid:
            logger.error(f"Missing userJid in group read receipt: {_describe(update)}")
            return IngestResult.DROPPED

        if not message_exists(db, message_id):
            logger.info(f"Message {message_id} not found in database, skipping status update")
            return IngestResult.SKIPPED

        insert_status(db, message_id, user_jid, "read", timestamp)
        logger.info(f"Group read status saved for message {message_id} by {user_jid} at {timestamp}")
        return IngestResult.CREATED
    except Exception as e:
        logger.error(f"Error saving group read receipt: {e}", exc_info=True)
        return IngestResult.FAILED
