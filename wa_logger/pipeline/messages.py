"""
Message classification and at-most-once persistence.
"""
import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from wa_logger.core.logging import get_logger
from wa_logger.models.message import Message
from wa_logger.pipeline.media import (
    MEDIA_SPECS,
    MediaRef,
    MediaResolver,
    get_media_info,
    is_media_available,
)
from wa_logger.pipeline.normalize import (
    detect_device,
    format_timestamp,
    now_timestamp,
    to_int,
)
from wa_logger.pipeline.store import IngestResult, insert_message, message_exists

logger = get_logger(__name__)

UNKNOWN_SENDER_NAME = "Unknown"
DEFAULT_ACCOUNT_NAME = "Me"


@dataclass
class ClassifiedContent:
    """What one envelope resolved to before it is written."""
    message_type: str = "unknown"
    text: Optional[str] = None
    media_path: Optional[str] = None
    media_file: Optional[str] = None
    media_caption: Optional[str] = None
    media_mime_type: Optional[str] = None
    media_size: Optional[int] = None
    media_duration: Optional[int] = None
    media_width: Optional[int] = None
    media_height: Optional[int] = None
    context_info: Dict[str, Any] = field(default_factory=dict)

    @property
    def quoted_message_id(self) -> Optional[str]:
        return self.context_info.get("stanzaId") or None

    @property
    def forwarded(self) -> bool:
        if self.context_info.get("isForwarded"):
            return True
        return (to_int(self.context_info.get("forwardingScore")) or 0) > 0


def match_content(content: Dict[str, Any]) -> Tuple[str, Any]:
    """
    Pick the single content branch of a message body.

    Precedence: plain text, extended text, image, video, audio, document,
    sticker, location, contact card. Returns ``("unknown", None)`` when no
    branch matches.
    """
    if content.get("conversation"):
        return "text", content["conversation"]

    extended = content.get("extendedTextMessage")
    if isinstance(extended, dict) and extended.get("text"):
        return "text", extended

    for media_type, spec in MEDIA_SPECS.items():
        if content.get(spec.node):
            return media_type, content[spec.node]

    if content.get("locationMessage"):
        return "location", content["locationMessage"]

    if content.get("contactMessage"):
        return "contact", content["contactMessage"]

    return "unknown", None


async def _derive_media(
    envelope: Dict[str, Any],
    media_type: str,
    resolver: MediaResolver,
    result: ClassifiedContent,
) -> None:
    label = MEDIA_SPECS[media_type].label
    if not is_media_available(envelope, media_type):
        result.text = f"{label} (media not available)"
        return

    info = get_media_info(envelope, media_type)
    outcome = await resolver.resolve(envelope, media_type)

    text = label
    if isinstance(outcome, MediaRef):
        text += f": {outcome.file_name}"
        result.media_path = outcome.relative_path
        result.media_file = outcome.file_path
    else:
        text += " (media not available)"
    if info.caption:
        text += f"\nCaption: {info.caption}"

    result.text = text
    result.media_caption = info.caption
    result.media_mime_type = info.mime_type
    result.media_size = info.file_size
    if result.media_size is None and isinstance(outcome, MediaRef):
        result.media_size = outcome.size
    result.media_duration = info.duration
    result.media_width = info.width
    result.media_height = info.height


async def classify_message(envelope: Dict[str, Any], resolver: MediaResolver) -> ClassifiedContent:
    """
    Resolve the content of one envelope.

    A failure inside a branch is logged and leaves whatever was derived so
    far; it never escapes.
    """
    content = envelope.get("message") or {}
    if not isinstance(content, dict):
        content = {}

    message_type, node = match_content(content)
    result = ClassifiedContent(message_type=message_type)
    if isinstance(node, dict) and isinstance(node.get("contextInfo"), dict):
        result.context_info = node["contextInfo"]

    try:
        if message_type == "text":
            result.text = node if isinstance(node, str) else node.get("text")
        elif message_type in MEDIA_SPECS:
            await _derive_media(envelope, message_type, resolver, result)
        elif message_type == "location":
            latitude = node.get("degreesLatitude")
            longitude = node.get("degreesLongitude")
            if latitude is not None and longitude is not None:
                result.text = f"Location: {latitude}, {longitude}"
        elif message_type == "contact":
            outcome = await resolver.save_contact_card(node)
            if isinstance(outcome, MediaRef):
                result.text = f"Contact: {outcome.file_name}"
                result.media_path = outcome.relative_path
                result.media_file = outcome.file_path
    except Exception as e:
        message_id = (envelope.get("key") or {}).get("id")
        logger.error(f"Error deriving {message_type} content for message {message_id}: {e}", exc_info=True)

    return result


def _sender_name(envelope: Dict[str, Any], from_me: bool, account_name: Optional[str]) -> str:
    if from_me:
        return account_name or DEFAULT_ACCOUNT_NAME
    return envelope.get("pushName") or UNKNOWN_SENDER_NAME


def _discard_media(content: ClassifiedContent, message_id: str) -> None:
    """Remove a file written for a message that ended up not stored."""
    if not content.media_file:
        return
    try:
        Path(content.media_file).unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove unused media file for message {message_id}: {e}")


async def handle_incoming_message(
    db: Session,
    envelope: Dict[str, Any],
    resolver: MediaResolver,
    account_name: Optional[str] = None,
) -> IngestResult:
    """
    Classify one inbound or outbound message envelope and store it once.

    Nothing is written unless a text value was derived. A stored id is never
    overwritten, and store failures are logged rather than raised. Store
    calls run in a worker thread so the event loop keeps serving other work.
    """
    try:
        key = envelope.get("key") or {}
        message_id = key.get("id")
        if not message_id:
            logger.warning("Message envelope without id, dropping")
            return IngestResult.DROPPED

        # Redelivery: skip before any media is fetched
        if await asyncio.to_thread(message_exists, db, message_id):
            logger.info(f"Message {message_id} already exists in database, skipping")
            return IngestResult.DUPLICATE

        from_me = bool(key.get("fromMe"))
        sender = key.get("remoteJid") or "unknown"
        sender_name = _sender_name(envelope, from_me, account_name)
        formatted_time = format_timestamp(envelope.get("messageTimestamp")) or now_timestamp()

        content = await classify_message(envelope, resolver)
        if content.text is None:
            logger.debug(
                "No content derived, message not stored",
                extra={"extra_data": {"message_id": message_id, "message_type": content.message_type}}
            )
            return IngestResult.SKIPPED

        record = Message(
            message_id=message_id,
            sender_name=sender_name,
            sender=sender,
            message=content.text,
            message_type=content.message_type,
            time=formatted_time,
            device=detect_device(message_id),
            media_path=content.media_path,
            media_caption=content.media_caption,
            media_mime_type=content.media_mime_type,
            media_size=content.media_size,
            media_duration=content.media_duration,
            media_width=content.media_width,
            media_height=content.media_height,
            quoted_message_id=content.quoted_message_id,
            forwarded=content.forwarded,
            from_me=from_me,
        )

        try:
            created = await asyncio.to_thread(insert_message, db, record)
        except Exception as e:
            logger.error(f"Failed to save message from {sender}: {e}")
            _discard_media(content, message_id)
            return IngestResult.FAILED

        if not created:
            _discard_media(content, message_id)
            return IngestResult.DUPLICATE

        if content.forwarded:
            logger.info(f"Forwarded message from {sender_name} ({sender}): {content.text}")
        else:
            direction = "sent" if from_me else "received"
            logger.info(
                f"Message {direction} from {sender_name} ({sender}) saved: {content.text}",
                extra={"extra_data": {"message_id": message_id, "message_type": content.message_type}}
            )
        return IngestResult.CREATED

    except Exception as e:
        logger.error(f"Unexpected error handling message: {e}", exc_info=True)
        return IngestResult.FAILED
