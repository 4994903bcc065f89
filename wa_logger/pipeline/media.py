"""
Media resolution: turns a media message into a stored file reference, or into
an ``unavailable`` outcome that never blocks persistence of the message.
"""
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import aiofiles

from wa_logger.core.logging import get_logger
from wa_logger.pipeline.normalize import to_int
from wa_logger.transport.base import Transport

logger = get_logger(__name__)

# Any one of these means the transport can still fetch the blob
MEDIA_KEY_FIELDS = ("mediaKey", "fileSha256", "url")

BENIGN_DOWNLOAD_ERRORS = {
    "empty media key": "media key empty (possibly expired or deleted)",
    "404": "media not found on server",
    "not found": "media not found on server",
}


@dataclass(frozen=True)
class MediaSpec:
    node: str
    label: str
    extension: str


MEDIA_SPECS: Dict[str, MediaSpec] = {
    "image": MediaSpec(node="imageMessage", label="Image", extension="jpg"),
    "video": MediaSpec(node="videoMessage", label="Video", extension="mp4"),
    "audio": MediaSpec(node="audioMessage", label="Audio", extension="opus"),
    "document": MediaSpec(node="documentMessage", label="Document", extension="bin"),
    "sticker": MediaSpec(node="stickerMessage", label="Sticker", extension="webp"),
}


@dataclass(frozen=True)
class MediaRef:
    """A materialized attachment."""
    file_name: str
    file_path: str
    relative_path: str
    size: int


@dataclass(frozen=True)
class MediaUnavailable:
    """Attachment could not be materialized; ``reason`` is for logs only."""
    reason: str


MediaResult = Union[MediaRef, MediaUnavailable]


@dataclass
class MediaInfo:
    """Descriptive fields of a media node, independent of the download."""
    media_type: str
    extension: str
    caption: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None
    duration: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    file_name: Optional[str] = None


def media_node(envelope: Dict[str, Any], media_type: str) -> Optional[Dict[str, Any]]:
    spec = MEDIA_SPECS.get(media_type)
    content = envelope.get("message") or {}
    if spec is None or not isinstance(content, dict):
        return None
    node = content.get(spec.node)
    return node if isinstance(node, dict) else None


def is_media_available(envelope: Dict[str, Any], media_type: str) -> bool:
    """True if the media node still carries a key, hash or URL."""
    node = media_node(envelope, media_type)
    if node is None:
        return False
    return any(node.get(field) for field in MEDIA_KEY_FIELDS)


def get_media_info(envelope: Dict[str, Any], media_type: str) -> Optional[MediaInfo]:
    """Read caption, mime type and dimensions from a media node."""
    node = media_node(envelope, media_type)
    if node is None:
        return None

    spec = MEDIA_SPECS[media_type]
    info = MediaInfo(
        media_type=media_type,
        extension=spec.extension,
        mime_type=node.get("mimetype"),
    )
    if media_type in ("image", "video"):
        info.caption = node.get("caption") or None
    if media_type == "image":
        info.width = to_int(node.get("width"))
        info.height = to_int(node.get("height"))
    if media_type in ("video", "audio"):
        info.duration = to_int(node.get("seconds"))
    if media_type == "document":
        mime_parts = (node.get("mimetype") or "").split("/")
        if len(mime_parts) > 1 and mime_parts[1]:
            info.extension = mime_parts[1]
        info.file_name = node.get("fileName") or "document"
        info.file_size = to_int(node.get("fileLength"))
    return info


def _classify_download_error(error: Exception) -> Optional[str]:
    text = str(error).lower()
    for marker, reason in BENIGN_DOWNLOAD_ERRORS.items():
        if marker in text:
            return reason
    return None


class MediaResolver:
    """Downloads attachments through the transport into ``media_dir/<type>/``."""

    def __init__(self, transport: Optional[Transport], media_dir: str):
        self.transport = transport
        self.media_dir = Path(media_dir)

    def _target(self, media_type: str, extension: str) -> tuple:
        directory = self.media_dir / media_type
        directory.mkdir(parents=True, exist_ok=True)
        file_name = f"{media_type}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}.{extension}"
        relative_path = f"{self.media_dir.name}/{media_type}/{file_name}"
        return file_name, directory / file_name, relative_path

    async def resolve(self, envelope: Dict[str, Any], media_type: str) -> MediaResult:
        """
        Materialize the attachment of ``envelope``.

        Never raises: missing keys, missing transport and failed downloads all
        come back as MediaUnavailable.
        """
        message_id = (envelope.get("key") or {}).get("id")
        info = get_media_info(envelope, media_type)
        if info is None:
            logger.error(f"Missing {media_type} content in message {message_id}")
            return MediaUnavailable(f"no {media_type} content")

        if not is_media_available(envelope, media_type):
            logger.info(
                f"Media keys not available for message {message_id} (possibly expired or forwarded without keys)"
            )
            return MediaUnavailable("media keys not available")

        if self.transport is None:
            logger.warning(f"No transport to download media for message {message_id}")
            return MediaUnavailable("transport not connected")

        file_path = None
        try:
            content = await self.transport.download_media(envelope)
            file_name, file_path, relative_path = self._target(media_type, info.extension)
            size = 0
            async with aiofiles.open(file_path, "wb") as f:
                if isinstance(content, (bytes, bytearray)):
                    await f.write(content)
                    size = len(content)
                else:
                    async for chunk in content:
                        await f.write(chunk)
                        size += len(chunk)
        except Exception as e:
            if file_path is not None:
                file_path.unlink(missing_ok=True)
            reason = _classify_download_error(e)
            if reason:
                logger.info(f"Media unavailable for message {message_id}: {reason}")
                return MediaUnavailable(reason)
            logger.error(f"Error saving media for message {message_id}: {e}", exc_info=True)
            return MediaUnavailable(f"download failed: {e}")

        logger.debug(
            "Media saved",
            extra={"extra_data": {"message_id": message_id, "path": relative_path, "size": size}},
        )
        return MediaRef(
            file_name=file_name,
            file_path=str(file_path),
            relative_path=relative_path,
            size=size,
        )

    async def save_contact_card(self, contact_message: Dict[str, Any]) -> MediaResult:
        """Write an embedded vCard verbatim; no network involved."""
        try:
            file_name, file_path, relative_path = self._target("contact", "vcf")
            vcard = contact_message.get("vcard") or ""
            async with aiofiles.open(file_path, "w", encoding="utf-8") as f:
                await f.write(vcard)
        except Exception as e:
            logger.error(f"Error saving contact vCard: {e}", exc_info=True)
            return MediaUnavailable(f"vcard write failed: {e}")

        return MediaRef(
            file_name=file_name,
            file_path=str(file_path),
            relative_path=relative_path,
            size=len(vcard.encode("utf-8")),
        )
