"""
Routes named transport events to the ingestion handlers.

Every handler is isolated: one bad event is logged and counted, never raised
to the caller. Store work runs in worker threads, one session per unit of work.
"""
import asyncio
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from wa_logger.core.logging import get_logger
from wa_logger.pipeline.contacts import handle_contacts_update
from wa_logger.pipeline.groups import count_participants, save_group_info
from wa_logger.pipeline.media import MediaResolver
from wa_logger.pipeline.messages import handle_incoming_message
from wa_logger.pipeline.metadata_queue import Continuation, GroupMetadataQueue
from wa_logger.pipeline.normalize import first_present, get_path
from wa_logger.pipeline.receipts import (
    DEFAULT_STATUS_FALLBACK_WIDTH,
    GROUP_RECEIPT_ACTOR_FIELDS,
    handle_group_read_receipt,
    handle_reaction_update,
    handle_status_update,
)
from wa_logger.pipeline.store import IngestResult

logger = get_logger(__name__)

PROCESSED_UPSERT_TYPES = ("notify", "append")
GROUP_JID_SUFFIX = "@g.us"

ResultHook = Callable[[str, IngestResult], None]


def _as_list(payload: Any) -> List[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        return [payload]
    return []


def is_group_read_receipt(update: Dict[str, Any]) -> bool:
    """Group chat receipt that names the reader and carries a read time."""
    remote_jid = get_path(update, "key.remoteJid") or ""
    if not remote_jid.endswith(GROUP_JID_SUFFIX):
        return False
    _, actor = first_present(update, GROUP_RECEIPT_ACTOR_FIELDS, accept=bool)
    return bool(actor) and get_path(update, "receipt.readTimestamp") is not None


class EventDispatcher:
    """Owns the pipeline collaborators and maps event names to handlers."""

    EVENT_HANDLERS = {
        "messages.upsert": "on_messages_upsert",
        "messages.reaction": "on_messages_reaction",
        "message-receipt.update": "on_receipt_update",
        "contacts.update": "on_contacts_update",
        "contacts.upsert": "on_contacts_update",
        "groups.update": "on_groups_update",
        "groups.upsert": "on_groups_update",
        "group-participants.update": "on_group_participants_update",
    }

    def __init__(
        self,
        session_factory: Callable[[], Session],
        resolver: MediaResolver,
        metadata_queue: GroupMetadataQueue,
        account_name: Optional[str] = None,
        status_fallback_width: int = DEFAULT_STATUS_FALLBACK_WIDTH,
        on_result: Optional[ResultHook] = None,
    ):
        self.session_factory = session_factory
        self.resolver = resolver
        self.metadata_queue = metadata_queue
        self.account_name = account_name
        self.status_fallback_width = status_fallback_width
        self.on_result = on_result

    def _record(self, event_name: str, results: List[IngestResult]) -> None:
        if self.on_result is None:
            return
        for result in results:
            self.on_result(event_name, result)

    async def dispatch(self, event_name: str, payload: Any) -> int:
        """
        Handle one named event.

        Returns:
            Number of entries handled; 0 for unknown events or a failed handler.
        """
        handler_name = self.EVENT_HANDLERS.get(event_name)
        if handler_name is None:
            logger.debug(f"Ignoring unsupported event: {event_name}")
            return 0

        try:
            results = await getattr(self, handler_name)(payload)
        except Exception as e:
            logger.error(f"Error handling {event_name} event: {e}", exc_info=True)
            self._record(event_name, [IngestResult.FAILED])
            return 0

        self._record(event_name, results)
        return len(results)

    async def on_messages_upsert(self, payload: Dict[str, Any]) -> List[IngestResult]:
        batch_type = payload.get("type")
        messages = payload.get("messages") or []
        logger.info(f"Received messages.upsert event: {batch_type}, {len(messages)} messages")
        if batch_type not in PROCESSED_UPSERT_TYPES:
            logger.info(f"Ignoring message batch type: {batch_type}")
            return []

        return list(await asyncio.gather(*(self._handle_message(message) for message in messages)))

    async def _handle_message(self, envelope: Any) -> IngestResult:
        if not isinstance(envelope, dict):
            logger.warning(f"Skipping non-object message: {envelope!r}")
            return IngestResult.DROPPED
        with self.session_factory() as db:
            return await handle_incoming_message(db, envelope, self.resolver, self.account_name)

    def _in_session(self, handler: Callable[..., Any], *args: Any) -> Any:
        with self.session_factory() as db:
            return handler(db, *args)

    async def on_messages_reaction(self, payload: Any) -> List[IngestResult]:
        return await asyncio.to_thread(self._in_session, handle_reaction_update, payload)

    async def on_receipt_update(self, payload: Any) -> List[IngestResult]:
        updates = _as_list(payload)
        logger.info(f"Received message-receipt.update event: {len(updates)} updates")
        return await asyncio.to_thread(self._in_session, self._save_receipts, updates)

    def _save_receipts(self, db: Session, updates: List[Any]) -> List[IngestResult]:
        results = []
        for update in updates:
            if not isinstance(update, dict):
                results.append(IngestResult.DROPPED)
            elif is_group_read_receipt(update):
                results.append(handle_group_read_receipt(db, update))
            else:
                results.append(handle_status_update(db, update, self.status_fallback_width))
        return results

    async def on_contacts_update(self, payload: Any) -> List[IngestResult]:
        contacts = _as_list(payload)
        logger.info(f"Received contacts event: {len(contacts)} contacts")
        return await asyncio.to_thread(self._in_session, handle_contacts_update, contacts)

    async def on_groups_update(self, payload: Any) -> List[IngestResult]:
        groups = _as_list(payload)
        logger.info(f"Received groups event: {len(groups)} groups")
        results = []
        for group in groups:
            group_id = group.get("id") if isinstance(group, dict) else None
            if not group_id:
                logger.warning(f"Group missing ID, skipping: {group!r}")
                results.append(IngestResult.DROPPED)
                continue
            self.metadata_queue.enqueue(group_id, self.group_continuation(group_id))
            results.append(IngestResult.QUEUED)
        return results

    async def on_group_participants_update(self, payload: Dict[str, Any]) -> List[IngestResult]:
        group_id = payload.get("id")
        logger.info(
            "Received group-participants.update event",
            extra={"extra_data": {
                "group_id": group_id,
                "action": payload.get("action"),
                "participants": payload.get("participants"),
            }}
        )
        if not group_id:
            logger.warning("Participant update without group id, skipping")
            return [IngestResult.DROPPED]
        self.metadata_queue.enqueue(group_id, self.group_continuation(group_id, report_participants=True))
        return [IngestResult.QUEUED]

    def group_continuation(self, group_id: str, report_participants: bool = False) -> Continuation:
        """What to do with the fetched metadata of ``group_id``."""

        async def persist(metadata: Optional[Dict[str, Any]]) -> None:
            if not metadata:
                logger.info(f"Skipping group {group_id} due to metadata fetch failure")
                self._record("groups.metadata", [IngestResult.SKIPPED])
                return
            if not metadata.get("id"):
                logger.warning(f"Group metadata missing ID, skipping: {group_id}")
                self._record("groups.metadata", [IngestResult.DROPPED])
                return

            try:
                count = await asyncio.to_thread(self._in_session, self._save_group, metadata, report_participants)
            except Exception as e:
                logger.error(f"Error saving group: {group_id}: {e}")
                self._record("groups.metadata", [IngestResult.FAILED])
                return
            if count is not None:
                logger.info(f"Group {group_id} now has {count} participants")

            self._record("groups.metadata", [IngestResult.CREATED])

        return persist

    @staticmethod
    def _save_group(db: Session, metadata: Dict[str, Any], report_participants: bool) -> Optional[int]:
        save_group_info(db, metadata)
        if report_participants:
            return count_participants(db, metadata["id"])
        return None
