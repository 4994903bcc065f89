"""
Contact persistence: upsert contact snapshots keyed by jid.
"""
import json
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from wa_logger.core.logging import get_logger
from wa_logger.models.contact import Contact
from wa_logger.pipeline.normalize import first_present
from wa_logger.pipeline.store import IngestResult

logger = get_logger(__name__)

# column -> snapshot field names, first present wins
CONTACT_FIELDS = {
    "name": ("name",),
    "notify": ("notify",),
    "verified_name": ("verifiedName",),
    "img_url": ("imgUrl",),
    "status": ("status",),
    "is_business": ("isBusiness", "business"),
    "is_enterprise": ("isEnterprise",),
    "verified": ("verified",),
    "in_phone_book": ("inPhoneBook",),
    "known": ("known",),
    "profile_pic_url": ("profilePicUrl",),
    "last_seen": ("lastSeen",),
    "about": ("about",),
    "short_name": ("shortName",),
    "push_name": ("pushName",),
    "formatted_name": ("formattedName",),
    "vname": ("vname",),
}
BOOLEAN_FIELDS = {"is_business", "is_enterprise", "verified", "in_phone_book", "known"}


def serialize_labels(labels: Optional[Iterable[Any]]) -> str:
    """Compact JSON array, order preserved."""
    return json.dumps(list(labels or []), separators=(",", ":"), ensure_ascii=False)


def contact_jid(snapshot: Dict[str, Any]) -> Optional[str]:
    return snapshot.get("id") or snapshot.get("jid")


def _apply_snapshot(contact: Contact, snapshot: Dict[str, Any]) -> None:
    for column, names in CONTACT_FIELDS.items():
        _, value = first_present(snapshot, names)
        if value is None:
            continue
        if column in BOOLEAN_FIELDS:
            value = bool(value)
        elif not isinstance(value, str):
            value = str(value)
        setattr(contact, column, value)
    if snapshot.get("labels") is not None:
        contact.labels = serialize_labels(snapshot["labels"])


def save_contact_info(db: Session, snapshot: Dict[str, Any], commit: bool = True) -> Contact:
    """
    Insert or update a contact from a transport snapshot.

    Only fields present in the snapshot are written, so partial updates do not
    erase what is already known.

    Raises:
        ValueError: the snapshot has no jid.
    """
    jid = contact_jid(snapshot)
    if not jid:
        raise ValueError("contact snapshot has no jid")

    contact = db.get(Contact, jid)
    created = contact is None
    if created:
        contact = Contact(jid=jid, labels="[]")
        db.add(contact)
    _apply_snapshot(contact, snapshot)

    if commit:
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise

    if created:
        logger.info(f"Added new contact: {jid}")
    else:
        logger.info(f"Updated contact: {jid}")
    return contact


def ensure_contact(db: Session, participant: Dict[str, Any]) -> Optional[Contact]:
    """Create a minimal contact row for an unknown jid; caller commits."""
    jid = contact_jid(participant)
    if not jid:
        return None
    contact = db.get(Contact, jid)
    if contact is not None:
        return contact

    logger.info(f"Creating minimal contact record for: {jid}")
    stub = dict(participant)
    stub.setdefault("name", participant.get("notify"))
    return save_contact_info(db, stub, commit=False)


def handle_contacts_update(db: Session, snapshots: List[Dict[str, Any]]) -> List[IngestResult]:
    """Upsert each contact of a contacts event independently."""
    results = []
    for snapshot in snapshots or []:
        if not isinstance(snapshot, dict) or not contact_jid(snapshot):
            logger.warning(f"Contact update without jid, skipping: {snapshot!r}")
            results.append(IngestResult.DROPPED)
            continue
        try:
            save_contact_info(db, snapshot)
            results.append(IngestResult.CREATED)
        except Exception as e:
            logger.error(f"Error saving contact: {contact_jid(snapshot)}: {e}", exc_info=True)
            results.append(IngestResult.FAILED)
    return results
