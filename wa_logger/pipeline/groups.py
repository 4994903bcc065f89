"""
Group persistence: upsert group metadata and replace its participant set.
"""
import json
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from wa_logger.core.logging import get_logger
from wa_logger.models.group import Group, GroupParticipant
from wa_logger.pipeline.contacts import contact_jid, ensure_contact
from wa_logger.pipeline.normalize import first_present, format_timestamp, to_int

logger = get_logger(__name__)

GROUP_TEXT_FIELDS = {
    "group_name": ("subject", "group_name"),
    "owner": ("owner",),
    "description": ("desc", "description"),
    "description_id": ("descId",),
    "parent_group_id": ("parentGroupId", "linkedParent"),
}
GROUP_FLAG_FIELDS = {
    "is_restricted": ("restrict",),
    "announce": ("announce",),
    "is_community": ("isCommunity",),
    "is_parent_group": ("isParentGroup",),
}


def build_group_data(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Map a metadata snapshot onto group columns."""
    data: Dict[str, Any] = {"group_id": metadata.get("id") or metadata.get("group_id")}
    for column, names in GROUP_TEXT_FIELDS.items():
        _, data[column] = first_present(metadata, names)
    for column, names in GROUP_FLAG_FIELDS.items():
        _, value = first_present(metadata, names)
        data[column] = bool(value)

    data["creation"] = format_timestamp(metadata.get("creation"))
    data["ephemeral_duration"] = to_int(metadata.get("ephemeralDuration"))
    data["ephemeral_setting_timestamp"] = format_timestamp(metadata.get("ephemeralSettingTimestamp"))
    data["linked_parent_groups"] = json.dumps(
        list(metadata.get("linkedParentGroups") or []), separators=(",", ":"), ensure_ascii=False
    )

    # Left unset when the snapshot says nothing about membership
    size = to_int(metadata.get("size"))
    participants = metadata.get("participants")
    if size is not None:
        data["participant_count"] = size
    elif participants is not None:
        data["participant_count"] = len(participants)
    return data


def replace_participants(db: Session, group_id: str, participants: List[Dict[str, Any]]) -> int:
    """
    Replace the stored participant set of a group with ``participants``.

    Unknown participants get a stub contact first. Participants without a jid
    are skipped; repeated jids are stored once. Caller commits.
    """
    rows = []
    seen = set()
    for participant in participants:
        if not isinstance(participant, dict):
            continue
        jid = contact_jid(participant)
        if not jid:
            logger.warning(f"Participant missing JID: {participant!r}")
            continue
        if jid in seen:
            continue
        seen.add(jid)
        ensure_contact(db, participant)
        rows.append(GroupParticipant(
            group_id=group_id,
            participant_id=jid,
            admin_level=participant.get("admin") or None,
            jid=participant.get("jid") or jid,
        ))

    db.query(GroupParticipant).filter(GroupParticipant.group_id == group_id).delete(synchronize_session="fetch")
    db.add_all(rows)
    return len(rows)


def save_group_info(db: Session, metadata: Dict[str, Any]) -> Optional[Group]:
    """
    Upsert a group and, when the snapshot lists participants, replace its
    participant set, in one transaction.

    Returns None when the snapshot has no group id.
    """
    data = build_group_data(metadata)
    group_id = data["group_id"]
    if not group_id:
        logger.error(f"Group ID is missing: {metadata!r}")
        return None

    try:
        group = db.get(Group, group_id)
        created = group is None
        if created:
            group = Group(group_id=group_id)
            db.add(group)
        for column, value in data.items():
            setattr(group, column, value)
        db.flush()

        participants = metadata.get("participants")
        saved = None
        if participants is not None:
            saved = replace_participants(db, group_id, participants)
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Error saving group: {group_id}", exc_info=True)
        raise

    logger.info(
        f"{'Added new' if created else 'Updated'} group: {group_id}",
        extra={"extra_data": {"group_id": group_id, "participants_saved": saved}}
    )
    return group


def count_participants(db: Session, group_id: str) -> int:
    return db.query(func.count(GroupParticipant.participant_id)).filter(
        GroupParticipant.group_id == group_id
    ).scalar() or 0
