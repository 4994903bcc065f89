"""
Contact and group directory endpoints.
"""
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from wa_logger.core.database import get_db
from wa_logger.core.logging import get_logger
from wa_logger.models.contact import Contact
from wa_logger.models.group import Group, GroupParticipant
from wa_logger.schemas.directory import ContactResponse, GroupResponse, ParticipantResponse

logger = get_logger(__name__)

router = APIRouter(tags=["Directory"])


@router.get("/contacts", response_model=List[ContactResponse], summary="List contacts")
def list_contacts(
    db: Annotated[Session, Depends(get_db)],
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
    q: Annotated[Optional[str], Query(description="Search name, notify or jid")] = None,
) -> List[ContactResponse]:
    query = db.query(Contact)
    if q:
        pattern = f"%{q}%"
        query = query.filter(
            Contact.name.ilike(pattern) | Contact.notify.ilike(pattern) | Contact.jid.ilike(pattern)
        )
    contacts = query.order_by(Contact.jid.asc()).offset(offset).limit(limit).all()
    return [ContactResponse(**contact.to_dict()) for contact in contacts]


@router.get(
    "/contacts/{jid}",
    response_model=ContactResponse,
    responses={404: {"description": "Contact not found"}},
    summary="Get one contact",
)
def get_contact(jid: str, db: Annotated[Session, Depends(get_db)]) -> ContactResponse:
    contact = db.get(Contact, jid)
    if contact is None:
        raise HTTPException(status_code=404, detail="Contact not found")
    return ContactResponse(**contact.to_dict())


@router.get("/groups", response_model=List[GroupResponse], summary="List groups")
def list_groups(
    db: Annotated[Session, Depends(get_db)],
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> List[GroupResponse]:
    groups = db.query(Group).order_by(Group.group_id.asc()).offset(offset).limit(limit).all()
    return [GroupResponse(**group.to_dict()) for group in groups]


@router.get(
    "/groups/{group_id}",
    response_model=GroupResponse,
    responses={404: {"description": "Group not found"}},
    summary="Get one group",
)
def get_group(group_id: str, db: Annotated[Session, Depends(get_db)]) -> GroupResponse:
    group = db.get(Group, group_id)
    if group is None:
        raise HTTPException(status_code=404, detail="Group not found")
    return GroupResponse(**group.to_dict())


@router.get(
    "/groups/{group_id}/participants",
    response_model=List[ParticipantResponse],
    responses={404: {"description": "Group not found"}},
    summary="List group participants",
    description="Current membership of a group, joined with the contact directory."
)
def list_participants(
    group_id: str,
    db: Annotated[Session, Depends(get_db)],
) -> List[ParticipantResponse]:
    if db.get(Group, group_id) is None:
        raise HTTPException(status_code=404, detail="Group not found")

    rows = (
        db.query(GroupParticipant, Contact)
        .outerjoin(Contact, Contact.jid == GroupParticipant.participant_id)
        .filter(GroupParticipant.group_id == group_id)
        .order_by(GroupParticipant.participant_id.asc())
        .all()
    )

    return [
        ParticipantResponse(
            group_id=participant.group_id,
            participant_id=participant.participant_id,
            admin_level=participant.admin_level,
            jid=participant.jid,
            joined_at=participant.joined_at.isoformat() if participant.joined_at else None,
            name=(contact.name or contact.notify) if contact else None,
            img_url=contact.img_url if contact else None,
        )
        for participant, contact in rows
    ]
