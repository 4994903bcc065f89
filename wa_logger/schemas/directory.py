"""
Pydantic schemas for contacts and groups.
"""
from typing import List, Optional

from pydantic import BaseModel


class ContactResponse(BaseModel):
    jid: str
    name: Optional[str] = None
    notify: Optional[str] = None
    verified_name: Optional[str] = None
    img_url: Optional[str] = None
    status: Optional[str] = None
    is_business: bool = False
    is_enterprise: bool = False
    verified: bool = False
    in_phone_book: bool = False
    known: bool = False
    profile_pic_url: Optional[str] = None
    last_seen: Optional[str] = None
    about: Optional[str] = None
    short_name: Optional[str] = None
    push_name: Optional[str] = None
    formatted_name: Optional[str] = None
    vname: Optional[str] = None
    labels: List[str] = []
    last_updated: Optional[str] = None


class GroupResponse(BaseModel):
    group_id: str
    group_name: Optional[str] = None
    creation: Optional[str] = None
    owner: Optional[str] = None
    description: Optional[str] = None
    description_id: Optional[str] = None
    is_restricted: bool = False
    announce: bool = False
    ephemeral_duration: Optional[int] = None
    ephemeral_setting_timestamp: Optional[str] = None
    is_community: bool = False
    is_parent_group: bool = False
    parent_group_id: Optional[str] = None
    linked_parent_groups: list = []
    participant_count: int = 0
    last_updated: Optional[str] = None


class ParticipantResponse(BaseModel):
    group_id: str
    participant_id: str
    admin_level: Optional[str] = None
    jid: Optional[str] = None
    joined_at: Optional[str] = None
    name: Optional[str] = None
    img_url: Optional[str] = None
