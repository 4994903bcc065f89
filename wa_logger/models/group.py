"""
Group and group participant models.
"""
import json
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from wa_logger.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Group(Base):
    """Group aggregate keyed by group id."""

    __tablename__ = "whatsapp_groups"

    group_id = Column(String(255), primary_key=True, nullable=False)
    group_name = Column(String(255), nullable=True, index=True)
    creation = Column(String(19), nullable=True)
    owner = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    description_id = Column(String(255), nullable=True)
    is_restricted = Column(Boolean, nullable=False, default=False)
    announce = Column(Boolean, nullable=False, default=False)
    ephemeral_duration = Column(Integer, nullable=True)
    ephemeral_setting_timestamp = Column(String(19), nullable=True)
    is_community = Column(Boolean, nullable=False, default=False)
    is_parent_group = Column(Boolean, nullable=False, default=False)
    parent_group_id = Column(String(255), nullable=True)
    linked_parent_groups = Column(Text, nullable=False, default="[]")  # compact JSON array
    participant_count = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Group(group_id={self.group_id}, name={self.group_name})>"

    def to_dict(self) -> dict:
        """Convert model to dictionary."""
        return {
            "group_id": self.group_id,
            "group_name": self.group_name,
            "creation": self.creation,
            "owner": self.owner,
            "description": self.description,
            "description_id": self.description_id,
            "is_restricted": self.is_restricted,
            "announce": self.announce,
            "ephemeral_duration": self.ephemeral_duration,
            "ephemeral_setting_timestamp": self.ephemeral_setting_timestamp,
            "is_community": self.is_community,
            "is_parent_group": self.is_parent_group,
            "parent_group_id": self.parent_group_id,
            "linked_parent_groups": json.loads(self.linked_parent_groups or "[]"),
            "participant_count": self.participant_count,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


class GroupParticipant(Base):
    """Membership row; the whole set for a group is replaced on every snapshot."""

    __tablename__ = "group_participants"

    group_id = Column(String(255), ForeignKey("whatsapp_groups.group_id"), primary_key=True)
    participant_id = Column(String(255), primary_key=True)
    admin_level = Column(String(32), nullable=True)
    jid = Column(String(255), nullable=True)
    joined_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<GroupParticipant(group_id={self.group_id}, participant_id={self.participant_id})>"
