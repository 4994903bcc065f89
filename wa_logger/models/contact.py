"""
Contact database model.
"""
import json
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String, Text

from wa_logger.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Contact(Base):
    """Contact aggregate keyed by jid, upserted from contact snapshots."""

    __tablename__ = "contacts"

    jid = Column(String(255), primary_key=True, nullable=False)
    name = Column(String(255), nullable=True, index=True)
    notify = Column(String(255), nullable=True)
    verified_name = Column(String(255), nullable=True)
    img_url = Column(Text, nullable=True)
    status = Column(Text, nullable=True)
    is_business = Column(Boolean, nullable=False, default=False)
    is_enterprise = Column(Boolean, nullable=False, default=False)
    verified = Column(Boolean, nullable=False, default=False)
    in_phone_book = Column(Boolean, nullable=False, default=False)
    known = Column(Boolean, nullable=False, default=False)
    profile_pic_url = Column(Text, nullable=True)
    last_seen = Column(String(64), nullable=True)
    about = Column(Text, nullable=True)
    short_name = Column(String(255), nullable=True)
    push_name = Column(String(255), nullable=True)
    formatted_name = Column(String(255), nullable=True)
    vname = Column(String(255), nullable=True)
    labels = Column(Text, nullable=False, default="[]")  # compact JSON array
    last_updated = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Contact(jid={self.jid}, name={self.name})>"

    def to_dict(self) -> dict:
        """Convert model to dictionary."""
        return {
            "jid": self.jid,
            "name": self.name,
            "notify": self.notify,
            "verified_name": self.verified_name,
            "img_url": self.img_url,
            "status": self.status,
            "is_business": self.is_business,
            "is_enterprise": self.is_enterprise,
            "verified": self.verified,
            "in_phone_book": self.in_phone_book,
            "known": self.known,
            "profile_pic_url": self.profile_pic_url,
            "last_seen": self.last_seen,
            "about": self.about,
            "short_name": self.short_name,
            "push_name": self.push_name,
            "formatted_name": self.formatted_name,
            "vname": self.vname,
            "labels": json.loads(self.labels or "[]"),
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }
