"""
Message database model.
"""
from sqlalchemy import Boolean, Column, Index, Integer, String, Text

from wa_logger.core.database import Base


class Message(Base):
    """One observed message; written once on first observation."""

    __tablename__ = "messages"

    # Transport-assigned id, unique for at-most-once insert
    message_id = Column(String(255), primary_key=True, nullable=False)

    sender_name = Column(String(255), nullable=True)
    sender = Column(String(255), nullable=False, index=True)  # remote jid
    message = Column(Text, nullable=True)
    message_type = Column(String(20), nullable=False, default="unknown", index=True)
    device = Column(String(20), nullable=False, default="Unknown")

    # Canonical "YYYY-MM-DD HH:MM:SS" UTC
    time = Column(String(19), nullable=True, index=True)

    media_path = Column(String(512), nullable=True)
    media_caption = Column(Text, nullable=True)
    media_mime_type = Column(String(255), nullable=True)
    media_size = Column(Integer, nullable=True)
    media_duration = Column(Integer, nullable=True)
    media_width = Column(Integer, nullable=True)
    media_height = Column(Integer, nullable=True)

    # Not a foreign key: the quoted message may never have been seen
    quoted_message_id = Column(String(255), nullable=True)
    forwarded = Column(Boolean, nullable=False, default=False)
    from_me = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_messages_time_message_id", "time", "message_id"),
    )

    def __repr__(self) -> str:
        return f"<Message(message_id={self.message_id}, sender={self.sender}, type={self.message_type})>"

    def to_dict(self) -> dict:
        """Convert model to dictionary."""
        return {
            "message_id": self.message_id,
            "sender_name": self.sender_name,
            "sender": self.sender,
            "text": self.message,
            "message_type": self.message_type,
            "device": self.device,
            "time": self.time,
            "media_path": self.media_path,
            "media_caption": self.media_caption,
            "media_mime_type": self.media_mime_type,
            "media_size": self.media_size,
            "media_duration": self.media_duration,
            "media_width": self.media_width,
            "media_height": self.media_height,
            "quoted_message_id": self.quoted_message_id,
            "forwarded": self.forwarded,
            "from_me": self.from_me,
        }
