"""
Reaction and delivery-status models. Both tables are append-only.
"""
from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String

from wa_logger.core.database import Base

STATUS_MAX_LENGTH = 20
STATUS_LENGTH_CHECK = "ck_message_status_status_length"


class Reaction(Base):
    """A reaction (or a removal, as empty text) on a stored message."""

    __tablename__ = "message_reactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    message_id = Column(String(255), ForeignKey("messages.message_id"), nullable=False, index=True)
    from_jid = Column(String(255), nullable=False)
    reaction_text = Column(String(64), nullable=False, default="")
    timestamp = Column(String(19), nullable=True)

    def __repr__(self) -> str:
        return f"<Reaction(message_id={self.message_id}, from_jid={self.from_jid}, text={self.reaction_text!r})>"

    def to_dict(self) -> dict:
        return {
            "message_id": self.message_id,
            "from_jid": self.from_jid,
            "reaction_text": self.reaction_text,
            "timestamp": self.timestamp,
        }


class MessageStatus(Base):
    """One receipt in a message's delivery lifecycle."""

    __tablename__ = "message_status"

    id = Column(Integer, primary_key=True, autoincrement=True)
    message_id = Column(String(255), ForeignKey("messages.message_id"), nullable=False, index=True)
    to_jid = Column(String(255), nullable=True)
    status = Column(String(STATUS_MAX_LENGTH), nullable=False)
    timestamp = Column(String(19), nullable=True)

    # SQLite ignores VARCHAR widths, so the width is also a named CHECK
    __table_args__ = (
        CheckConstraint(f"length(status) <= {STATUS_MAX_LENGTH}", name=STATUS_LENGTH_CHECK),
    )

    def __repr__(self) -> str:
        return f"<MessageStatus(message_id={self.message_id}, status={self.status})>"

    def to_dict(self) -> dict:
        return {
            "message_id": self.message_id,
            "to_jid": self.to_jid,
            "status": self.status,
            "timestamp": self.timestamp,
        }
