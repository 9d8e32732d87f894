from sqlalchemy import JSON, Column, DateTime, Index, String, Text

from norboy_bot.database import Base


class MessageLog(Base):
    __tablename__ = "message_log"

    # Transport message id for inbound records, generated id otherwise.
    id = Column(String(128), primary_key=True)
    participant_id = Column(String(128), nullable=False)
    direction = Column(String(8), nullable=False)  # in, out
    sender = Column(String(16), nullable=False)  # user, bot, advisor, system
    message_type = Column(String(32), nullable=False, default="text")
    content = Column(Text, nullable=False, default="")
    message_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_message_log_participant_created", "participant_id", "created_at"),)
