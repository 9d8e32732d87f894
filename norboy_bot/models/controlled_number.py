from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from norboy_bot.database import Base


class ControlledNumber(Base):
    __tablename__ = "controlled_numbers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone = Column(String(32), nullable=False, unique=True)
    name = Column(Text)
    reason = Column(Text)
    ia_active = Column(Boolean, nullable=False, default=False)
    source = Column(String(16), nullable=False, default="manual")  # manual, spam
    registered_by = Column(Text)
    updated_by = Column(Text)
    blocked_text = Column(Text)
    consecutive_count = Column(Integer)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
