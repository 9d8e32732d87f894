from sqlalchemy import Boolean, Column, Integer, String, Text

from norboy_bot.database import Base


class Holiday(Base):
    __tablename__ = "holidays"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(String(10), nullable=False)  # YYYY-MM-DD
    name = Column(Text, nullable=False)
    description = Column(Text)
    recurring = Column(Boolean, nullable=False, default=True)
    active = Column(Boolean, nullable=False, default=True)
