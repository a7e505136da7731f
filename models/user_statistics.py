# backend/models/user_statistics.py

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, func
from db import Base

class UserStatistics(Base):
    __tablename__ = "user_statistics"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True)
    total_xp = Column(Integer, nullable=False, default=0, server_default="0")
    level = Column(Integer, nullable=False, default=1, server_default="1")
    level_title = Column(String, nullable=False, default="Beginner", server_default="Beginner")
    challenges_completed = Column(Integer, nullable=False, default=0, server_default="0")
    games_played = Column(Integer, nullable=False, default=0, server_default="0")
    lessons_completed = Column(Integer, nullable=False, default=0, server_default="0")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
