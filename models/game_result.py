# backend/models/game_result.py
from sqlalchemy import Column, String, Integer, DateTime, JSON, ForeignKey
from datetime import datetime
from db import Base

class GameResult(Base):
    __tablename__ = "game_results"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    game_type = Column(String, index=True, nullable=False)
    score = Column(Integer, nullable=False)
    max_score = Column(Integer, nullable=False)
    time_spent = Column(Integer, default=0)  # seconds
    xp_awarded = Column(Integer, default=0)
    game_data = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
