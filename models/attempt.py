# backend/models/attempt.py
from sqlalchemy import Column, String, Integer, Text, DateTime, Boolean, JSON, ForeignKey
from datetime import datetime
from db import Base

class Attempt(Base):
    __tablename__ = "attempts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    challenge_id = Column(Integer, ForeignKey("challenges.id", ondelete="CASCADE"), index=True, nullable=False)
    submitted_code = Column(Text, nullable=False)
    lint_report = Column(JSON, default=list)
    test_results = Column(JSON, default=list)
    score = Column(Integer, default=0)
    max_score = Column(Integer, default=100)
    passed = Column(Boolean, default=False)
    xp_awarded = Column(Integer, default=0)
    execution_time_ms = Column(Integer, nullable=True)
    memory_usage_kb = Column(Integer, nullable=True)
    status = Column(String, default="completed")
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
