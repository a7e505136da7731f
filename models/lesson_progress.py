# backend/models/lesson_progress.py
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, UniqueConstraint
from db import Base

class LessonProgress(Base):
    __tablename__ = "lesson_progress"
    __table_args__ = (UniqueConstraint("user_id", "lesson_id", name="uq_lesson_progress_user_lesson"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    lesson_id = Column(Integer, ForeignKey("lessons.id", ondelete="CASCADE"), index=True, nullable=False)
    status = Column(String, default="not_started")
    xp_earned = Column(Integer, default=0)
    time_spent = Column(Integer, default=0)
    completed_at = Column(DateTime, nullable=True)
