# backend/models/curriculum.py
from sqlalchemy import Column, String, Integer, Text, Boolean, ForeignKey
from db import Base

class Module(Base):
    __tablename__ = "modules"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String, unique=True, index=True, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text)
    color = Column(String, nullable=True)
    order_index = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)


class Lesson(Base):
    __tablename__ = "lessons"

    id = Column(Integer, primary_key=True, index=True)
    module_id = Column(Integer, ForeignKey("modules.id", ondelete="CASCADE"), index=True, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text)
    content_md = Column(Text)
    starter_code = Column(Text)
    difficulty = Column(String, default="beginner")
    estimated_duration = Column(Integer, default=15)  # minutes
    order_index = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)


class Challenge(Base):
    __tablename__ = "challenges"

    id = Column(Integer, primary_key=True, index=True)
    lesson_id = Column(Integer, ForeignKey("lessons.id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text)
    difficulty = Column(String, default="easy")
    points = Column(Integer, default=10)
    time_limit = Column(Integer, nullable=True)  # seconds
    is_active = Column(Boolean, default=True)
