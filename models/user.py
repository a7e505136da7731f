# backend/models/user.py
from sqlalchemy import Column, String, Integer, DateTime, Boolean, func
from db import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    appwrite_id = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, nullable=False)
    username = Column(String, nullable=True)
    full_name = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
