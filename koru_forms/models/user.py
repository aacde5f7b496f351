from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.sql import func
from .base import Base
import uuid


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    hashed_password = Column(String, nullable=True)  # local / mock modes only
    role = Column(String, nullable=False, default="user")  # local only, never copied from Koru
    koru_role = Column(String, nullable=True)
    koru_id = Column(String, nullable=True)
    koru_token = Column(String, nullable=True)
    websites = Column(JSON, nullable=False, default=list)  # cached grant from Koru Suite
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
