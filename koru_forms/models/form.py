from sqlalchemy import Column, String, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from .base import Base
import uuid

FORM_STATUSES = ("draft", "active", "inactive")


class Form(Base):
    __tablename__ = "forms"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    form_id = Column(String, unique=True, nullable=False, index=True)  # external id, e.g. "koru-form-123"
    title = Column(String(200), nullable=False)
    website_id = Column(String, nullable=True, index=True)
    status = Column(String(20), nullable=False, default="draft")  # draft | active | inactive
    is_active = Column(Boolean, nullable=False, default=True, index=True)  # owned by reconciliation
    fields_config = Column(JSON, nullable=False, default=list)
    layout_settings = Column(JSON, nullable=False, default=dict)
    email_settings = Column(JSON, nullable=False, default=dict)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
