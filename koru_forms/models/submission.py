from sqlalchemy import Column, String, Boolean, DateTime, JSON, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .base import Base
import uuid

SUBMISSION_STATUSES = ("unread", "read", "archived")


class Submission(Base):
    __tablename__ = "form_submissions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    form_id = Column(String, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False, index=True)
    website_id = Column(String, nullable=False, index=True)
    app_id = Column(String, nullable=True)
    data = Column(JSON, nullable=False, default=dict)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default="unread")  # unread | read | archived
    is_spam = Column(Boolean, nullable=False, default=False)
    mail_log = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    form = relationship("Form", lazy="joined")
