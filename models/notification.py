from sqlalchemy import Column, DateTime, ForeignKey, String, Text, func
from sqlalchemy import JSON

from database import Base


class PushToken(Base):
    __tablename__ = "push_tokens"

    account_id = Column(String(64), ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True)
    token = Column(String(512), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class ScheduledNotification(Base):
    __tablename__ = "scheduled_notifications"

    id = Column(String(64), primary_key=True, index=True)
    recipients = Column(JSON, nullable=False)
    title = Column(String(256), nullable=False)
    message = Column(Text, nullable=False)
    scheduled_for = Column(DateTime(timezone=True), nullable=False, index=True)
    status = Column(String(16), nullable=False, default="pending", index=True)  # pending | sent | failed
    created_by = Column(String(64), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
