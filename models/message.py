from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, func
from sqlalchemy import JSON

from database import Base


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(64), primary_key=True, index=True)
    application_id = Column(String(64), ForeignKey("driver_applications.id"), nullable=False, index=True)
    sender_id = Column(String(64), nullable=False)
    sender_name = Column(String(256), nullable=False)
    sender_type = Column(String(16), nullable=False)  # applicant | staff
    message = Column(Text, nullable=False)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    is_read = Column(Boolean, nullable=False, default=False)


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(String(64), primary_key=True, index=True)
    application_id = Column(String(64), ForeignKey("driver_applications.id"), nullable=False, index=True)
    applicant_name = Column(String(256), nullable=True)
    applicant_email = Column(String(256), nullable=True)
    activity_type = Column(String(32), nullable=False, index=True)
    actor = Column(String(16), nullable=False)  # applicant | staff | system
    actor_id = Column(String(64), nullable=True)
    actor_name = Column(String(256), nullable=True)
    details = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    extra = Column("metadata", JSON, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    is_read = Column(Boolean, nullable=False, default=False)
