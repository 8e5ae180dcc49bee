from sqlalchemy import Boolean, Column, DateTime, Integer, String, func
from sqlalchemy import JSON

from database import Base


class DriverApplication(Base):
    __tablename__ = "driver_applications"

    # Same key as the owning account
    id = Column(String(64), primary_key=True, index=True)
    first_name = Column(String(128), nullable=False, default="")
    last_name = Column(String(128), nullable=False, default="")
    email = Column(String(256), nullable=False, default="", index=True)
    phone = Column(String(32), nullable=False, default="")
    area = Column(String(128), nullable=False, default="")
    is_licensed_driver = Column(Boolean, nullable=True)
    has_own_vehicle = Column(Boolean, nullable=True)
    # Licensed path: badge, driving license and vehicle fields
    licensed_details = Column(JSON, nullable=True)
    # Unlicensed path: checklist flags and per-step document references
    unlicensed_progress = Column(JSON, nullable=True)
    documents = Column(JSON, nullable=True)
    status = Column(String(32), nullable=False, default="Submitted", index=True)
    is_partial = Column(Boolean, nullable=False, default=True, index=True)
    current_step = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
