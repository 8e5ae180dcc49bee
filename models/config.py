from sqlalchemy import Column, DateTime, String, func
from sqlalchemy import JSON

from database import Base


class AppConfig(Base):
    __tablename__ = "app_configs"

    id = Column(String(64), primary_key=True)
    branding = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
