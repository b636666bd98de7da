from sqlalchemy import Column, Integer, Text, Boolean, DateTime, Identity, func
from .base import Base, BaseModel


class SystemConfig(BaseModel, Base):
    """Key/value settings shared with the complaint system (ID format, complaint types, sync checkpoints)."""
    __tablename__ = 'system_config'

    id = Column(Integer, Identity(), primary_key=True)
    key = Column(Text, nullable=False, unique=True)
    value = Column(Text)
    type = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
