from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, Identity, func
from sqlalchemy.orm import relationship
from .base import Base, BaseModel


class StatusLog(BaseModel, Base):
    __tablename__ = 'status_log'

    id = Column(Integer, Identity(), primary_key=True)
    complaint_id = Column(Integer, ForeignKey('complaint.id'), nullable=False)
    user_id = Column(Text)
    from_status = Column(Text)
    to_status = Column(Text, nullable=False)
    comment = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    complaint = relationship("Complaint", back_populates="status_logs")
