from sqlalchemy import Column, Integer, Text, DateTime, Identity, Index, func
from sqlalchemy.orm import relationship
from .base import Base, BaseModel


class FaultSync(BaseModel, Base):
    """One row per fault handed to the complaint system."""
    __tablename__ = 'fault_sync'

    id = Column(Integer, Identity(), primary_key=True)
    rtu_number = Column(Text, nullable=False)
    tag_no = Column(Text, nullable=False)
    tag_value = Column(Text)
    event_time = Column(DateTime(timezone=True), nullable=False)
    source_type = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("fault_sync_rtu_tag_idx", "rtu_number", "tag_no"),
    )

    complaints = relationship("Complaint", back_populates="fault", order_by="Complaint.id")
