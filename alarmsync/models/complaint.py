from sqlalchemy import Column, Integer, Text, DateTime, Boolean, ForeignKey, Identity, func
from sqlalchemy.orm import relationship
from .base import Base, BaseModel


class Complaint(BaseModel, Base):
    __tablename__ = 'complaint'

    id = Column(Integer, Identity(), primary_key=True)
    complaint_id = Column(Text, nullable=False, unique=True)
    title = Column(Text, nullable=False)
    description = Column(Text)
    status = Column(Text, nullable=False)
    priority = Column(Text)
    client_id = Column(Text)
    type = Column(Text)
    complaint_type_id = Column(Integer, ForeignKey('complaint_type.id'), nullable=True)
    sla_status = Column(Text)
    is_anonymous = Column(Boolean, default=False)
    assign_to_team = Column(Boolean, default=False)
    submitted_on = Column(DateTime(timezone=True))
    deadline = Column(DateTime(timezone=True))
    contact_phone = Column(Text)
    contact_name = Column(Text)
    contact_email = Column(Text)
    ward_id = Column(Text)
    sub_zone_id = Column(Text)
    submitted_by_id = Column(Text)
    area = Column(Text)
    address = Column(Text)
    tags = Column(Text)
    slms_ref = Column(Integer, ForeignKey('fault_sync.id'))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    fault = relationship("FaultSync", back_populates="complaints")
    complaint_type = relationship("ComplaintType")
    status_logs = relationship("StatusLog", back_populates="complaint")
