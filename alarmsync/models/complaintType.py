from sqlalchemy import Column, Integer, Text, Identity
from .base import Base, BaseModel


class ComplaintType(BaseModel, Base):
    __tablename__ = 'complaint_type'

    id = Column(Integer, Identity(), primary_key=True)
    name = Column(Text, nullable=False, unique=True)
    sla_hours = Column(Integer)
    priority = Column(Text)
