from sqlalchemy import Column, Text, DateTime, PrimaryKeyConstraint
from .base import StateBase, BaseModel


class DebounceState(BaseModel, StateBase):
    __tablename__ = 'debounce_state'

    unit_id = Column(Text, nullable=False)
    tag = Column(Text, nullable=False)
    value = Column(Text, nullable=False)
    first_observed_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        PrimaryKeyConstraint("unit_id", "tag", "value"),
    )

    def __repr__(self):
        return f"<DebounceState({self.unit_id}-{self.tag}-{self.value}, since={self.first_observed_at})>"


class RunLeaseRecord(BaseModel, StateBase):
    __tablename__ = 'run_lease'

    name = Column(Text, primary_key=True)
    owner = Column(Text, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<RunLeaseRecord(name={self.name}, owner={self.owner}, expires_at={self.expires_at})>"
