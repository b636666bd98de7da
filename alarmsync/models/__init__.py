"""
database model module

contains all SQLAlchemy model classes, used to define database table structure and relationships.
"""

from .base import Base, StateBase
from .faultSync import FaultSync
from .complaintType import ComplaintType
from .complaint import Complaint
from .statusLog import StatusLog
from .systemConfig import SystemConfig
from .state import DebounceState, RunLeaseRecord

__all__ = [
    "Base",
    "StateBase",
    "FaultSync",
    "ComplaintType",
    "Complaint",
    "StatusLog",
    "SystemConfig",
    "DebounceState",
    "RunLeaseRecord"
]
