from sqlalchemy.orm import declarative_base

Base = declarative_base()

# process-local state (debounce timers, run lease) lives in its own database
StateBase = declarative_base()


class BaseModel:
    """Base model class, providing common methods"""

    def to_dict(self):
        """Convert model instance to dictionary"""
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}

    def __repr__(self):
        """String representation"""
        return f"<{self.__class__.__name__}(id={getattr(self, 'id', 'N/A')})>"
