import os
from typing import Generator
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from .config import get_settings

settings = get_settings()


def _ensure_sqlite_dir(url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database and parsed.database != ":memory:":
        directory = os.path.dirname(parsed.database)
        if directory:
            os.makedirs(directory, exist_ok=True)


# Incident (complaint) database
engine = create_engine(settings.DATABASE_URL, echo=False, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)

# Telemetry source database, read only
source_engine = create_engine(settings.SOURCE_DATABASE_URL, echo=False, pool_pre_ping=True)

# Local state database for debounce timers and the run lease
_ensure_sqlite_dir(settings.STATE_DATABASE_URL)
state_engine = create_engine(settings.STATE_DATABASE_URL, echo=False)
StateSessionLocal = sessionmaker(bind=state_engine, expire_on_commit=False)


def get_session() -> Generator[Session, None, None]:
    with SessionLocal() as session:
        yield session


def init_state_db(bind: Engine = state_engine) -> None:
    """
    Create the local state tables if they do not exist yet.
    The incident schema is owned by alembic, the state schema is not.
    """
    from alarmsync.models import StateBase
    StateBase.metadata.create_all(bind)
