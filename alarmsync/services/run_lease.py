"""
Run lease: keeps two sync runs from overlapping.

An in-process lock covers threads of this process; a lease row in the
state database covers other processes. A lease past its ``expires_at``
may be taken over, so a crashed run cannot block later ones forever.
"""
import os
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from alarmsync.core.logger_config import get_logger, log_exception
from alarmsync.models import RunLeaseRecord
from alarmsync.services.fault_types import to_utc, utcnow

logger = get_logger(__name__)


class RunLease:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        name: str = "sync",
        ttl: timedelta = timedelta(minutes=30),
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.session_factory = session_factory
        self.name = name
        self.ttl = ttl
        self.now = now or utcnow
        self._lock = threading.Lock()
        self._owner: Optional[str] = None
        self._expires_at: Optional[datetime] = None

    def acquire(self, owner: str) -> bool:
        if not self._lock.acquire(blocking=False):
            logger.warning(f"Run lease '{self.name}' is held in this process")
            return False
        try:
            taken = self._claim(owner)
        except SQLAlchemyError as e:
            log_exception(logger, e, f"acquiring run lease '{self.name}'")
            taken = False
        if taken:
            self._owner = owner
            self._expires_at = self.now() + self.ttl
        else:
            self._lock.release()
        return taken

    def _claim(self, owner: str) -> bool:
        now = self.now()
        with self.session_factory() as session:
            try:
                record = session.get(RunLeaseRecord, self.name, with_for_update=True)
                if record is not None and record.owner != owner and to_utc(record.expires_at) > now:
                    logger.warning(
                        f"Run lease '{self.name}' held by {record.owner} until {to_utc(record.expires_at).isoformat()}"
                    )
                    session.rollback()
                    return False
                if record is not None and record.owner != owner:
                    logger.warning(f"Taking over expired run lease '{self.name}' from {record.owner}")
                if record is None:
                    session.add(RunLeaseRecord(name=self.name, owner=owner, expires_at=now + self.ttl))
                else:
                    record.owner = owner
                    record.expires_at = now + self.ttl
                session.commit()
                return True
            except SQLAlchemyError:
                session.rollback()
                raise

    def renew(self) -> bool:
        """
        Push back the expiry of the lease this instance holds. Writes only
        once half the ttl has passed. False when the lease is not held or
        was taken over; errors are logged, never raised.
        """
        owner = self._owner
        if owner is None:
            return False
        now = self.now()
        if self._expires_at is not None and self._expires_at - now > self.ttl / 2:
            return True
        try:
            with self.session_factory() as session:
                record = session.get(RunLeaseRecord, self.name, with_for_update=True)
                if record is None or record.owner != owner:
                    logger.warning(f"Run lease '{self.name}' is no longer held by {owner}")
                    session.rollback()
                    return False
                record.expires_at = now + self.ttl
                session.commit()
        except SQLAlchemyError as e:
            log_exception(logger, e, f"renewing run lease '{self.name}'")
            return False
        self._expires_at = now + self.ttl
        logger.debug(f"Run lease '{self.name}' renewed until {self._expires_at.isoformat()}")
        return True

    def release(self, owner: str) -> None:
        try:
            with self.session_factory() as session:
                record = session.get(RunLeaseRecord, self.name)
                if record is not None and record.owner == owner:
                    session.delete(record)
                    session.commit()
        except SQLAlchemyError as e:
            log_exception(logger, e, f"releasing run lease '{self.name}'")
        finally:
            if owner == self._owner:
                self._owner = self._expires_at = None
            if self._lock.locked():
                self._lock.release()

    @contextmanager
    def hold(self, owner: Optional[str] = None) -> Iterator[bool]:
        """Yield whether the lease was taken; release it on exit if it was."""
        owner = owner or f"{os.getpid()}-{uuid.uuid4().hex[:8]}"
        acquired = self.acquire(owner)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(owner)
