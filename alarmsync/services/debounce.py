"""
Debounce / duration tracking.

A record holds the first time a condition was seen true for a
(unit, tag, value) key. It is created on the first true observation and
deleted as soon as the condition is seen false again, so the record itself
is the "continuously true since" timer. Records live in an injected store
and survive restarts when the store is durable.
"""
from datetime import datetime, timedelta
from typing import Dict, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from alarmsync.core.logger_config import get_logger, log_exception
from alarmsync.models import DebounceState
from alarmsync.schemas.rule_schemas import Duration
from alarmsync.services.fault_types import DebounceKey, to_utc

logger = get_logger(__name__)


class DebounceStore(Protocol):
    def get(self, key: DebounceKey) -> Optional[datetime]: ...

    def put(self, key: DebounceKey, first_observed_at: datetime) -> None: ...

    def delete(self, key: DebounceKey) -> None: ...


class InMemoryDebounceStore:
    def __init__(self):
        self.records: Dict[DebounceKey, datetime] = {}

    def get(self, key):
        return self.records.get(key)

    def put(self, key, first_observed_at):
        self.records[key] = first_observed_at

    def delete(self, key):
        self.records.pop(key, None)


class SqlDebounceStore:
    """
    Debounce records in the local state database, one row per key.
    Every mutation is committed before returning.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def get(self, key):
        with self.session_factory() as session:
            row = session.get(DebounceState, tuple(key))
            return to_utc(row.first_observed_at) if row else None

    def put(self, key, first_observed_at):
        with self.session_factory() as session:
            try:
                session.merge(DebounceState(
                    unit_id=key.unit_id,
                    tag=key.tag,
                    value=key.value,
                    first_observed_at=first_observed_at,
                ))
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise

    def delete(self, key):
        with self.session_factory() as session:
            try:
                row = session.get(DebounceState, tuple(key))
                if row is not None:
                    session.delete(row)
                    session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise


class DebounceTracker:
    def __init__(self, store: DebounceStore):
        self.store = store

    def observe(self, key: DebounceKey, at_time: datetime) -> datetime:
        """Start the timer for ``key`` unless it is already running; return its start."""
        existing = self.store.get(key)
        if existing is not None:
            return existing
        at_time = to_utc(at_time)
        self.store.put(key, at_time)
        logger.debug(f"[DEBOUNCE] Started {key.unit_id}-{key.tag}-{key.value} at {at_time.isoformat()}")
        return at_time

    def clear(self, key: DebounceKey) -> None:
        try:
            self.store.delete(key)
        except Exception as e:
            log_exception(logger, e, f"clearing debounce state {key}")

    def elapsed_since(self, key: DebounceKey, at_time: datetime) -> timedelta:
        first = self.store.get(key)
        if first is None:
            raise KeyError(key)
        return to_utc(at_time) - first

    def is_sustained(
        self,
        key: DebounceKey,
        duration: Optional[Duration],
        at_time: datetime,
        since: Optional[datetime] = None,
    ) -> bool:
        """
        Duration gate. Instant, zero and missing durations pass without
        touching the store. Store failures count as not yet sustained.

        Args:
            key: debounce key of the condition
            duration: required sustain time
            at_time: time of the observation being judged
            since: when the condition was first seen true in the current
                batch, if earlier than ``at_time``; starts a new timer
        """
        if duration is None or duration.is_instant:
            return True
        try:
            first = self.observe(key, since or at_time)
        except Exception as e:
            log_exception(logger, e, f"reading debounce state {key}")
            return False
        elapsed = to_utc(at_time) - first
        required = duration.to_timedelta()
        if elapsed >= required:
            return True
        logger.debug(
            f"[DEBOUNCE] {key.unit_id}-{key.tag} pending: {elapsed} of {duration} elapsed"
        )
        return False
