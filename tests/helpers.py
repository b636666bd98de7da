"""Shared fixtures: sample builders, rule configs and in-memory databases."""
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from alarmsync.core.rule_config import validate_rules_config
from alarmsync.models import Base, StateBase
from alarmsync.services.debounce import InMemoryDebounceStore
from alarmsync.services.fault_types import Sample, SourceKind

T0 = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)


def at(minutes=0):
    return T0 + timedelta(minutes=minutes)


def sample(unit="101", tag="Tag1", value=1, minutes=0, kind=SourceKind.UNIFIED, row=None):
    return Sample(unit_id=unit, tag=tag, value=value, event_time=at(minutes), source_kind=kind, raw_row=row)


def memory_engine():
    return create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})


def target_sessions():
    engine = memory_engine()
    Base.metadata.create_all(engine)
    return engine, sessionmaker(bind=engine, expire_on_commit=False)


def state_sessions():
    engine = memory_engine()
    StateBase.metadata.create_all(engine)
    return engine, sessionmaker(bind=engine, expire_on_commit=False)


def rules(di=(), ai=(), masters=(), **extra):
    raw = {
        "ruleSets": {
            "diRules": {"enabled": True, "rules": list(di)},
            "aiRules": {"enabled": True, "rules": list(ai)},
        },
        "masterRules": list(masters),
    }
    raw.update(extra)
    return validate_rules_config(raw)


class FrozenClock:
    def __init__(self, now=None):
        self.value = now or at(0)

    def __call__(self):
        return self.value

    def advance(self, **kwargs):
        self.value = self.value + timedelta(**kwargs)


class RecordingStore(InMemoryDebounceStore):
    """In-memory debounce store that records every call."""

    def __init__(self):
        super().__init__()
        self.calls = []

    def get(self, key):
        self.calls.append(("get", key))
        return super().get(key)

    def put(self, key, first_observed_at):
        self.calls.append(("put", key))
        super().put(key, first_observed_at)

    def delete(self, key):
        self.calls.append(("delete", key))
        super().delete(key)
