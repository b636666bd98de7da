"""Interfaces between the fault engine and the systems around it."""
from datetime import datetime
from typing import Iterable, Iterator, List, Optional, Protocol

from alarmsync.services.fault_types import FaultCandidate, IncidentRef, Sample, SourceKind


class SourceReader(Protocol):
    def stream_samples(self, since: datetime) -> Iterator[Sample]:
        """Samples newer than ``since`` ordered by (unit_id, event_time)."""
        ...

    def fetch_history(self, unit_ids: Iterable[str], window_hours: float, source_kind: SourceKind) -> List[Sample]:
        ...

    def fetch_communication_faults(self) -> List[Sample]:
        ...

    def fetch_power_failures(self) -> List[Sample]:
        ...


class IncidentStore(Protocol):
    def find_latest_incident(self, unit_id: str, tag: str) -> Optional[IncidentRef]:
        ...

    def persist(self, candidate: FaultCandidate) -> str:
        """Write the fault and its complaint atomically; return the complaint ID."""
        ...


class CheckpointStore(Protocol):
    def get_last_processed_time(self, run_key: str) -> datetime:
        ...

    def set_last_processed_time(self, run_key: str, ts: datetime) -> None:
        ...
