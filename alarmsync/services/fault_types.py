from dataclasses import dataclass, field
import numbers
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, NamedTuple, Optional, Sequence, Tuple, Union, List

from alarmsync.schemas.rule_schemas import SimpleRule, RateRule, MasterRule


class SourceKind(str, Enum):
    DIGITAL = "DIGITAL"
    ANALOG = "ANALOG"
    UNIFIED = "UNIFIED"
    COMPUTED_STATE = "COMPUTED_STATE"


def to_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already (SQLite drops the offset)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_value(value: Any) -> str:
    """
    String form used for keys and master-rule equality.
    Integral numbers lose their fraction so that 0, 0.0 and "0" agree.
    """
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, (numbers.Real, Decimal)):
        number = float(value)
        if number.is_integer():
            return str(int(number))
        return str(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            number = float(text)
        except ValueError:
            return text
        if number.is_integer():
            return str(int(number))
        return text
    return str(value)


@dataclass(frozen=True)
class Sample:
    unit_id: str
    tag: str
    value: Any
    event_time: datetime
    source_kind: SourceKind = SourceKind.UNIFIED
    raw_row: Optional[Mapping[str, Any]] = field(default=None, compare=False, hash=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "unit_id", str(self.unit_id))
        object.__setattr__(self, "tag", str(self.tag))
        object.__setattr__(self, "event_time", to_utc(self.event_time))


@dataclass(frozen=True)
class MatchContext:
    """Samples from other sources at the same unit, used to resolve table-bound prerequisites."""
    related_points: Sequence[Sample] = ()


class DebounceKey(NamedTuple):
    unit_id: str
    tag: str
    value: str

    @classmethod
    def of(cls, unit_id, tag, value) -> "DebounceKey":
        return cls(str(unit_id), str(tag), normalize_value(value))


@dataclass(frozen=True)
class MasterMatch:
    rule: MasterRule
    sample: Sample


@dataclass
class MasterArbitrationResult:
    blocking_match: Optional[MasterMatch] = None
    collected_matches: List[MasterMatch] = field(default_factory=list)

    @property
    def suppresses_ordinary(self) -> bool:
        return self.blocking_match is not None or bool(self.collected_matches)


@dataclass(frozen=True)
class RateStats:
    match_count: int
    sample_count: int
    percent: float

    @property
    def percent_display(self) -> str:
        return f"{self.percent:.2f}"


@dataclass(frozen=True)
class FaultCandidate:
    unit_id: str
    tag: str
    value: Any
    event_time: datetime
    rule: Union[SimpleRule, RateRule, MasterRule]
    stats: Optional[RateStats] = None
    source_kind: SourceKind = SourceKind.UNIFIED

    @property
    def key(self) -> Tuple[str, str]:
        return self.unit_id, self.tag

    @classmethod
    def from_sample(cls, sample: Sample, rule, stats: Optional[RateStats] = None) -> "FaultCandidate":
        return cls(
            unit_id=sample.unit_id,
            tag=rule.tag,
            value=sample.value,
            event_time=sample.event_time,
            rule=rule,
            stats=stats,
            source_kind=sample.source_kind,
        )

    def to_dict(self):
        return {
            "unit_id": self.unit_id,
            "tag": self.tag,
            "value": self.value,
            "event_time": self.event_time,
            "description": self.rule.description,
            "alarm_kind": self.rule.alarm_kind,
            "source_kind": self.source_kind.value,
            "stats": None if self.stats is None else {
                "match_count": self.stats.match_count,
                "sample_count": self.stats.sample_count,
                "percent": self.stats.percent_display,
            },
        }


@dataclass(frozen=True)
class IncidentRef:
    fault_id: int
    complaint_id: Optional[str] = None
    status: Optional[str] = None
