"""
Telemetry source reader for the DigitalData<CLIENT> / AnalogData<CLIENT> tables.

Both tables carry one row per RTU and timestamp (``RTUNumber``,
``DateTimeField``) plus a column per tag (``Tag1`` ... ``TagN``). The joined
stream exposes analog columns as ``Analog<Tag>`` next to the digital ones.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Set

from sqlalchemy import MetaData, Table, and_, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import sqltypes

from alarmsync.core.exceptions import SourceReadError
from alarmsync.core.logger_config import get_logger, log_raw_data
from alarmsync.schemas.rule_schemas import ComputedFaults
from alarmsync.services.fault_types import Sample, SourceKind, utcnow

logger = get_logger(__name__)

UNIT_COLUMN = "RTUNumber"
TIME_COLUMN = "DateTimeField"
ANALOG_PREFIX = "Analog"


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def merge_row(row: Dict[str, Any], analog_tags: Set[str] = frozenset()) -> Dict[str, Any]:
    """
    Fold Analog<Tag> columns into the row: they fill tags the digital side
    lacks, and replace digital values for ``analog_tags``.
    """
    merged = dict(row)
    for key, value in row.items():
        if not key.startswith(ANALOG_PREFIX) or value is None:
            continue
        tag = key[len(ANALOG_PREFIX):]
        if merged.get(tag) is None or tag in analog_tags:
            merged[tag] = value
    return merged


class SqlSourceReader:
    def __init__(
        self,
        engine: Engine,
        client_id: str,
        tags: Iterable[str],
        computed: Optional[ComputedFaults] = None,
        analog_tags: Iterable[str] = (),
        schema: Optional[str] = None,
        batch_size: int = 1000,
        development: bool = False,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.engine = engine
        self.client_id = client_id
        self.tags = sorted({str(t) for t in tags})
        self.computed = computed or ComputedFaults()
        self.analog_tags = {str(t) for t in analog_tags}
        self.schema = schema
        self.batch_size = batch_size
        self.development = development
        self.now = now or utcnow
        self._digital: Optional[Table] = None
        self._analog: Optional[Table] = None

    @property
    def digital_table_name(self) -> str:
        return f"DigitalData{self.client_id}"

    @property
    def analog_table_name(self) -> str:
        return f"AnalogData{self.client_id}"

    def _tables(self):
        if self._digital is None or self._analog is None:
            metadata = MetaData()
            try:
                self._digital = Table(self.digital_table_name, metadata, autoload_with=self.engine, schema=self.schema)
                self._analog = Table(self.analog_table_name, metadata, autoload_with=self.engine, schema=self.schema)
            except SQLAlchemyError as e:
                raise SourceReadError(f"Could not reflect source tables for client {self.client_id}: {e}") from e
        return self._digital, self._analog

    def _joined_select(self):
        d, a = self._tables()
        analog_columns = [c.label(f"{ANALOG_PREFIX}{c.name}") for c in a.c if c.name.startswith("Tag")]
        join = d.outerjoin(a, and_(d.c[UNIT_COLUMN] == a.c[UNIT_COLUMN], d.c[TIME_COLUMN] == a.c[TIME_COLUMN]))
        return select(d, *analog_columns).select_from(join), d

    def _unit_values(self, table: Table, unit_ids: Iterable[str]) -> List[Any]:
        if isinstance(table.c[UNIT_COLUMN].type, sqltypes.Integer):
            return [int(u) for u in unit_ids if str(u).lstrip("-").isdigit()]
        return [str(u) for u in unit_ids]

    def explode_row(self, row: Dict[str, Any], source_kind: SourceKind = SourceKind.UNIFIED) -> Iterator[Sample]:
        """One sample per tag of interest with a value; all share the merged row."""
        merged = merge_row(row, self.analog_tags)
        unit_id = str(merged[UNIT_COLUMN])
        event_time = merged[TIME_COLUMN]
        for tag in self.tags:
            value = merged.get(tag)
            if value is None:
                continue
            yield Sample(unit_id=unit_id, tag=tag, value=value, event_time=event_time,
                         source_kind=source_kind, raw_row=merged)

    def _iterate(self, stmt, source_kind: SourceKind, raw_kind: Optional[str] = None) -> Iterator[Sample]:
        try:
            with self.engine.connect() as conn:
                result = conn.execution_options(yield_per=self.batch_size).execute(stmt)
                for row in result.mappings():
                    row = dict(row)
                    if self.development and raw_kind:
                        log_raw_data(raw_kind, row)
                    yield from self.explode_row(row, source_kind)
        except SQLAlchemyError as e:
            raise SourceReadError(f"Source query failed: {e}") from e

    def stream_samples(self, since: datetime) -> Iterator[Sample]:
        stmt, d = self._joined_select()
        stmt = stmt.where(d.c[TIME_COLUMN] > _naive_utc(since)).order_by(d.c[UNIT_COLUMN], d.c[TIME_COLUMN])
        logger.info(
            f"Streaming joined data from {self.digital_table_name} & {self.analog_table_name} since {since.isoformat()}"
        )
        return self._iterate(stmt, SourceKind.UNIFIED, raw_kind="unified")

    def fetch_history(self, unit_ids: Iterable[str], window_hours: float, source_kind: SourceKind) -> List[Sample]:
        unit_ids = list(unit_ids)
        if not unit_ids:
            return []
        cutoff = _naive_utc(self.now() - timedelta(hours=window_hours))
        if source_kind == SourceKind.DIGITAL:
            table, _ = self._tables()
            stmt = select(table)
        elif source_kind == SourceKind.ANALOG:
            _, table = self._tables()
            stmt = select(table)
        else:
            stmt, table = self._joined_select()
        stmt = (
            stmt.where(table.c[TIME_COLUMN] >= cutoff, table.c[UNIT_COLUMN].in_(self._unit_values(table, unit_ids)))
            .order_by(table.c[UNIT_COLUMN], table.c[TIME_COLUMN])
        )
        return list(self._iterate(stmt, source_kind))

    def fetch_communication_faults(self) -> List[Sample]:
        """
        RTUs whose latest "not communicating" digital record is older than
        the stale limit (but not so old the unit is decommissioned) and that
        sent no analog data within the silence window.
        """
        cfg = self.computed.communication
        if not cfg.enabled:
            return []
        d, a = self._tables()
        now = _naive_utc(self.now())
        last_seen = func.max(d.c[TIME_COLUMN])
        analog_recent = (
            select(a.c[UNIT_COLUMN])
            .where(a.c[UNIT_COLUMN] == d.c[UNIT_COLUMN],
                   a.c[TIME_COLUMN] >= now - timedelta(hours=cfg.analog_silence_hours))
            .exists()
        )
        stmt = (
            select(d.c[UNIT_COLUMN], last_seen.label("LastSeen"))
            .where(d.c[cfg.tag] == 0, ~analog_recent)
            .group_by(d.c[UNIT_COLUMN])
            .having(and_(
                last_seen <= now - timedelta(hours=cfg.stale_hours),
                last_seen >= now - timedelta(hours=cfg.decommission_hours),
            ))
            .order_by(d.c[UNIT_COLUMN])
        )
        rows = self._fetch_all(stmt)
        logger.info(f"Found {len(rows)} active communication faults")
        return [
            Sample(unit_id=str(row[UNIT_COLUMN]), tag=cfg.tag, value=0, event_time=row["LastSeen"],
                   source_kind=SourceKind.COMPUTED_STATE)
            for row in rows
        ]

    def fetch_power_failures(self) -> List[Sample]:
        """Latest power-off record per RTU within the lookback window."""
        cfg = self.computed.power
        if not cfg.enabled:
            return []
        d, _ = self._tables()
        now = _naive_utc(self.now())
        latest = func.max(d.c[TIME_COLUMN])
        stmt = (
            select(d.c[UNIT_COLUMN], latest.label("LastSeen"))
            .where(d.c[cfg.tag] == 0, d.c[TIME_COLUMN] >= now - timedelta(minutes=cfg.lookback_minutes))
            .group_by(d.c[UNIT_COLUMN])
            .order_by(d.c[UNIT_COLUMN])
        )
        rows = self._fetch_all(stmt)
        logger.info(f"Found {len(rows)} active power failures")
        return [
            Sample(unit_id=str(row[UNIT_COLUMN]), tag=cfg.tag, value=0, event_time=row["LastSeen"],
                   source_kind=SourceKind.COMPUTED_STATE)
            for row in rows
        ]

    def _fetch_all(self, stmt) -> List[Dict[str, Any]]:
        try:
            with self.engine.connect() as conn:
                return [dict(row) for row in conn.execute(stmt).mappings()]
        except SQLAlchemyError as e:
            raise SourceReadError(f"Source query failed: {e}") from e
