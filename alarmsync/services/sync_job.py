from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from alarmsync.core.logger_config import get_logger, log_exception, log_development_data, log_skipped
from alarmsync.schemas.rule_schemas import SyncRulesConfig
from alarmsync.services.debounce import DebounceTracker
from alarmsync.services.dedup_engine import DeduplicationGate
from alarmsync.services.fault_types import FaultCandidate, Sample, SourceKind, utcnow
from alarmsync.services.ports import CheckpointStore, IncidentStore, SourceReader
from alarmsync.services.run_lease import RunLease
from alarmsync.services.winner_selector import WinnerSelector

logger = get_logger(__name__)


@dataclass
class RunReport:
    processed: int = 0
    duplicates: int = 0
    batch_suppressed: int = 0
    errors: int = 0
    candidates: int = 0
    skipped_run: bool = False
    failed: bool = False
    error: Optional[str] = None
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    since: Optional[datetime] = None
    checkpoint: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "duplicates": self.duplicates,
            "batch_suppressed": self.batch_suppressed,
            "errors": self.errors,
            "candidates": self.candidates,
            "skipped_run": self.skipped_run,
            "failed": self.failed,
            "error": self.error,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "since": self.since,
            "checkpoint": self.checkpoint,
        }


class SyncJob:
    """
    One incremental pass: checkpoint -> computed faults -> streamed samples
    -> winner selection -> dedup -> persistence -> checkpoint.

    Collaborators that depend on the rules (source reader, incident store)
    are built per run from factories, since the rules file is re-read on
    every run.
    """

    def __init__(
        self,
        rules_loader: Callable[[], SyncRulesConfig],
        source_factory: Callable[[SyncRulesConfig], SourceReader],
        store_factory: Callable[[SyncRulesConfig], IncidentStore],
        checkpoints: CheckpointStore,
        tracker: DebounceTracker,
        lease: RunLease,
        run_key: str,
        dry_run: bool = False,
        development: bool = False,
        skip_audit: Optional[Callable[[Dict[str, Any]], None]] = None,
        dev_sink: Optional[Callable[[Dict[str, Any]], None]] = None,
    ):
        self.rules_loader = rules_loader
        self.source_factory = source_factory
        self.store_factory = store_factory
        self.checkpoints = checkpoints
        self.tracker = tracker
        self.lease = lease
        self.run_key = run_key
        self.dry_run = dry_run
        self.development = development
        self.skip_audit = skip_audit or log_skipped
        self.dev_sink = dev_sink or log_development_data
        self.last_report: Optional[RunReport] = None

    @property
    def simulate(self) -> bool:
        return self.dry_run or self.development

    def run(self) -> RunReport:
        """Never raises; failures are logged and reported."""
        report = RunReport()
        with self.lease.hold() as acquired:
            if not acquired:
                logger.warning("Sync job already in progress. Skipping.")
                report.skipped_run = True
            else:
                logger.info(f"Starting sync job{' (simulation)' if self.simulate else ''}")
                try:
                    self._run(report)
                except Exception as e:
                    report.failed = True
                    report.error = str(e)
                    log_exception(logger, e, "sync job failed")
        report.finished_at = utcnow()
        if not report.skipped_run:
            self.last_report = report
        logger.info(
            f"Sync job finished. Processed: {report.processed}, Duplicates: {report.duplicates}, "
            f"Errors: {report.errors}, Failed: {report.failed}"
        )
        return report

    def _run(self, report: RunReport):
        config = self.rules_loader()
        source = self.source_factory(config)
        store = self.store_factory(config)
        gate = DeduplicationGate(store, config.closed_statuses, self.skip_audit)

        since = self.checkpoints.get_last_processed_time(self.run_key)
        report.since = since

        computed = self.computed_samples(source)
        selector = WinnerSelector(
            config,
            self.tracker,
            history_provider=self._history_provider(source, config),
            on_flush=lambda unit_id: self.lease.renew(),
        )
        batch: Set[Tuple[str, str]] = set()

        for candidate in selector.select(source.stream_samples(since), computed):
            report.candidates += 1
            self.handle_candidate(candidate, store, gate, batch, report)

        if selector.latest_event_time is not None:
            self.checkpoints.set_last_processed_time(self.run_key, selector.latest_event_time)
            report.checkpoint = selector.latest_event_time

    def computed_samples(self, source: SourceReader) -> List[Sample]:
        samples: List[Sample] = []
        for name, fetch in (("communication", source.fetch_communication_faults),
                            ("power", source.fetch_power_failures)):
            try:
                samples.extend(fetch())
            except Exception as e:
                logger.error(f"Failed to fetch {name} faults: {e}")
        return samples

    def _history_provider(self, source: SourceReader, config: SyncRulesConfig):
        window_hours = config.max_window_hours()
        if not window_hours:
            return None

        def provider(unit_id: str):
            return source.fetch_history([unit_id], window_hours, SourceKind.UNIFIED)
        return provider

    def handle_candidate(
        self,
        candidate: FaultCandidate,
        store: IncidentStore,
        gate: DeduplicationGate,
        batch: Set[Tuple[str, str]],
        report: RunReport,
    ):
        if candidate.key in batch:
            report.batch_suppressed += 1
            return
        batch.add(candidate.key)

        if gate.is_duplicate(candidate):
            report.duplicates += 1
            return

        if self.simulate:
            logger.info(f"[SIM] PERSIST RTU {candidate.unit_id} -> {candidate.rule.description}")
            self.dev_sink({"table": "FAULT", "data": candidate.to_dict()})
            report.processed += 1
            return

        try:
            store.persist(candidate)
            report.processed += 1
        except Exception as e:
            report.errors += 1
            logger.error(f"DB sync error for RTU {candidate.unit_id} tag {candidate.tag}: {e}")
