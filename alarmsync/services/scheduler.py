from datetime import timedelta
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from alarmsync.core.logger_config import get_logger, log_exception
from alarmsync.services.fault_types import utcnow
from alarmsync.services.sync_job import RunReport, SyncJob

logger = get_logger(__name__)

JOB_ID = "alarm_sync"

_scheduler: Optional[BackgroundScheduler] = None
_sync_job: Optional[SyncJob] = None


def cron_trigger(expression: str) -> CronTrigger:
    """Five-field crontab trigger; raises ValueError for an invalid expression."""
    try:
        return CronTrigger.from_crontab(expression)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid cron expression {expression!r}: {e}") from e


def build_sync_job() -> SyncJob:
    """Wire the sync job to the configured databases and rules file."""
    from alarmsync.core.config import get_settings
    from alarmsync.core.db_connect import SessionLocal, StateSessionLocal, init_state_db, source_engine
    from alarmsync.core.rule_config import load_rules_config
    from alarmsync.services.checkpoint_store import SqlCheckpointStore, checkpoint_key
    from alarmsync.services.debounce import DebounceTracker, SqlDebounceStore
    from alarmsync.services.incident_store import SqlIncidentStore
    from alarmsync.services.run_lease import RunLease
    from alarmsync.services.source_reader import SqlSourceReader

    settings = get_settings()
    init_state_db()

    def source_factory(config):
        return SqlSourceReader(
            source_engine,
            settings.CLIENT_ID,
            tags=config.tags_of_interest(),
            computed=config.computed_faults,
            analog_tags=config.analog_tags(),
            development=settings.IS_DEVELOPMENT,
        )

    def store_factory(config):
        return SqlIncidentStore(SessionLocal, config.cms_mapping, settings.CLIENT_ID, settings.SYSTEM_USER_ID)

    return SyncJob(
        rules_loader=lambda: load_rules_config(settings.RULES_CONFIG_PATH),
        source_factory=source_factory,
        store_factory=store_factory,
        checkpoints=SqlCheckpointStore(SessionLocal, lookback_hours=settings.LOOKBACK_HOURS),
        tracker=DebounceTracker(SqlDebounceStore(StateSessionLocal)),
        lease=RunLease(StateSessionLocal, name=f"sync-{settings.CLIENT_ID}",
                       ttl=timedelta(minutes=settings.LEASE_TTL_MINUTES)),
        run_key=checkpoint_key(settings.CLIENT_ID),
        dry_run=settings.DRY_RUN,
        development=settings.IS_DEVELOPMENT,
    )


def get_sync_job() -> SyncJob:
    global _sync_job
    if _sync_job is None:
        _sync_job = build_sync_job()
    return _sync_job


def run_once() -> RunReport:
    """Run a sync pass now, in the calling thread. Wiring failures come back as a failed report."""
    try:
        job = get_sync_job()
    except Exception as e:
        log_exception(logger, e, "building sync job")
        return RunReport(failed=True, error=str(e), finished_at=utcnow())
    return job.run()


def start_scheduler(schedule: Optional[str] = None, job: Optional[SyncJob] = None) -> BackgroundScheduler:
    global _scheduler, _sync_job
    if job is not None:
        _sync_job = job
    if schedule is None:
        from alarmsync.core.config import get_settings
        schedule = get_settings().SYNC_SCHEDULE

    trigger = cron_trigger(schedule)
    if _scheduler is not None and _scheduler.running:
        return _scheduler

    _scheduler = BackgroundScheduler()
    _scheduler.add_job(run_once, trigger, id=JOB_ID, max_instances=1, coalesce=True, replace_existing=True)
    _scheduler.start()
    logger.info(f"Scheduler started with schedule '{schedule}'")
    return _scheduler


def shutdown_scheduler():
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
    _scheduler = None
