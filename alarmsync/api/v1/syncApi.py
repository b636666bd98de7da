from fastapi import APIRouter

from alarmsync.schemas.syncSchemas import RunReportRead, SyncStatusRead
from alarmsync.services.scheduler import get_sync_job, run_once

router = APIRouter()


@router.post("/sync/run", response_model=RunReportRead)
def trigger_sync_run():
    """Run a sync pass now. Skipped (skipped_run=true) while another run holds the lease."""
    report = run_once()
    return RunReportRead.model_validate(report)


@router.get("/sync/status", response_model=SyncStatusRead)
def get_sync_status():
    job = get_sync_job()
    last_run = RunReportRead.model_validate(job.last_report) if job.last_report else None
    return SyncStatusRead(
        last_run=last_run,
        checkpoint=job.checkpoints.get_last_processed_time(job.run_key),
        dry_run=job.dry_run,
        development=job.development,
    )
