from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import datetime


class RunReportRead(BaseModel):
    processed: int
    duplicates: int
    batch_suppressed: int
    errors: int
    candidates: int
    skipped_run: bool
    failed: bool
    error: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None
    since: Optional[datetime] = None
    checkpoint: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SyncStatusRead(BaseModel):
    last_run: Optional[RunReportRead] = None
    checkpoint: Optional[datetime] = None
    dry_run: bool
    development: bool


class LogFileRead(BaseModel):
    name: str
    size: int
    modified: datetime


class LogTailRead(BaseModel):
    file: str
    lines: List[str]
