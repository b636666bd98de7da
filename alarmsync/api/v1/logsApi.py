from collections import deque
from datetime import datetime
from pathlib import Path
from typing import List

from fastapi import APIRouter, HTTPException, Query

from alarmsync.core.config import get_settings
from alarmsync.schemas.syncSchemas import LogFileRead, LogTailRead

router = APIRouter()


def _log_dir() -> Path:
    return Path(get_settings().LOG_DIR).resolve()


@router.get("/logs/files", response_model=List[LogFileRead])
def list_log_files():
    log_dir = _log_dir()
    if not log_dir.is_dir():
        return []
    files = [p for p in log_dir.iterdir() if p.is_file() and ".log" in p.name]
    files.sort(key=lambda p: p.stat().st_mtime, reverse=True)
    return [
        LogFileRead(name=p.name, size=p.stat().st_size, modified=datetime.fromtimestamp(p.stat().st_mtime))
        for p in files
    ]


@router.get("/logs", response_model=LogTailRead)
def read_log_file(file: str = Query(...), lines: int = Query(100, ge=1, le=5000)):
    log_dir = _log_dir()
    path = (log_dir / file).resolve()
    if path.parent != log_dir:
        raise HTTPException(status_code=400, detail="Invalid log file name")
    if not path.is_file():
        raise HTTPException(status_code=404, detail=f"Log file not found: {file}")
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        tail = deque(f, maxlen=lines)
    return LogTailRead(file=file, lines=[line.rstrip("\n") for line in tail])
