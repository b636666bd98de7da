from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from alarmsync.core.config import get_settings
from alarmsync.core.db_connect import get_session, init_state_db
from alarmsync.core.logger_config import setup_logging, get_logger
from alarmsync.services.scheduler import start_scheduler, shutdown_scheduler
from alarmsync.api.v1 import syncApi
from alarmsync.api.v1 import configApi
from alarmsync.api.v1 import logsApi

settings = get_settings()
setup_logging(settings.LOG_LEVEL, settings.LOG_DIR)
logger = get_logger(__name__)

app = FastAPI(title=settings.PROJECT_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(syncApi.router, prefix=settings.API_V1_STR, tags=["syncApi"])
app.include_router(configApi.router, prefix=settings.API_V1_STR, tags=["configApi"])
app.include_router(logsApi.router, prefix=settings.API_V1_STR, tags=["logsApi"])


# target database health check
@app.get("/health/db")
def test_db_connection(session: Session = Depends(get_session)):
    try:
        session.execute(text("SELECT 1"))
        return {"status": "ok"}
    except SQLAlchemyError as e:
        return JSONResponse(status_code=500, content={"status": "error", "detail": str(e)})


# start the sync scheduler with the app
@app.on_event("startup")
def startup_event():
    init_state_db()
    if settings.START_SCHEDULER:
        start_scheduler(settings.SYNC_SCHEDULE)
        if settings.FORCE_RUN:
            from alarmsync.services.scheduler import run_once
            logger.info("FORCE_RUN set, running sync immediately")
            run_once()


@app.on_event("shutdown")
def shutdown_event():
    shutdown_scheduler()
