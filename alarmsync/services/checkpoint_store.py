from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from alarmsync.core.logger_config import get_logger, log_exception
from alarmsync.models import SystemConfig
from alarmsync.services.fault_types import to_utc, utcnow

logger = get_logger(__name__)

SYNC_STATE_TYPE = "SYNC_STATE"


def checkpoint_key(client_id: str) -> str:
    return f"LAST_SYNC_TIME_{client_id}"


class SqlCheckpointStore:
    """
    Last processed event time per run key, stored as an ISO timestamp in
    SystemConfig. Reads never return a future time; failures fall back to
    the lookback window.
    """

    def __init__(self, session_factory: Callable[[], Session], lookback_hours: float = 1,
                 now: Optional[Callable[[], datetime]] = None):
        self.session_factory = session_factory
        self.lookback_hours = lookback_hours
        self.now = now or utcnow

    def lookback_floor(self) -> datetime:
        return self.now() - timedelta(hours=self.lookback_hours)

    def get_last_processed_time(self, run_key: str) -> datetime:
        try:
            with self.session_factory() as session:
                value = session.execute(
                    select(SystemConfig.value).where(SystemConfig.key == run_key)
                ).scalar_one_or_none()
        except Exception as e:
            log_exception(logger, e, f"reading checkpoint {run_key}")
            return self.lookback_floor()

        if not value:
            return self.lookback_floor()
        try:
            last = to_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            logger.warning(f"Unreadable checkpoint {run_key}={value!r}. Resetting to lookback {self.lookback_hours}h.")
            return self.lookback_floor()

        if last > self.now():
            logger.warning(f"Future sync state detected ({last.isoformat()}). Resetting to lookback {self.lookback_hours}h.")
            return self.lookback_floor()
        return last

    def set_last_processed_time(self, run_key: str, ts: datetime) -> None:
        ts = to_utc(ts)
        now = self.now()
        if ts > now:
            logger.warning(f"Refusing future checkpoint {ts.isoformat()} for {run_key}; clamping to now")
            ts = now
        try:
            with self.session_factory() as session:
                row = session.execute(select(SystemConfig).where(SystemConfig.key == run_key)).scalars().first()
                if row is None:
                    session.add(SystemConfig(key=run_key, value=ts.isoformat(), type=SYNC_STATE_TYPE))
                else:
                    row.value = ts.isoformat()
                session.commit()
        except Exception as e:
            log_exception(logger, e, f"updating checkpoint {run_key}")
