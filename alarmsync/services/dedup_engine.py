from typing import Any, Callable, Dict, Iterable, Optional

from alarmsync.core.logger_config import get_logger, log_skipped
from alarmsync.core.rule_config import RuleDefaults
from alarmsync.services.fault_types import FaultCandidate
from alarmsync.services.ports import IncidentStore

logger = get_logger(__name__)

AuditSink = Callable[[Dict[str, Any]], None]


class DeduplicationGate:
    """
    Suppresses a candidate while the latest incident for its (unit, tag)
    is still open. Lookup failures let the candidate through.
    """

    def __init__(
        self,
        store: IncidentStore,
        closed_statuses: Optional[Iterable[str]] = None,
        audit: Optional[AuditSink] = None,
    ):
        self.store = store
        self.closed_statuses = {s.upper() for s in (closed_statuses or RuleDefaults.CLOSED_STATUSES)}
        self.audit = audit or log_skipped

    def is_duplicate(self, candidate: FaultCandidate) -> bool:
        try:
            incident = self.store.find_latest_incident(candidate.unit_id, candidate.tag)
        except Exception as e:
            logger.error(f"Error checking for duplicates (RTU {candidate.unit_id} tag {candidate.tag}): {e}")
            return False

        if incident is None or incident.complaint_id is None:
            return False

        status = (incident.status or "").upper()
        if status in self.closed_statuses:
            return False

        logger.info(
            f"Skipping: active complaint {incident.complaint_id} [{incident.status}] exists "
            f"for RTU {candidate.unit_id} tag {candidate.tag}"
        )
        self.audit({
            "reason": "Active Complaint Exists",
            "unit_id": candidate.unit_id,
            "tag": candidate.tag,
            "existing_complaint_id": incident.complaint_id,
            "status": incident.status,
            "value": candidate.value,
        })
        return True
