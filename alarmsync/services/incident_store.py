import json
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from alarmsync.core.exceptions import PersistenceError
from alarmsync.core.logger_config import get_logger
from alarmsync.core.rule_config import RuleDefaults
from alarmsync.models import Complaint, ComplaintType, FaultSync, StatusLog, SystemConfig
from alarmsync.schemas.rule_schemas import CmsMapping
from alarmsync.services.complaint_mapper import map_to_complaint
from alarmsync.services.fault_types import FaultCandidate, IncidentRef, utcnow

logger = get_logger(__name__)

MAX_ID_ATTEMPTS = 20


@dataclass(frozen=True)
class ResolvedComplaintType:
    id: Optional[int]
    name: str
    sla_hours: float
    priority: str


def _settings_from_system_config(session: Session) -> dict:
    keys = ["COMPLAINT_ID_PREFIX", "COMPLAINT_ID_START_NUMBER", "COMPLAINT_ID_LENGTH"]
    rows = session.execute(select(SystemConfig.key, SystemConfig.value).where(SystemConfig.key.in_(keys))).all()
    return {key: value for key, value in rows if value}


def generate_complaint_id(session: Session) -> str:
    """
    Next sequential complaint ID (prefix + zero padded number), e.g. KSC0001.
    Numbering continues from the highest existing ID with the same prefix.
    """
    settings = _settings_from_system_config(session)
    prefix = settings.get("COMPLAINT_ID_PREFIX", RuleDefaults.COMPLAINT_ID_PREFIX)
    start_number = int(settings.get("COMPLAINT_ID_START_NUMBER", RuleDefaults.COMPLAINT_ID_START_NUMBER))
    id_length = int(settings.get("COMPLAINT_ID_LENGTH", RuleDefaults.COMPLAINT_ID_LENGTH))

    # longest then highest ID first, so the top numeric suffix is the maximum
    highest = session.execute(
        select(Complaint.complaint_id)
        .where(Complaint.complaint_id.startswith(prefix, autoescape=True))
        .order_by(func.length(Complaint.complaint_id).desc(), Complaint.complaint_id.desc())
        .limit(MAX_ID_ATTEMPTS)
    ).scalars().all()
    suffix = next((cid[len(prefix):] for cid in highest if cid[len(prefix):].isdigit()), None)
    next_number = int(suffix) + 1 if suffix is not None else start_number

    for _ in range(MAX_ID_ATTEMPTS):
        candidate_id = f"{prefix}{str(next_number).zfill(id_length)}"
        taken = session.execute(
            select(Complaint.id).where(Complaint.complaint_id == candidate_id)
        ).scalar_one_or_none()
        if taken is None:
            return candidate_id
        next_number += 1
    raise PersistenceError(f"Failed to generate unique complaint ID after {MAX_ID_ATTEMPTS} attempts")


def _type_from_json(raw: Optional[str]) -> Optional[ResolvedComplaintType]:
    try:
        data = json.loads(raw or "{}")
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    name = data.get("name")
    if not name:
        return None
    try:
        sla_hours = float(data.get("slaHours") or RuleDefaults.DEFAULT_SLA_HOURS)
    except (TypeError, ValueError):
        sla_hours = RuleDefaults.DEFAULT_SLA_HOURS
    return ResolvedComplaintType(id=None, name=name, sla_hours=sla_hours, priority=data.get("priority") or "MEDIUM")


def resolve_complaint_type(session: Session, type_input) -> Optional[ResolvedComplaintType]:
    """
    Complaint type by ComplaintType id or name, falling back to SystemConfig
    entries (a key equal to the upper-cased name, then any active
    COMPLAINT_TYPE_* JSON value with a matching name).
    """
    name = str(type_input or "").strip()
    if not name:
        return None

    if name.isdigit():
        ct = session.get(ComplaintType, int(name))
    else:
        ct = session.execute(select(ComplaintType).where(ComplaintType.name == name)).scalars().first()
    if ct is not None:
        return ResolvedComplaintType(
            id=ct.id,
            name=ct.name,
            sla_hours=float(ct.sla_hours or RuleDefaults.DEFAULT_SLA_HOURS),
            priority=ct.priority or "MEDIUM",
        )

    by_key = session.execute(
        select(SystemConfig).where(SystemConfig.key == name.upper(), SystemConfig.is_active.is_(True))
    ).scalars().first()
    if by_key is not None:
        resolved = _type_from_json(by_key.value)
        if resolved is not None:
            return resolved

    configs = session.execute(
        select(SystemConfig).where(SystemConfig.key.startswith("COMPLAINT_TYPE_", autoescape=True), SystemConfig.is_active.is_(True))
    ).scalars().all()
    for cfg in configs:
        resolved = _type_from_json(cfg.value)
        if resolved is not None and resolved.name.lower() == name.lower():
            return resolved
    return None


class SqlIncidentStore:
    """Fault records and complaints in the target database."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        mapping: CmsMapping,
        client_id: str,
        submitted_by_id: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.mapping = mapping
        self.client_id = client_id
        self.submitted_by_id = submitted_by_id or None

    def find_latest_incident(self, unit_id: str, tag: str) -> Optional[IncidentRef]:
        with self.session_factory() as session:
            fault = session.execute(
                select(FaultSync)
                .where(FaultSync.rtu_number == str(unit_id), FaultSync.tag_no == str(tag))
                .order_by(FaultSync.id.desc())
                .limit(1)
            ).scalars().first()
            if fault is None:
                return None
            complaint = fault.complaints[0] if fault.complaints else None
            if complaint is None:
                return IncidentRef(fault_id=fault.id)
            return IncidentRef(fault_id=fault.id, complaint_id=complaint.complaint_id, status=complaint.status)

    def persist(self, candidate: FaultCandidate) -> str:
        """
        Write FaultSync, Complaint and the initial StatusLog in one transaction.

        Raises:
            PersistenceError: nothing was written
        """
        complaint_data = map_to_complaint(candidate, self.mapping, self.client_id, self.submitted_by_id)
        with self.session_factory() as session:
            try:
                fault = FaultSync(
                    rtu_number=candidate.unit_id,
                    tag_no=candidate.tag,
                    tag_value=str(candidate.value),
                    event_time=candidate.event_time,
                    source_type=candidate.source_kind.value,
                )
                session.add(fault)
                session.flush()

                resolved = resolve_complaint_type(session, complaint_data["type"])
                complaint_id = generate_complaint_id(session)
                if resolved is not None:
                    complaint_data["type"] = resolved.name
                    complaint_data["complaint_type_id"] = resolved.id
                    complaint_data["deadline"] = utcnow() + timedelta(hours=resolved.sla_hours)
                else:
                    complaint_data["deadline"] = utcnow() + timedelta(hours=RuleDefaults.DEFAULT_SLA_HOURS)

                complaint = Complaint(**complaint_data, complaint_id=complaint_id, slms_ref=fault.id)
                session.add(complaint)
                session.flush()

                session.add(StatusLog(
                    complaint_id=complaint.id,
                    user_id=self.submitted_by_id,
                    to_status=complaint.status,
                    comment="Verified persistent fault sync",
                ))
                session.commit()
            except (SQLAlchemyError, ValueError) as e:
                session.rollback()
                raise PersistenceError(f"Could not persist fault for RTU {candidate.unit_id} tag {candidate.tag}: {e}") from e
            except PersistenceError:
                session.rollback()
                raise

        logger.info(f"Registered complaint {complaint_id} ({candidate.rule.description}) for RTU {candidate.unit_id}")
        return complaint_id
