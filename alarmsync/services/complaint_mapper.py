import json
import re
from datetime import datetime
from typing import Any, Dict, Optional

from alarmsync.schemas.rule_schemas import CmsMapping
from alarmsync.services.fault_types import FaultCandidate, utcnow

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")

_PRIORITY_BY_ALARM = {
    "CRITICAL": "CRITICAL",
    "MAJOR": "HIGH",
    "MINOR": "MEDIUM",
    "WARN": "MEDIUM",
    "WARNING": "MEDIUM",
    "INFO": "LOW",
    "STATUS": "LOW",
    "LOW": "LOW",
}


def format_template(template: str, values: Dict[str, Any]) -> str:
    """Replace {{Name}} placeholders; unknown or empty values render as ''."""
    def replace(match):
        value = values.get(match.group(1))
        return "" if value is None else str(value)
    return _PLACEHOLDER_RE.sub(replace, template or "")


def map_priority(alarm_kind: Optional[str]) -> Optional[str]:
    if not alarm_kind:
        return None
    return _PRIORITY_BY_ALARM.get(alarm_kind.upper())


def map_to_complaint(
    candidate: FaultCandidate,
    mapping: CmsMapping,
    client_id: str,
    submitted_by_id: Optional[str] = None,
    submitted_on: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Complaint column values for a fault candidate, keyed like the Complaint model.
    ``complaint_id``, ``complaint_type_id``, ``deadline`` and ``slms_ref`` are
    filled in by the incident store.
    """
    rule = candidate.rule
    defaults = mapping.defaults or {}
    stats = candidate.stats

    values = {
        "Description": rule.description or "Fault Detected",
        "TagNumber": candidate.tag,
        "AlarmType": rule.alarm_kind or "GENERAL",
        "Value": candidate.value,
        "RtuId": candidate.unit_id,
        "FaultCount": stats.match_count if stats else 0,
        "TotalCount": stats.sample_count if stats else 0,
        "Percent": stats.percent_display if stats else "0.00",
    }

    return {
        "title": format_template(mapping.title_template, values),
        "description": format_template(mapping.description_template, values),
        "status": mapping.default_status,
        "priority": map_priority(rule.alarm_kind) or mapping.default_priority,
        "client_id": client_id,
        "type": rule.complaint_type or mapping.default_complaint_type,
        "sla_status": defaults.get("slaStatus", "ON_TIME"),
        "is_anonymous": bool(defaults.get("isAnonymous", False)),
        "assign_to_team": bool(defaults.get("assignToTeam", False)),
        "submitted_on": submitted_on or utcnow(),
        "contact_phone": defaults.get("contactPhone"),
        "contact_name": defaults.get("contactName"),
        "contact_email": defaults.get("contactEmail"),
        "ward_id": defaults.get("wardId"),
        "sub_zone_id": defaults.get("subZoneId"),
        "submitted_by_id": submitted_by_id or defaults.get("submittedById"),
        "area": defaults.get("area"),
        "address": defaults.get("address"),
        "tags": json.dumps({
            "rtuId": candidate.unit_id,
            "tag": candidate.tag,
            "rawType": rule.alarm_kind,
            "value": candidate.value,
        }, default=str),
    }
