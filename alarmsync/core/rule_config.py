# Configuration for rule-based fault detection on RTU telemetry
# Defaults apply whenever the rules file leaves a value out

import os
from typing import Any, Dict

import yaml
from pydantic import ValidationError

from alarmsync.core.exceptions import RuleConfigError


class RuleDefaults:
    # Percentage rules look back this many hours when windowHours is not set
    DEFAULT_WINDOW_HOURS = 48

    # Percentage rules trigger at or above this share of matching samples
    DEFAULT_THRESHOLD_PERCENT = 80.0

    # Master rules without an explicit priority are blocking (tier 1)
    DEFAULT_MASTER_PRIORITY = 1
    BLOCKING_PRIORITY = 1

    # Complaint statuses that allow a fresh incident for the same RTU/tag
    CLOSED_STATUSES = ("CLOSED", "RESOLVED", "REJECTED")

    # Communication failure: comm tag = 0, last seen older than 1h,
    # no analog data for 24h, ignored once silent for 60 days
    COMM_TAG = "Tag8"
    COMM_STALE_HOURS = 1
    COMM_ANALOG_SILENCE_HOURS = 24
    COMM_DECOMMISSION_HOURS = 1440

    # Power failure: power tag = 0 within the last hour
    POWER_TAG = "Tag16"
    POWER_LOOKBACK_MINUTES = 60

    # Complaint ID allocation (overridable through SystemConfig)
    COMPLAINT_ID_PREFIX = "KSC"
    COMPLAINT_ID_START_NUMBER = 1
    COMPLAINT_ID_LENGTH = 4

    # SLA used when a complaint type carries none
    DEFAULT_SLA_HOURS = 48


def load_rules_config(path: str) -> "SyncRulesConfig":
    """
    Read and validate the YAML rules file.

    Raises:
        RuleConfigError: file missing, unreadable, not YAML, or failing validation
    """
    if not os.path.exists(path):
        raise RuleConfigError(f"Rules file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise RuleConfigError(f"Could not read rules file {path}: {e}") from e
    return validate_rules_config(raw)


def validate_rules_config(raw: Dict[str, Any]) -> "SyncRulesConfig":
    from alarmsync.schemas.rule_schemas import SyncRulesConfig

    if not isinstance(raw, dict):
        raise RuleConfigError("Rules configuration must be a mapping")
    try:
        return SyncRulesConfig.model_validate(raw)
    except ValidationError as e:
        raise RuleConfigError(f"Invalid rules configuration: {e}") from e


def save_rules_config(path: str, data: Dict[str, Any]) -> "SyncRulesConfig":
    """Validate ``data`` and write it back as YAML. Nothing is written on failure."""
    validated = validate_rules_config(data)
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(validated.model_dump(mode="json", by_alias=True, exclude_none=True), f, sort_keys=False)
    return validated
