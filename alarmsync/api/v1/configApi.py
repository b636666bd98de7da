import os
from typing import Any, Dict

from fastapi import APIRouter, Body, HTTPException

from alarmsync.core.config import get_settings
from alarmsync.core.exceptions import RuleConfigError
from alarmsync.core.logger_config import get_logger
from alarmsync.core.rule_config import load_rules_config, save_rules_config

router = APIRouter()
logger = get_logger(__name__)


@router.get("/config")
def get_rules_config():
    path = get_settings().RULES_CONFIG_PATH
    if not os.path.exists(path):
        raise HTTPException(status_code=404, detail=f"Rules file not found: {path}")
    try:
        config = load_rules_config(path)
    except RuleConfigError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return config.model_dump(mode="json", by_alias=True)


@router.post("/config")
def update_rules_config(payload: Dict[str, Any] = Body(...)):
    path = get_settings().RULES_CONFIG_PATH
    try:
        config = save_rules_config(path, payload)
    except RuleConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info(f"Rules configuration updated ({path})")
    return {"success": True, "config": config.model_dump(mode="json", by_alias=True)}
