from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Union

import pandas as pd

from alarmsync.core.logger_config import get_logger
from alarmsync.schemas.rule_schemas import RateRule, RuleSets
from alarmsync.services.condition import evaluate
from alarmsync.services.debounce import DebounceTracker
from alarmsync.services.fault_types import FaultCandidate, MatchContext, RateStats, Sample, to_utc, utcnow
from alarmsync.services.rule_matcher import candidate_rules, debounce_key, prerequisite_satisfied

logger = get_logger(__name__)


def history_frame(history: Iterable[Sample]) -> pd.DataFrame:
    """Tabulate history samples as tag / value / event_time columns."""
    records = [{"tag": h.tag, "value": h.value, "event_time": h.event_time} for h in history]
    frame = pd.DataFrame.from_records(records, columns=["tag", "value", "event_time"])
    if not frame.empty:
        frame["event_time"] = pd.to_datetime(frame["event_time"], utc=True)
    return frame


def compute_rate(frame: pd.DataFrame, rule: RateRule, since: datetime) -> Optional[RateStats]:
    """
    Share of in-window records for the rule's tag that satisfy its condition.
    None when the window holds no records for the tag.
    """
    if frame.empty:
        return None
    window = frame[(frame["tag"] == rule.tag) & (frame["event_time"] >= pd.Timestamp(to_utc(since)))]
    sample_count = len(window)
    if sample_count == 0:
        return None
    matches = window["value"].map(lambda v: evaluate(v, rule.condition, rule.threshold))
    match_count = int(matches.sum())
    return RateStats(match_count=match_count, sample_count=sample_count, percent=match_count * 100 / sample_count)


def evaluate_rate(
    sample: Sample,
    history: Union[Iterable[Sample], pd.DataFrame],
    rule_set: Union[RuleSets, Iterable[RateRule]],
    context: Optional[MatchContext],
    tracker: DebounceTracker,
    now: Optional[datetime] = None,
) -> Optional[FaultCandidate]:
    """
    Percentage rules for the sample's tag, evaluated over the unit's history.

    Args:
        sample: the sample that nominates the unit/tag
        history: prior samples for the same unit (or a frame from history_frame)
        rule_set: rule sets from configuration, or a plain list of rate rules
        context: related points for table-bound prerequisites
        tracker: debounce tracker for duration-gated rules
        now: end of the window, defaults to the current time

    Returns:
        FaultCandidate carrying RateStats for the first rule that triggers, or None
    """
    rules: List[RateRule] = rule_set.rate_rules() if isinstance(rule_set, RuleSets) else list(rule_set)
    rules = list(candidate_rules(sample, rules))
    if not rules:
        return None

    frame = history if isinstance(history, pd.DataFrame) else history_frame(history)
    now = to_utc(now) if now else utcnow()

    for rule in rules:
        gated = rule.duration is not None and not rule.duration.is_instant
        try:
            if not prerequisite_satisfied(sample, rule, context):
                continue

            # gates on how long the instantaneous condition has held, not the percentage
            sustained = True
            if gated:
                key = debounce_key(sample, rule)
                if not evaluate(sample.value, rule.condition, rule.threshold):
                    tracker.clear(key)
                    continue
                sustained = tracker.is_sustained(key, rule.duration, sample.event_time)

            stats = compute_rate(frame, rule, now - timedelta(hours=rule.window_hours))
            if stats is None:
                continue

            if stats.percent < rule.threshold_percent:
                logger.debug(
                    f"[PERCENT-SKIP] RTU:{sample.unit_id} Tag:{rule.tag} -> {stats.match_count}/{stats.sample_count} "
                    f"({stats.percent_display}%) < {rule.threshold_percent}%"
                )
                continue

            if not sustained:
                logger.debug(
                    f"[PERCENT-DUR-SKIP] RTU:{sample.unit_id} Tag:{rule.tag} percentage met "
                    f"({stats.percent_display}%) but duration not yet reached"
                )
                continue
        except Exception as e:
            logger.warning(f"[PERCENT] Evaluation error for RTU {sample.unit_id} tag {rule.tag}: {e}")
            continue

        logger.debug(
            f"[PERCENT] RTU:{sample.unit_id} Tag:{rule.tag} -> {stats.match_count}/{stats.sample_count} "
            f"({stats.percent_display}%) >= {rule.threshold_percent}%"
        )
        return FaultCandidate.from_sample(sample, rule, stats)
    return None
