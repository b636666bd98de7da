from typing import Iterable, List, NamedTuple, Optional, Sequence

from alarmsync.core.logger_config import get_logger
from alarmsync.schemas.rule_schemas import MasterRule
from alarmsync.services.condition import evaluate
from alarmsync.services.debounce import DebounceTracker
from alarmsync.services.fault_types import (
    DebounceKey,
    MasterArbitrationResult,
    MasterMatch,
    Sample,
    SourceKind,
    normalize_value,
)
from alarmsync.services.rule_matcher import is_table_compatible

logger = get_logger(__name__)


class ActiveRun(NamedTuple):
    first: Sample
    latest: Sample
    # a non-matching observation came before the run inside the same batch
    interrupted: bool


def master_condition_holds(rule: MasterRule, sample: Sample) -> bool:
    if rule.condition == "equals":
        return normalize_value(sample.value) == normalize_value(rule.threshold)
    return evaluate(sample.value, rule.condition, rule.threshold)


def find_active_run(rule: MasterRule, samples: Iterable[Sample]) -> Optional[ActiveRun]:
    """
    The unbroken run of matches that ends at the rule's most recent
    observation, or None when the condition does not hold at that
    observation.
    """
    first: Optional[Sample] = None
    latest: Optional[Sample] = None
    interrupted = False
    rule_tag = normalize_value(rule.tag)
    for sample in sorted(samples, key=lambda s: s.event_time):
        if normalize_value(sample.tag) != rule_tag:
            continue
        if not is_table_compatible(rule.table, sample.source_kind):
            continue
        if master_condition_holds(rule, sample):
            if first is None:
                first = sample
            latest = sample
        else:
            first = latest = None
            interrupted = True
    if latest is None:
        return None
    return ActiveRun(first, latest, interrupted)


def arbitrate(
    unit_id: str,
    samples: Sequence[Sample],
    master_rules: Iterable[MasterRule],
    tracker: DebounceTracker,
) -> MasterArbitrationResult:
    """
    Classify the unit's master-rule matches into blocking (priority 1) and
    collected (any other priority).

    The first sustained priority-1 match returns at once with nothing
    collected. Rules whose condition is not currently true, or went false
    at any point in the batch, have their debounce timer cleared. Computed-state samples arrive already aged by
    their detector and skip the duration gate.
    """
    collected: List[MasterMatch] = []
    for rule in master_rules:
        if not rule.enabled:
            continue

        key = DebounceKey.of(unit_id, rule.tag, rule.threshold)
        gated = rule.duration is not None and not rule.duration.is_instant
        run = find_active_run(rule, samples)
        if run is None:
            if gated:
                tracker.clear(key)
            continue

        first, latest, interrupted = run
        if latest.source_kind != SourceKind.COMPUTED_STATE and gated:
            if interrupted:
                # the condition went false earlier in this batch, so the run starts fresh
                tracker.clear(key)
            if not tracker.is_sustained(key, rule.duration, latest.event_time, since=first.event_time):
                continue

        match = MasterMatch(rule=rule, sample=latest)
        if rule.is_blocking:
            duration_label = str(rule.duration) if rule.duration else "instant"
            logger.warning(f"RTU {unit_id} MASTER OVERRIDE (P1): {rule.description} (active > {duration_label})")
            return MasterArbitrationResult(blocking_match=match, collected_matches=[])

        logger.info(f"RTU {unit_id} master rule collected (P{rule.priority}): {rule.description}")
        collected.append(match)

    return MasterArbitrationResult(blocking_match=None, collected_matches=collected)
