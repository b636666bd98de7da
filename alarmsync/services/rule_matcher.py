from typing import Any, Iterable, Optional, Union

from alarmsync.core.logger_config import get_logger
from alarmsync.schemas.rule_schemas import DIGITAL_TABLE, Prerequisite, RuleSets, SimpleRule
from alarmsync.services.condition import evaluate
from alarmsync.services.debounce import DebounceTracker
from alarmsync.services.fault_types import DebounceKey, MatchContext, Sample, SourceKind

logger = get_logger(__name__)

_MISSING = object()


def table_source_kind(table: str) -> SourceKind:
    """DIGITALDATA means the digital table; every other name is treated as analog."""
    return SourceKind.DIGITAL if str(table).upper() == DIGITAL_TABLE else SourceKind.ANALOG


def is_table_compatible(table: Optional[str], source_kind: SourceKind) -> bool:
    if not table:
        return True
    if source_kind in (SourceKind.UNIFIED, SourceKind.COMPUTED_STATE):
        return True
    return table_source_kind(table) == source_kind


def resolve_prerequisite_value(sample: Sample, prerequisite: Prerequisite, context: Optional[MatchContext]) -> Any:
    """
    Value of the prerequisite tag for this sample, or ``_MISSING``.
    Looks at the sample's own row first, then (for table-bound
    prerequisites) at related points from a compatible source.
    """
    row = sample.raw_row or {}
    if prerequisite.tag in row and row[prerequisite.tag] is not None:
        return row[prerequisite.tag]
    if prerequisite.tag == sample.tag:
        return sample.value

    if prerequisite.table and context is not None:
        for point in context.related_points:
            if point.tag == prerequisite.tag and is_table_compatible(prerequisite.table, point.source_kind):
                return point.value
    return _MISSING


def prerequisite_satisfied(sample: Sample, rule, context: Optional[MatchContext]) -> bool:
    prerequisite = rule.prerequisite
    if prerequisite is None:
        return True
    actual = resolve_prerequisite_value(sample, prerequisite, context)
    if actual is _MISSING:
        logger.debug(f"[RULE-PRE-SKIP] Prerequisite tag {prerequisite.tag} not found for rule {rule.description}")
        return False
    if not evaluate(actual, prerequisite.condition, prerequisite.value):
        logger.debug(
            f"[RULE-PRE-SKIP] Prerequisite {prerequisite.tag} {prerequisite.condition} {prerequisite.value} "
            f"failed (actual: {actual})"
        )
        return False
    return True


def debounce_key(sample: Sample, rule) -> DebounceKey:
    return DebounceKey.of(sample.unit_id, rule.tag, rule.threshold)


def candidate_rules(sample: Sample, rules: Iterable[SimpleRule]):
    for rule in rules:
        if rule.enabled and rule.tag == sample.tag and is_table_compatible(rule.table, sample.source_kind):
            yield rule


def match(
    sample: Sample,
    rule_set: Union[RuleSets, Iterable[SimpleRule]],
    context: Optional[MatchContext],
    tracker: DebounceTracker,
) -> Optional[SimpleRule]:
    """
    First rule (declaration order) that the sample satisfies: tag and table,
    prerequisite, primary condition, then the duration gate.

    Args:
        sample: telemetry sample to test
        rule_set: rule sets from configuration, or a plain list of simple rules
        context: related points for table-bound prerequisites
        tracker: debounce tracker for duration-gated rules

    Returns:
        The matched rule, or None
    """
    rules = rule_set.simple_rules() if isinstance(rule_set, RuleSets) else rule_set
    for rule in candidate_rules(sample, rules):
        try:
            if not prerequisite_satisfied(sample, rule, context):
                continue

            gated = rule.duration is not None and not rule.duration.is_instant
            if not evaluate(sample.value, rule.condition, rule.threshold):
                if gated:
                    tracker.clear(debounce_key(sample, rule))
                continue

            if gated and not tracker.is_sustained(debounce_key(sample, rule), rule.duration, sample.event_time):
                continue
        except Exception as e:
            logger.warning(f"[RULE] Evaluation error for RTU {sample.unit_id} tag {sample.tag}: {e}")
            continue

        logger.debug(f"[RULE] RTU:{sample.unit_id} {rule.tag}={sample.value} matched '{rule.description}'")
        return rule
    return None
