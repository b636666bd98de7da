"""
Per-unit winner selection over a time-ordered sample stream.

Samples are buffered while they belong to the same unit. When the unit
changes (or the stream ends) the buffer is flushed through three tiers:

    1. a blocking (priority 1) master rule match is the only winner
    2. otherwise the latest collected (priority > 1) master match wins
    3. otherwise every buffered sample goes through the rule matcher and
       the percentage evaluator and the latest hit wins

``select`` is a generator, so the caller pulls one candidate at a time and
no more than one unit is held in memory.
"""
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from alarmsync.core.logger_config import get_logger
from alarmsync.schemas.rule_schemas import SyncRulesConfig
from alarmsync.services.debounce import DebounceTracker
from alarmsync.services.fault_types import FaultCandidate, MatchContext, Sample
from alarmsync.services.master_rule_engine import arbitrate
from alarmsync.services.percentage_rule_engine import evaluate_rate, history_frame
from alarmsync.services import rule_matcher

logger = get_logger(__name__)

POLICY_SINGLE = "single"
POLICY_PER_TAG = "per_tag"

HistoryProvider = Callable[[str], Iterable[Sample]]


class WinnerSelector:
    def __init__(
        self,
        config: SyncRulesConfig,
        tracker: DebounceTracker,
        history_provider: Optional[HistoryProvider] = None,
        policy: Optional[str] = None,
        now: Optional[Callable[[], datetime]] = None,
        on_flush: Optional[Callable[[str], None]] = None,
    ):
        self.config = config
        self.tracker = tracker
        self.history_provider = history_provider
        self.policy = policy or config.winner_policy
        self.now = now
        self.on_flush = on_flush
        self.latest_event_time: Optional[datetime] = None
        self.units_flushed = 0

        self._master_rules = config.active_master_rules()
        self._simple_rules = config.rule_sets.simple_rules()
        self._rate_rules = config.rule_sets.rate_rules()
        self._rate_tags = {r.tag for r in self._rate_rules}

    def select(self, samples: Iterable[Sample], extra_samples: Iterable[Sample] = ()) -> Iterator[FaultCandidate]:
        """
        Yield fault candidates for ``samples``, which must be ordered by
        (unit_id, event_time). ``extra_samples`` (computed-state detectors)
        join their unit's buffer; units known only from them are flushed
        after the stream ends. No (unit_id, tag) is yielded twice.
        """
        pending: Dict[str, List[Sample]] = defaultdict(list)
        for sample in extra_samples:
            pending[sample.unit_id].append(sample)

        emitted: Set[Tuple[str, str]] = set()
        current_unit: Optional[str] = None
        buffer: List[Sample] = []

        for sample in samples:
            if self.latest_event_time is None or sample.event_time > self.latest_event_time:
                self.latest_event_time = sample.event_time

            if sample.unit_id != current_unit:
                if current_unit is not None:
                    yield from self._emit(current_unit, buffer + pending.pop(current_unit, []), emitted)
                current_unit = sample.unit_id
                buffer = []
            buffer.append(sample)

        if current_unit is not None:
            yield from self._emit(current_unit, buffer + pending.pop(current_unit, []), emitted)

        for unit_id in sorted(pending):
            yield from self._emit(unit_id, pending[unit_id], emitted)

    def _emit(self, unit_id: str, buffer: List[Sample], emitted: Set[Tuple[str, str]]) -> Iterator[FaultCandidate]:
        self.units_flushed += 1
        if self.on_flush is not None:
            self.on_flush(unit_id)
        for candidate in self.flush(unit_id, buffer):
            if candidate.key in emitted:
                logger.debug(f"[SELECT] RTU {unit_id} tag {candidate.tag} already selected in this batch")
                continue
            emitted.add(candidate.key)
            yield candidate

    def flush(self, unit_id: str, buffer: List[Sample]) -> List[FaultCandidate]:
        """Winners for one unit's buffered samples."""
        if not buffer:
            return []
        buffer = sorted(buffer, key=lambda s: s.event_time)

        result = arbitrate(unit_id, buffer, self._master_rules, self.tracker)
        if result.blocking_match is not None:
            match = result.blocking_match
            return [FaultCandidate.from_sample(match.sample, match.rule)]

        if result.collected_matches:
            match = latest(result.collected_matches, key=lambda m: m.sample.event_time)
            return [FaultCandidate.from_sample(match.sample, match.rule)]

        hits = self.ordinary_hits(unit_id, buffer)
        if not hits:
            return []
        if self.policy == POLICY_PER_TAG:
            by_tag: Dict[str, FaultCandidate] = {}
            for hit in hits:
                best = by_tag.get(hit.tag)
                if best is None or hit.event_time >= best.event_time:
                    by_tag[hit.tag] = hit
            return sorted(by_tag.values(), key=lambda c: c.event_time)
        return [latest(hits, key=lambda c: c.event_time)]

    def ordinary_hits(self, unit_id: str, buffer: List[Sample]) -> List[FaultCandidate]:
        hits = []
        frame = None
        for sample in buffer:
            context = related_context(sample, buffer)

            rule = rule_matcher.match(sample, self._simple_rules, context, self.tracker)
            if rule is not None:
                hits.append(FaultCandidate.from_sample(sample, rule))

            if sample.tag in self._rate_tags:
                if frame is None:
                    frame = history_frame(self._history(unit_id))
                now = self.now() if self.now else None
                candidate = evaluate_rate(sample, frame, self._rate_rules, context, self.tracker, now=now)
                if candidate is not None:
                    hits.append(candidate)
        return hits

    def _history(self, unit_id: str) -> Iterable[Sample]:
        if self.history_provider is None:
            return []
        try:
            return self.history_provider(unit_id)
        except Exception as e:
            logger.error(f"[SELECT] History lookup failed for RTU {unit_id}: {e}")
            return []


def latest(items, key):
    """Item with the greatest key; ties go to the later item."""
    best = None
    for item in items:
        if best is None or key(item) >= key(best):
            best = item
    return best


def related_context(sample: Sample, buffer: List[Sample]) -> MatchContext:
    """Other samples of the unit observed at or before ``sample``, most recent first."""
    related = [s for s in buffer if s is not sample and s.event_time <= sample.event_time]
    related.reverse()
    return MatchContext(related_points=related)
