import unittest

from alarmsync.schemas.rule_schemas import MasterRule
from alarmsync.services.debounce import DebounceTracker, InMemoryDebounceStore
from alarmsync.services.fault_types import DebounceKey, SourceKind
from alarmsync.services.master_rule_engine import arbitrate, find_active_run, master_condition_holds
from tests.helpers import at, sample

POWER = {"tag": "Tag16", "value": 0, "priority": 1, "description": "Power failure"}
COMM = {"tag": "Tag8", "value": 0, "priority": 2, "description": "Communication failure"}
DOOR = {"tag": "Tag5", "value": 1, "priority": 3, "description": "Panel door open"}


def master(data, **kwargs):
    return MasterRule.model_validate({**data, **kwargs})


class TestMasterCondition(unittest.TestCase):
    def test_equals_normalizes_numbers(self):
        rule = master(COMM)
        self.assertTrue(master_condition_holds(rule, sample(tag="Tag8", value="0")))
        self.assertTrue(master_condition_holds(rule, sample(tag="Tag8", value=0.0)))
        self.assertFalse(master_condition_holds(rule, sample(tag="Tag8", value=1)))

    def test_active_run_is_trailing(self):
        rule = master(COMM)
        run = find_active_run(rule, [
            sample(tag="Tag8", value=0, minutes=0),
            sample(tag="Tag8", value=1, minutes=5),
            sample(tag="Tag8", value=0, minutes=10),
            sample(tag="Tag8", value=0, minutes=20),
        ])
        self.assertEqual(run.first.event_time, sample(minutes=10).event_time)
        self.assertEqual(run.latest.event_time, sample(minutes=20).event_time)
        self.assertTrue(run.interrupted)

    def test_uninterrupted_run(self):
        run = find_active_run(master(COMM), [
            sample(tag="Tag8", value=0, minutes=0),
            sample(tag="Tag8", value=0, minutes=5),
        ])
        self.assertEqual(run.first.event_time, sample(minutes=0).event_time)
        self.assertFalse(run.interrupted)

    def test_no_run_when_latest_does_not_hold(self):
        rule = master(COMM)
        self.assertIsNone(find_active_run(rule, [
            sample(tag="Tag8", value=0, minutes=0),
            sample(tag="Tag8", value=1, minutes=5),
        ]))


class TestArbitrate(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryDebounceStore()
        self.tracker = DebounceTracker(self.store)

    def test_blocking_match_returns_nothing_collected(self):
        samples = [sample(tag="Tag8", value=0, minutes=0), sample(tag="Tag16", value=0, minutes=1)]
        result = arbitrate("101", samples, [master(COMM), master(POWER)], self.tracker)
        self.assertEqual(result.blocking_match.rule.tag, "Tag16")
        self.assertEqual(result.collected_matches, [])
        self.assertTrue(result.suppresses_ordinary)

    def test_collects_lower_priorities(self):
        samples = [sample(tag="Tag8", value=0, minutes=0), sample(tag="Tag5", value=1, minutes=2)]
        result = arbitrate("101", samples, [master(POWER), master(COMM), master(DOOR)], self.tracker)
        self.assertIsNone(result.blocking_match)
        self.assertEqual([m.rule.tag for m in result.collected_matches], ["Tag8", "Tag5"])

    def test_nothing_matches(self):
        result = arbitrate("101", [sample(tag="Tag1", value=1)], [master(POWER)], self.tracker)
        self.assertIsNone(result.blocking_match)
        self.assertFalse(result.suppresses_ordinary)

    def test_duration_spans_the_batch(self):
        rule = master(COMM, duration="30m")
        short = [sample(tag="Tag8", value=0, minutes=0), sample(tag="Tag8", value=0, minutes=10)]
        self.assertFalse(arbitrate("101", short, [rule], self.tracker).suppresses_ordinary)

        later = [sample(tag="Tag8", value=0, minutes=20), sample(tag="Tag8", value=0, minutes=30)]
        result = arbitrate("101", later, [rule], self.tracker)
        self.assertEqual(len(result.collected_matches), 1)
        self.assertEqual(result.collected_matches[0].sample.event_time, sample(minutes=30).event_time)

    def test_recovery_clears_timer(self):
        rule = master(COMM, duration="30m")
        arbitrate("101", [sample(tag="Tag8", value=0, minutes=0)], [rule], self.tracker)
        self.assertIn(DebounceKey.of("101", "Tag8", 0), self.store.records)

        arbitrate("101", [sample(tag="Tag8", value=1, minutes=5)], [rule], self.tracker)
        self.assertNotIn(DebounceKey.of("101", "Tag8", 0), self.store.records)

    def test_false_inside_batch_restarts_timer(self):
        rule = master(POWER, duration="10m")
        key = DebounceKey.of("101", "Tag16", 0)
        arbitrate("101", [sample(tag="Tag16", value=0, minutes=0)], [rule], self.tracker)

        result = arbitrate("101", [
            sample(tag="Tag16", value=1, minutes=30),
            sample(tag="Tag16", value=0, minutes=31),
        ], [rule], self.tracker)
        self.assertIsNone(result.blocking_match)
        self.assertEqual(self.store.records[key], at(31))

    def test_computed_state_skips_duration(self):
        rule = master(COMM, duration="1h")
        computed = sample(tag="Tag8", value=0, minutes=0, kind=SourceKind.COMPUTED_STATE)
        result = arbitrate("101", [computed], [rule], self.tracker)
        self.assertEqual(len(result.collected_matches), 1)
        self.assertEqual(self.store.records, {})


if __name__ == '__main__':
    unittest.main()
