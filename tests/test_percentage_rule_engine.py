import unittest

from alarmsync.schemas.rule_schemas import RateRule
from alarmsync.services.debounce import DebounceTracker, InMemoryDebounceStore
from alarmsync.services.percentage_rule_engine import compute_rate, evaluate_rate, history_frame
from tests.helpers import at, sample


def rate_rule(**kwargs):
    data = {
        "tag": "Tag3", "condition": "lt", "value": 10, "description": "Low voltage",
        "thresholdPercent": 20, "windowHours": 24,
    }
    data.update(kwargs)
    return RateRule.model_validate(data)


def history(matching, total, tag="Tag3"):
    return [
        sample(tag=tag, value=5 if i < matching else 50, minutes=-i)
        for i in range(total)
    ]


class TestComputeRate(unittest.TestCase):
    def test_share_of_matching_samples(self):
        stats = compute_rate(history_frame(history(8, 32)), rate_rule(), at(-60 * 24))
        self.assertEqual((stats.match_count, stats.sample_count), (8, 32))
        self.assertEqual(stats.percent, 25.0)
        self.assertEqual(stats.percent_display, "25.00")

    def test_display_rounds_to_two_places(self):
        stats = compute_rate(history_frame(history(2, 3)), rate_rule(), at(-60))
        self.assertAlmostEqual(stats.percent, 66.6666, places=3)
        self.assertEqual(stats.percent_display, "66.67")

    def test_window_excludes_older_samples(self):
        stats = compute_rate(history_frame(history(8, 32)), rate_rule(), at(-9))
        self.assertEqual(stats.sample_count, 10)

    def test_empty_window_is_none(self):
        self.assertIsNone(compute_rate(history_frame([]), rate_rule(), at(-60)))
        self.assertIsNone(compute_rate(history_frame(history(1, 4, tag="Tag4")), rate_rule(), at(-60)))


class TestEvaluateRate(unittest.TestCase):
    def setUp(self):
        self.tracker = DebounceTracker(InMemoryDebounceStore())

    def test_candidate_carries_stats(self):
        candidate = evaluate_rate(sample(tag="Tag3", value=5), history(8, 32), [rate_rule()], None,
                                  self.tracker, now=at(0))
        self.assertIsNotNone(candidate)
        self.assertEqual(candidate.tag, "Tag3")
        self.assertEqual(candidate.stats.percent_display, "25.00")

    def test_below_threshold(self):
        candidate = evaluate_rate(sample(tag="Tag3", value=5), history(8, 32), [rate_rule(thresholdPercent=30)],
                                  None, self.tracker, now=at(0))
        self.assertIsNone(candidate)

    def test_other_tag_is_ignored(self):
        self.assertIsNone(evaluate_rate(sample(tag="Tag4"), history(8, 32), [rate_rule()], None,
                                        self.tracker, now=at(0)))

    def test_prerequisite_must_hold(self):
        rule = rate_rule(prerequisite={"tag": "Tag6", "value": 1})
        self.assertIsNone(evaluate_rate(sample(tag="Tag3", value=5, row={"Tag6": 0}), history(8, 32), [rule],
                                        None, self.tracker, now=at(0)))
        self.assertIsNotNone(evaluate_rate(sample(tag="Tag3", value=5, row={"Tag6": 1}), history(8, 32), [rule],
                                           None, self.tracker, now=at(0)))

    def test_duration_gate(self):
        rule = rate_rule(duration="15m")
        self.assertIsNone(evaluate_rate(sample(tag="Tag3", value=5, minutes=0), history(8, 32), [rule],
                                        None, self.tracker, now=at(0)))
        self.assertIsNotNone(evaluate_rate(sample(tag="Tag3", value=5, minutes=15), history(8, 32), [rule],
                                           None, self.tracker, now=at(15)))

    def test_false_reading_clears_timer(self):
        store = InMemoryDebounceStore()
        tracker = DebounceTracker(store)
        rule = rate_rule(duration="30m")
        evaluate_rate(sample(tag="Tag3", value=5, minutes=0), history(8, 32), [rule], None, tracker, now=at(0))
        self.assertEqual(len(store.records), 1)

        self.assertIsNone(evaluate_rate(sample(tag="Tag3", value=50, minutes=1), history(8, 32), [rule],
                                        None, tracker, now=at(1)))
        self.assertEqual(store.records, {})

    def test_timer_waits_for_true_reading(self):
        store = InMemoryDebounceStore()
        tracker = DebounceTracker(store)
        rule = rate_rule(duration="30m")
        evaluate_rate(sample(tag="Tag3", value=50, minutes=0), history(8, 32), [rule], None, tracker, now=at(0))
        self.assertEqual(store.records, {})


if __name__ == '__main__':
    unittest.main()
