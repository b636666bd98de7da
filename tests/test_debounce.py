import unittest
from datetime import timedelta

from alarmsync.schemas.rule_schemas import Duration
from alarmsync.services.debounce import DebounceTracker, SqlDebounceStore
from alarmsync.services.fault_types import DebounceKey
from tests.helpers import RecordingStore, at, state_sessions


class BrokenStore:
    def get(self, key):
        raise RuntimeError("state db unavailable")

    def put(self, key, first_observed_at):
        raise RuntimeError("state db unavailable")

    def delete(self, key):
        raise RuntimeError("state db unavailable")


class TestDebounceTracker(unittest.TestCase):
    def setUp(self):
        self.store = RecordingStore()
        self.tracker = DebounceTracker(self.store)
        self.key = DebounceKey.of("101", "Tag8", 0)

    def test_observe_keeps_first_time(self):
        first = self.tracker.observe(self.key, at(0))
        again = self.tracker.observe(self.key, at(10))
        self.assertEqual(first, at(0))
        self.assertEqual(again, at(0))
        self.assertEqual(self.tracker.elapsed_since(self.key, at(10)), timedelta(minutes=10))

    def test_key_normalizes_value(self):
        self.assertEqual(DebounceKey.of(101, "Tag8", 0.0), DebounceKey.of("101", "Tag8", "0"))

    def test_sustained_after_duration(self):
        duration = Duration.model_validate("5m")
        self.assertFalse(self.tracker.is_sustained(self.key, duration, at(0)))
        self.assertFalse(self.tracker.is_sustained(self.key, duration, at(4)))
        self.assertTrue(self.tracker.is_sustained(self.key, duration, at(5)))

    def test_since_starts_timer_earlier(self):
        duration = Duration.model_validate("5m")
        self.assertTrue(self.tracker.is_sustained(self.key, duration, at(6), since=at(0)))

    def test_clear_restarts_timer(self):
        duration = Duration.model_validate("5m")
        self.tracker.is_sustained(self.key, duration, at(0))
        self.tracker.clear(self.key)
        self.assertFalse(self.tracker.is_sustained(self.key, duration, at(6)))
        with self.assertRaises(KeyError):
            self.tracker.elapsed_since(DebounceKey.of("999", "Tag8", 0), at(0))

    def test_instant_and_missing_durations_skip_store(self):
        self.assertTrue(self.tracker.is_sustained(self.key, None, at(0)))
        self.assertTrue(self.tracker.is_sustained(self.key, Duration(amount=0), at(0)))
        self.assertTrue(self.tracker.is_sustained(self.key, Duration(amount=10, mode="instant"), at(0)))
        self.assertEqual(self.store.calls, [])

    def test_store_failure_is_not_sustained(self):
        tracker = DebounceTracker(BrokenStore())
        self.assertFalse(tracker.is_sustained(self.key, Duration.model_validate("1m"), at(5)))
        tracker.clear(self.key)


class TestSqlDebounceStore(unittest.TestCase):
    def setUp(self):
        self.engine, self.sessions = state_sessions()
        self.store = SqlDebounceStore(self.sessions)

    def tearDown(self):
        self.engine.dispose()

    def test_record_survives_new_tracker(self):
        key = DebounceKey.of("101", "Tag8", 0)
        DebounceTracker(self.store).observe(key, at(0))

        restarted = DebounceTracker(SqlDebounceStore(self.sessions))
        self.assertEqual(restarted.elapsed_since(key, at(30)), timedelta(minutes=30))
        self.assertTrue(restarted.is_sustained(key, Duration.model_validate("30m"), at(30)))

    def test_delete_removes_record(self):
        key = DebounceKey.of("101", "Tag8", 0)
        self.store.put(key, at(0))
        self.store.delete(key)
        self.assertIsNone(self.store.get(key))
        self.store.delete(key)


if __name__ == '__main__':
    unittest.main()
