import unittest
from datetime import timedelta

from sqlalchemy import select

from alarmsync.models import SystemConfig
from alarmsync.services.checkpoint_store import SqlCheckpointStore, checkpoint_key
from tests.helpers import FrozenClock, at, target_sessions

KEY = checkpoint_key("ACME")


def broken_sessions():
    raise RuntimeError("database unreachable")


class TestSqlCheckpointStore(unittest.TestCase):
    def setUp(self):
        self.engine, self.sessions = target_sessions()
        self.clock = FrozenClock(at(600))
        self.store = SqlCheckpointStore(self.sessions, lookback_hours=2, now=self.clock)

    def tearDown(self):
        self.engine.dispose()

    def test_key_format(self):
        self.assertEqual(KEY, "LAST_SYNC_TIME_ACME")

    def test_missing_checkpoint_uses_lookback(self):
        self.assertEqual(self.store.get_last_processed_time(KEY), at(600) - timedelta(hours=2))

    def test_set_and_get(self):
        self.store.set_last_processed_time(KEY, at(500))
        self.assertEqual(self.store.get_last_processed_time(KEY), at(500))

        self.store.set_last_processed_time(KEY, at(550))
        self.assertEqual(self.store.get_last_processed_time(KEY), at(550))
        with self.sessions() as session:
            rows = session.execute(select(SystemConfig).where(SystemConfig.key == KEY)).scalars().all()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].type, "SYNC_STATE")

    def test_future_value_is_clamped_on_write(self):
        self.store.set_last_processed_time(KEY, at(900))
        self.assertEqual(self.store.get_last_processed_time(KEY), at(600))

    def test_future_value_is_ignored_on_read(self):
        with self.sessions() as session:
            session.add(SystemConfig(key=KEY, value=at(900).isoformat()))
            session.commit()
        self.assertEqual(self.store.get_last_processed_time(KEY), at(480))

    def test_unreadable_value_uses_lookback(self):
        with self.sessions() as session:
            session.add(SystemConfig(key=KEY, value="yesterday"))
            session.commit()
        self.assertEqual(self.store.get_last_processed_time(KEY), at(480))

    def test_database_errors_are_contained(self):
        store = SqlCheckpointStore(broken_sessions, lookback_hours=1, now=self.clock)
        self.assertEqual(store.get_last_processed_time(KEY), at(540))
        store.set_last_processed_time(KEY, at(500))


if __name__ == '__main__':
    unittest.main()
