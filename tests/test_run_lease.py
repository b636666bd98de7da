import unittest
from datetime import timedelta

from alarmsync.services.run_lease import RunLease
from tests.helpers import FrozenClock, state_sessions


class TestRunLease(unittest.TestCase):
    def setUp(self):
        self.engine, self.sessions = state_sessions()
        self.clock = FrozenClock()

    def tearDown(self):
        self.engine.dispose()

    def lease(self):
        return RunLease(self.sessions, name="sync-ACME", ttl=timedelta(minutes=10), now=self.clock)

    def test_second_holder_is_refused(self):
        first, second = self.lease(), self.lease()
        self.assertTrue(first.acquire("worker-a"))
        self.assertFalse(second.acquire("worker-b"))

        first.release("worker-a")
        self.assertTrue(second.acquire("worker-b"))
        second.release("worker-b")

    def test_expired_lease_can_be_taken_over(self):
        first, second = self.lease(), self.lease()
        self.assertTrue(first.acquire("worker-a"))
        self.clock.advance(minutes=11)
        self.assertTrue(second.acquire("worker-b"))

        # stale owner cannot remove the new holder's row
        first.release("worker-a")
        self.assertFalse(self.lease().acquire("worker-c"))

    def test_hold_is_not_reentrant_within_process(self):
        lease = self.lease()
        with lease.hold() as outer:
            self.assertTrue(outer)
            with lease.hold() as inner:
                self.assertFalse(inner)
        with lease.hold() as again:
            self.assertTrue(again)

    def test_renewal_keeps_long_run_covered(self):
        first, second = self.lease(), self.lease()
        self.assertTrue(first.acquire("worker-a"))
        self.clock.advance(minutes=6)
        self.assertTrue(first.renew())
        self.clock.advance(minutes=6)
        self.assertFalse(second.acquire("worker-b"))
        first.release("worker-a")
        self.assertFalse(first.renew())

    def test_renewal_fails_after_takeover(self):
        first, second = self.lease(), self.lease()
        self.assertTrue(first.acquire("worker-a"))
        self.clock.advance(minutes=11)
        self.assertTrue(second.acquire("worker-b"))
        self.assertFalse(first.renew())


if __name__ == '__main__':
    unittest.main()
