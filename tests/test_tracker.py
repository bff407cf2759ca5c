"""
Callwatch — Call Tracker Tests

Tests:
  - ids are monotonic per tracker, starting at 1
  - end_call releases each handle exactly once
  - track() releases on exception
  - two trackers never share counters
  - threaded begin/end pairs return the counter to zero
"""

import os
import sys
import threading
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from callwatch.tracker import CallTracker


class TestCallIds(unittest.TestCase):

    def test_ids_are_monotonic(self):
        tracker = CallTracker()
        ids = [tracker.begin_call("generating")[0].id for _ in range(5)]
        self.assertEqual(ids, [1, 2, 3, 4, 5])
        self.assertEqual(tracker.issued, 5)

    def test_begin_reports_active_including_new_call(self):
        tracker = CallTracker()
        _, first = tracker.begin_call("generating")
        _, second = tracker.begin_call("streaming")
        self.assertEqual((first, second), (1, 2))

    def test_trackers_are_independent(self):
        a, b = CallTracker(), CallTracker()
        a.begin_call("generating")
        a.begin_call("generating")
        handle, _ = b.begin_call("streaming")
        self.assertEqual(handle.id, 1)
        self.assertEqual(a.active, 2)
        self.assertEqual(b.active, 1)


class TestRelease(unittest.TestCase):

    def test_end_call_returns_active_after_release(self):
        tracker = CallTracker()
        h1, _ = tracker.begin_call("generating")
        tracker.begin_call("generating")
        self.assertEqual(tracker.end_call(h1), 1)

    def test_double_release_is_ignored(self):
        tracker = CallTracker()
        handle, _ = tracker.begin_call("streaming")
        self.assertEqual(tracker.end_call(handle), 0)
        self.assertEqual(tracker.end_call(handle), 0)
        self.assertEqual(tracker.active, 0)
        self.assertTrue(handle.released)

    def test_track_releases_on_exception(self):
        tracker = CallTracker()
        with self.assertRaises(RuntimeError):
            with tracker.track("generating") as handle:
                self.assertEqual(tracker.active, 1)
                raise RuntimeError("boom")
        self.assertEqual(tracker.active, 0)
        self.assertTrue(handle.released)

    def test_elapsed_is_non_negative(self):
        handle, _ = CallTracker().begin_call("generating")
        self.assertGreaterEqual(handle.elapsed(), 0.0)


class TestThreaded(unittest.TestCase):

    def test_counter_returns_to_zero(self):
        tracker = CallTracker()

        def worker():
            for _ in range(200):
                with tracker.track("generating"):
                    pass

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(tracker.active, 0)
        self.assertEqual(tracker.issued, 1600)


if __name__ == "__main__":
    unittest.main()
