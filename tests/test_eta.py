"""Tests for ETA projection and the held/caution tracker."""

import unittest
import sys
from pathlib import Path

# Add src to path so we can import transitboard
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from transitboard.eta import EtaHistory, format_eta, project_arrival, projected_seconds
from transitboard.models import ArrivalRecord
from transitboard.overrides import HeldStateTracker


def make_record(**fields) -> ArrivalRecord:
    data = {"trainId": "T1", "destination": "Downtown", "eta": 200}
    data.update(fields)
    return ArrivalRecord.from_message(data)


class TestFormatEta(unittest.TestCase):
    """Test format_eta()."""

    def test_format(self):
        """Test the NOW / 1 min / N min boundaries."""
        self.assertEqual(format_eta(0), "NOW")
        self.assertEqual(format_eta(59), "NOW")
        self.assertEqual(format_eta(60), "1 min")
        self.assertEqual(format_eta(119), "1 min")
        self.assertEqual(format_eta(120), "2 min")
        self.assertEqual(format_eta(185), "3 min")
        self.assertEqual(format_eta(3599), "59 min")


class TestHeldStateTracker(unittest.TestCase):
    """Test HeldStateTracker."""

    def setUp(self):
        self.tracker = HeldStateTracker()

    def test_first_hold_creates_entry(self):
        """Test that a held event creates override state with defaults."""
        change = self.tracker.apply("T1", True, False, now_ms=1000)
        self.assertTrue(change.state.is_held)
        self.assertEqual(change.state.reason, "Signal hold")
        self.assertEqual(change.state.held_since, 1000)
        self.assertIn("T1", self.tracker)

    def test_repeated_hold_keeps_first_timestamp(self):
        """Test that held_since is the first held event, not the latest."""
        self.tracker.apply("T1", True, False, now_ms=1000)
        change = self.tracker.apply("T1", True, False, now_ms=9000, reason="Red signal")
        self.assertEqual(change.state.held_since, 1000)
        self.assertEqual(change.state.reason, "Red signal")
        self.assertEqual(self.tracker.held_seconds("T1", 31500), 30)

    def test_clearing_both_flags_deletes_entry(self):
        """Test that clearing reports the time held and removes the entry."""
        self.tracker.apply("T1", True, False, now_ms=0)
        change = self.tracker.apply("T1", False, False, now_ms=42000)
        self.assertIsNone(change.state)
        self.assertEqual(change.released_after_s, 42)
        self.assertNotIn("T1", self.tracker)

    def test_clearing_unknown_train_is_noop(self):
        """Test that clearing a train without override state does nothing."""
        change = self.tracker.apply("T9", False, False, now_ms=0)
        self.assertIsNone(change.state)
        self.assertIsNone(change.released_after_s)
        self.assertEqual(len(self.tracker), 0)

    def test_caution_then_hold(self):
        """Test that the hold clock starts when the train is actually held."""
        change = self.tracker.apply("T1", False, True, now_ms=0)
        self.assertIsNone(change.state.held_since)
        change = self.tracker.apply("T1", True, True, now_ms=5000)
        self.assertEqual(change.state.held_since, 5000)

    def test_hold_to_caution_reports_release(self):
        """Test that dropping from held to caution reports the hold duration."""
        self.tracker.apply("T1", True, False, now_ms=0)
        change = self.tracker.apply("T1", False, True, now_ms=10000)
        self.assertEqual(change.released_after_s, 10)
        self.assertTrue(change.state.is_caution)

    def test_prune(self):
        """Test pruning a removed train."""
        self.tracker.apply("T1", True, False, now_ms=0)
        self.assertTrue(self.tracker.prune("T1"))
        self.assertFalse(self.tracker.prune("T1"))


class TestEtaHistory(unittest.TestCase):
    """Test frozen-ETA detection."""

    def setUp(self):
        self.history = EtaHistory()

    def test_frozen_eta_is_stuck(self):
        """Test that an ETA stuck within 5 s for over 30 s is flagged."""
        self.history.observe([make_record(eta=300)], 0)
        self.history.observe([make_record(eta=298)], 20000)
        self.assertFalse(self.history.is_stuck(make_record(eta=297), 30000))
        self.assertTrue(self.history.is_stuck(make_record(eta=297), 30001))

    def test_moving_eta_resets_clock(self):
        """Test that a 5 s change restarts the frozen timer."""
        self.history.observe([make_record(eta=300)], 0)
        self.history.observe([make_record(eta=295)], 25000)
        self.assertFalse(self.history.is_stuck(make_record(eta=295), 40000))

    def test_slow_drift_counts_as_movement(self):
        """Test that small steps adding up to 5 s count as movement."""
        self.history.observe([make_record(eta=300)], 0)
        for i, eta in enumerate((299, 298, 297, 296, 295), start=1):
            self.history.observe([make_record(eta=eta)], i * 1000)
        self.assertEqual(self.history.frozen_for_ms("T1", 5000), 0)

    def test_platform_and_short_eta_are_never_stuck(self):
        """Test that trains at the platform or within a minute are not flagged."""
        self.history.observe([make_record(eta=60), make_record(trainId="T2", eta=300)], 0)
        self.assertFalse(self.history.is_stuck(make_record(eta=60), 60000))
        self.assertFalse(self.history.is_stuck(make_record(trainId="T2", eta=300, status="boarding"), 60000))

    def test_missing_keys_are_dropped(self):
        """Test that trains absent from a snapshot lose their history."""
        self.history.observe([make_record()], 0)
        self.history.observe([], 1000)
        self.assertEqual(self.history.frozen_for_ms("T1", 60000), 0)


class TestProjectArrival(unittest.TestCase):
    """Test project_arrival()."""

    def setUp(self):
        self.overrides = HeldStateTracker()
        self.history = EtaHistory()

    def project(self, record, now_ms=0):
        return project_arrival(record, self.overrides, self.history, now_ms)

    def test_plain_eta(self):
        """Test that an unaffected train shows its raw ETA."""
        result = self.project(make_record(eta=185, status="On Time"))
        self.assertEqual(result.eta_text, "3 min")
        self.assertEqual(result.status_text, "On Time")
        self.assertEqual(result.projected_eta, 185)

    def test_missing_status_defaults_to_on_time(self):
        result = self.project(make_record(eta=30))
        self.assertEqual(result.status_text, "On Time")
        self.assertEqual(result.eta_class, "arriving")

    def test_boarding_always_shows_now(self):
        """Test that a boarding train shows NOW even with a large raw ETA."""
        result = self.project(make_record(eta=340, status="boarding"))
        self.assertEqual(result.eta_text, "NOW")
        self.assertEqual(result.eta_class, "arriving")

    def test_held_shows_held(self):
        """Test that a held train shows HELD and a growing projected ETA."""
        self.overrides.apply("T1", True, False, now_ms=0)
        result = self.project(make_record(eta=200), now_ms=45000)
        self.assertEqual(result.eta_text, "HELD")
        self.assertEqual(result.status_text, "Signal Hold")
        self.assertEqual(result.eta_class, "eta-held")
        self.assertEqual(result.projected_eta, 245)

    def test_held_beats_platform(self):
        """Test that a hold takes priority over an at-platform status."""
        self.overrides.apply("T1", True, False, now_ms=0)
        self.assertEqual(self.project(make_record(status="boarding")).eta_text, "HELD")

    def test_held_projection_never_decreases(self):
        """Test that the held projection only grows while the hold lasts."""
        self.overrides.apply("T1", True, False, now_ms=0)
        record = make_record(eta=200)
        values = [projected_seconds(record, self.overrides, t) for t in range(0, 60000, 5000)]
        self.assertEqual(values, sorted(values))

    def test_caution_inflates_eta(self):
        """Test that caution shows floor(eta x 1.7)."""
        self.overrides.apply("T1", False, True, now_ms=0)
        result = self.project(make_record(eta=200))
        self.assertEqual(result.projected_eta, 340)
        self.assertEqual(result.eta_text, "5 min")
        self.assertEqual(result.status_text, "Caution")
        self.assertEqual(result.eta_class, "")

    def test_caution_near_arrival_is_styled(self):
        self.overrides.apply("T1", False, True, now_ms=0)
        self.assertEqual(self.project(make_record(eta=100)).eta_class, "eta-caution")

    def test_platform_beats_caution(self):
        """Test that a caution train at the platform still shows NOW."""
        self.overrides.apply("T1", False, True, now_ms=0)
        self.assertEqual(self.project(make_record(status="approaching")).eta_text, "NOW")

    def test_inferred_stuck_shows_delayed(self):
        """Test that a frozen ETA without a hold event shows DELAYED."""
        self.history.observe([make_record(eta=300)], 0)
        result = self.project(make_record(eta=300), now_ms=31000)
        self.assertEqual(result.eta_text, "DELAYED")
        self.assertEqual(result.status_text, "Signal Hold")
        self.assertTrue(result.stuck)
        self.assertFalse(result.held)

    def test_overrides_without_train_id(self):
        """Test that records keyed by destination ignore override state."""
        record = ArrivalRecord.from_message({"destination": "Downtown", "eta": 200})
        self.assertEqual(self.project(record).eta_text, "3 min")


if __name__ == "__main__":
    unittest.main()
