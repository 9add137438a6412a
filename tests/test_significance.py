"""Tests for arrival validation and the significance detector."""

import unittest
import sys
from pathlib import Path

# Add src to path so we can import transitboard
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from transitboard.models import ArrivalRecord, InvalidArrivalError, Position
from transitboard.significance import LastRenderedState, is_significant


def make_record(**fields) -> ArrivalRecord:
    data = {"trainId": "T1", "destination": "Downtown", "eta": 200}
    data.update(fields)
    return ArrivalRecord.from_message(data)


class TestArrivalValidation(unittest.TestCase):
    """Test ArrivalRecord.from_message."""

    def test_valid_record(self):
        """Test that a well-formed arrival is parsed."""
        record = ArrivalRecord.from_message(
            {
                "trainId": "T1",
                "destination": "Downtown",
                "eta": 200,
                "status": "On Time",
                "type": "freight",
                "position": {"x": 1, "y": 2},
            }
        )
        self.assertEqual(record.key, "T1")
        self.assertEqual(record.eta, 200)
        self.assertTrue(record.is_freight)
        self.assertEqual(record.position, Position(1.0, 2.0, 0.0))

    def test_identity_falls_back_to_destination(self):
        """Test that records without a train id are keyed by destination."""
        record = ArrivalRecord.from_message({"destination": "Airport", "eta": 90})
        self.assertIsNone(record.train_id)
        self.assertEqual(record.key, "Airport")

    def test_eta_bounds_are_inclusive(self):
        """Test that 0 and 86400 seconds are accepted."""
        self.assertEqual(make_record(eta=0).eta, 0)
        self.assertEqual(make_record(eta=86400).eta, 86400)

    def test_invalid_eta_rejected(self):
        """Test that out-of-range and non-numeric ETAs are rejected."""
        for eta in (-1, 86401, "120", None, float("nan"), True):
            with self.subTest(eta=eta):
                with self.assertRaises(InvalidArrivalError):
                    make_record(eta=eta)

    def test_missing_destination_rejected(self):
        """Test that empty or missing destinations are rejected."""
        with self.assertRaises(InvalidArrivalError):
            ArrivalRecord.from_message({"trainId": "T1", "eta": 100})
        with self.assertRaises(InvalidArrivalError):
            make_record(destination="")

    def test_malformed_position_rejected(self):
        with self.assertRaises(InvalidArrivalError):
            make_record(position="north")
        with self.assertRaises(InvalidArrivalError):
            make_record(position={"x": "left"})

    def test_invalid_record_is_a_value_error(self):
        """Test that callers can catch validation failures as ValueError."""
        with self.assertRaises(ValueError):
            ArrivalRecord.from_message("not a dict")

    def test_at_platform_statuses(self):
        """Test case-insensitive detection of at-platform statuses."""
        self.assertTrue(make_record(status="Boarding").at_platform)
        self.assertTrue(make_record(status="approaching").at_platform)
        self.assertTrue(make_record(status="DEPARTING").at_platform)
        self.assertFalse(make_record(status="On Time").at_platform)


class TestSignificanceDetector(unittest.TestCase):
    """Test is_significant()."""

    def setUp(self):
        self.last = LastRenderedState()
        self.last.record([make_record(eta=200)])

    def test_empty_snapshot_is_significant(self):
        """Test that an empty or missing snapshot forces a render."""
        self.assertTrue(is_significant([], self.last))
        self.assertTrue(is_significant(None, self.last))

    def test_first_sighting_is_significant(self):
        """Test that a train not on screen yet forces a render."""
        self.assertTrue(is_significant([make_record(trainId="T2")], self.last))

    def test_small_eta_change_is_not_significant(self):
        """Test that ETA changes below 30 seconds are coalesced."""
        self.assertFalse(is_significant([make_record(eta=171)], self.last))
        self.assertFalse(is_significant([make_record(eta=229)], self.last))

    def test_eta_change_threshold(self):
        """Test that a 30 second ETA change is significant."""
        self.assertTrue(is_significant([make_record(eta=170)], self.last))
        self.assertTrue(is_significant([make_record(eta=230)], self.last))

    def test_first_position_is_significant(self):
        """Test that a position appearing for the first time forces a render."""
        record = make_record(eta=200, position={"x": 0, "y": 0, "z": 0})
        self.assertTrue(is_significant([record], self.last))

    def test_position_deadzone(self):
        """Test that movement below 5 units is ignored and 5 or more is not."""
        self.last.record([make_record(position={"x": 0, "y": 0, "z": 0})])
        self.assertFalse(is_significant([make_record(position={"x": 3, "y": 3, "z": 0})], self.last))
        self.assertTrue(is_significant([make_record(position={"x": 3, "y": 4, "z": 0})], self.last))

    def test_position_dropped_is_not_significant(self):
        """Test that losing a position does not by itself force a render."""
        self.last.record([make_record(position={"x": 0, "y": 0, "z": 0})])
        self.assertFalse(is_significant([make_record()], self.last))

    def test_any_record_short_circuits(self):
        """Test that one significant record makes the whole snapshot significant."""
        self.last.record([make_record(), make_record(trainId="T2", eta=400)])
        snapshot = [make_record(eta=201), make_record(trainId="T2", eta=300)]
        self.assertTrue(is_significant(snapshot, self.last))

    def test_record_replaces_previous_state(self):
        """Test that recording a snapshot forgets trains that are no longer shown."""
        self.last.record([make_record(trainId="T2")])
        self.assertNotIn("T1", self.last)
        self.assertIn("T2", self.last)


if __name__ == "__main__":
    unittest.main()
