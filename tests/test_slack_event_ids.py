from __future__ import annotations

import unittest

from slackbot.event_ids import EventDeduper, build_slack_event_id


class SlackEventIdsTest(unittest.TestCase):
    def test_prioritize_envelope_event_id(self) -> None:
        envelope = {"event_id": "Ev123", "event": {"type": "message", "channel": "D1", "ts": "1.0"}}
        self.assertEqual(build_slack_event_id(envelope), "Ev123")

    def test_fallback_to_type_channel_ts(self) -> None:
        envelope = {"event": {"type": "message", "channel": "D1", "ts": "1700000000.000100"}}
        self.assertEqual(build_slack_event_id(envelope), "message:D1:1700000000.000100")
        self.assertEqual(build_slack_event_id({"event": "bad"}), "")


class EventDeduperTest(unittest.TestCase):
    def test_seen_ids_expire_after_ttl(self) -> None:
        now = [1000.0]
        deduper = EventDeduper(ttl_sec=60, clock=lambda: now[0])
        self.assertTrue(deduper.mark_processed("Ev1"))
        self.assertFalse(deduper.mark_processed("Ev1"))
        now[0] += 61
        self.assertTrue(deduper.mark_processed("Ev1"))

    def test_oldest_entries_are_dropped_beyond_capacity(self) -> None:
        deduper = EventDeduper(max_entries=2, clock=lambda: 1000.0)
        for event_id in ("Ev1", "Ev2", "Ev3"):
            self.assertTrue(deduper.mark_processed(event_id))
        self.assertTrue(deduper.mark_processed("Ev1"))
        self.assertFalse(deduper.mark_processed("Ev3"))


if __name__ == "__main__":
    unittest.main()
