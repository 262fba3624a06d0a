import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from coach_engine.app import app, limiter
from coach_engine.fatigue import FatigueProfile
from coach_engine import tasks

ACTIVITIES = [
    {'activity_type_tag': 'cycling', 'start_time': '2024-05-01T06:30:00Z', 'duration_seconds': 6000},
    {'activity_type_tag': 'yoga_nidra', 'start_time': '2024-05-01T20:00:00Z', 'duration_seconds': 1800},
]


class TestActivitySyncEnqueue(unittest.TestCase):
    def setUp(self):
        limiter.enabled = False
        self.client = app.test_client()

    @patch("coach_engine.tasks.queue.enqueue")
    def test_job_is_enqueued(self, mock_enqueue):
        mock_enqueue.return_value = MagicMock(id="job-1")
        response = self.client.post("/v1/system/sync-activities", json={'activities': ACTIVITIES})
        self.assertEqual(response.status_code, 202)
        self.assertEqual(response.get_json()['job_id'], "job-1")
        mock_enqueue.assert_called_once()
        self.assertIs(mock_enqueue.call_args.args[0], tasks.sync_activity_records)
        self.assertEqual(mock_enqueue.call_args.args[1], ACTIVITIES)

    @patch("coach_engine.tasks.queue.enqueue")
    def test_job_has_retry_strategy(self, mock_enqueue):
        mock_enqueue.return_value = MagicMock(id="job-2")
        response = self.client.post("/v1/system/sync-activities", json={'activities': ACTIVITIES})
        self.assertEqual(response.status_code, 202)
        retry = mock_enqueue.call_args.kwargs.get("retry")
        from rq import Retry

        self.assertIsInstance(retry, Retry)
        self.assertEqual(retry.max, 3)

    @patch("coach_engine.tasks.queue.enqueue")
    def test_malformed_batch_is_not_enqueued(self, mock_enqueue):
        response = self.client.post("/v1/system/sync-activities", json={'activities': [{'activity_type_tag': 'cycling'}]})
        self.assertEqual(response.status_code, 400)
        mock_enqueue.assert_not_called()


class TestSyncActivityRecords(unittest.TestCase):
    def setUp(self):
        self.conn = MagicMock()
        self.profile = FatigueProfile()
        self.saved = []

        def fake_save(conn, events):
            self.saved.extend(events)
            return len(events)

        patchers = [
            patch("coach_engine.tasks.get_current_job", return_value=None),
            patch("coach_engine.tasks.get_db_connection", return_value=self.conn),
            patch("coach_engine.tasks.release_db_connection"),
            patch("coach_engine.tasks.load_fatigue_profile", return_value=self.profile),
            patch("coach_engine.tasks.save_fatigue_events", side_effect=fake_save),
        ]
        for p in patchers:
            p.start()
            self.addCleanup(p.stop)

    def test_mapped_records_are_stored(self):
        inserted = tasks.sync_activity_records(ACTIVITIES)
        self.assertEqual(inserted, 1)
        self.assertEqual(self.saved[0].source_name, "Cycling")
        self.assertEqual(self.saved[0].timestamp, datetime(2024, 5, 1, 6, 30, tzinfo=timezone.utc))
        self.conn.commit.assert_called_once()

    def test_retry_of_same_batch_stores_nothing_new(self):
        tasks.sync_activity_records(ACTIVITIES)
        inserted = tasks.sync_activity_records(ACTIVITIES)
        self.assertEqual(inserted, 0)
        self.assertEqual(len(self.profile), 1)


if __name__ == "__main__":
    unittest.main()
