"""Tests for the WorkerPoolManager class."""

import errno
import os
import tempfile
import threading
import unittest
from unittest import mock

from harvester.config import ScrapeOptions
from harvester.controller import WorkerPoolManager
from harvester.errors import SessionError, SetupError
from harvester.models import UnitState
from harvester.storage import JsonlSink, read_jsonl
from tests.fakes import (
    Crash,
    MemorySink,
    ScriptedScraper,
    SessionRecorder,
    TransientError,
    make_items,
    no_sleep,
)


def run_pool(items, workers, scraper=None, sink=None, sessions=None, max_retries=0):
    scraper = scraper or ScriptedScraper()
    sink = sink if sink is not None else MemorySink()
    sessions = sessions or SessionRecorder()
    options = ScrapeOptions(
        number_of_workers=workers,
        pause_between_items_ms=0,
        max_retries_per_item=max_retries,
        retry_delay_ms=0,
    )
    manager = WorkerPoolManager(
        scraper_factory=lambda: scraper,
        session_factory=sessions,
        sink=sink,
        options=options,
        sleep=no_sleep,
    )
    return manager.run(items), sink, scraper, sessions


class TestWorkerPoolScenarios(unittest.TestCase):
    """End-to-end pool runs with in-memory sessions and sink."""

    def test_ten_items_three_workers_one_failing_item(self):
        """Item 7 fails twice with one retry: one error, nine records, run fails."""
        scraper = ScriptedScraper({"item7": [TransientError("nav timeout")]})
        status, sink, scraper, _ = run_pool(make_items(10), 3, scraper=scraper, max_retries=1)

        self.assertFalse(status.success)
        self.assertEqual(scraper.calls.count("item7"), 2)
        self.assertEqual(len(sink.records), 9)
        self.assertNotIn("item7", sink.ids())
        self.assertEqual(status.items_failed, 1)
        self.assertEqual(status.failed_item_ids, ["item7"])
        self.assertEqual(status.items_succeeded, 9)
        self.assertTrue(all(u.state is UnitState.COMPLETED for u in status.units.values()))

    def test_ten_items_three_workers_jsonl_output(self):
        """The same run through a real JSONL file leaves nine readable lines."""
        scraper = ScriptedScraper({"item7": [TransientError("nav timeout")]})
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "out", "rounds.jsonl")
            with JsonlSink(path) as sink:
                status, _, _, _ = run_pool(make_items(10), 3, scraper=scraper, sink=sink, max_retries=1)
            rows = list(read_jsonl(path))
            with open(path, "r", encoding="utf-8") as f:
                line_count = len(f.read().splitlines())

        self.assertFalse(status.success)
        self.assertEqual(line_count, 9)
        self.assertEqual(len(rows), 9)
        self.assertNotIn("item7", [r["id"] for r in rows])

    def test_more_workers_than_items(self):
        """Five workers and two items launch exactly two units and succeed."""
        status, sink, _, sessions = run_pool(make_items(2), 5)
        self.assertTrue(status.success)
        self.assertEqual(sorted(status.units), [1, 2])
        self.assertEqual(len(sessions.sessions), 2)
        self.assertEqual(sorted(sink.ids()), ["item1", "item2"])

    def test_no_items_trivially_succeeds(self):
        """An empty input launches nothing and succeeds."""
        status, sink, _, sessions = run_pool([], 3)
        self.assertTrue(status.success)
        self.assertEqual(status.units, {})
        self.assertEqual(sessions.sessions, [])
        self.assertEqual(sink.records, [])

    def test_crash_is_isolated_to_one_unit(self):
        """A unit killed after one of three items does not affect its siblings."""
        scraper = ScriptedScraper({"item5": [Crash("browser died")]})
        status, sink, _, sessions = run_pool(make_items(9), 3, scraper=scraper)

        self.assertFalse(status.success)
        self.assertIs(status.units[2].state, UnitState.CRASHED)
        self.assertIn("browser died", status.units[2].reason)
        self.assertIs(status.units[1].state, UnitState.COMPLETED)
        self.assertIs(status.units[3].state, UnitState.COMPLETED)
        self.assertEqual(
            sorted(sink.ids()),
            ["item1", "item2", "item3", "item4", "item7", "item8", "item9"],
        )
        self.assertEqual(status.units[2].unprocessed, ("item5", "item6"))
        self.assertEqual(status.unprocessed_item_ids, ["item5", "item6"])
        self.assertEqual(status.failed_item_ids, [])
        self.assertTrue(all(s.closed for s in sessions.sessions))

    def test_session_failure_marks_unit_exited_nonzero(self):
        """A unit that cannot open its session fails alone; others complete."""
        sessions = SessionRecorder()
        lock = threading.Lock()
        calls = {"n": 0}

        def flaky_factory():
            with lock:
                calls["n"] += 1
                refuse = calls["n"] == 2
            session = sessions()
            # the second session created refuses to open
            session.fail_open = refuse
            return session

        scraper = ScriptedScraper()
        status, sink, _, _ = run_pool(make_items(6), 3, scraper=scraper, sessions=flaky_factory)

        self.assertFalse(status.success)
        states = sorted(u.state.value for u in status.units.values())
        self.assertEqual(states, ["completed", "completed", "exited_nonzero"])
        self.assertEqual(len(sink.records), 4)
        self.assertEqual(len(status.unprocessed_item_ids), 2)

    def test_sink_failure_flips_status_but_run_continues(self):
        """An append failure loses that batch only and marks the run failed."""
        sink = MemorySink(fail_for={"item3"})
        status, sink, _, _ = run_pool(make_items(6), 2, sink=sink)
        self.assertFalse(status.success)
        self.assertEqual(status.sink_failures, 1)
        self.assertEqual(sorted(sink.ids()), ["item1", "item2", "item4", "item5", "item6"])
        self.assertTrue(all(u.state is UnitState.COMPLETED for u in status.units.values()))

    def test_session_lost_mid_chunk_names_the_remaining_items(self):
        """The failing item is reported as failed and the rest of its chunk as unprocessed."""
        scraper = ScriptedScraper({"item2": [SessionError("logged out")]})
        status, sink, _, _ = run_pool(make_items(6), 2, scraper=scraper)

        self.assertFalse(status.success)
        self.assertEqual(status.failed_item_ids, ["item2"])
        self.assertEqual(status.unprocessed_item_ids, ["item3"])
        self.assertIs(status.units[1].state, UnitState.COMPLETED)
        self.assertEqual(sorted(sink.ids()), ["item1", "item4", "item5", "item6"])

    def test_failing_output_file_is_a_sink_fault_not_an_abort(self):
        """Every batch fails to reach disk, yet the run settles with a failed status."""
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "rounds.jsonl")
            no_space = OSError(errno.ENOSPC, "No space left on device")
            with JsonlSink(path) as sink, mock.patch("harvester.storage.os.fsync", side_effect=no_space):
                status, _, _, _ = run_pool(make_items(4), 2, sink=sink)
            written = list(read_jsonl(path))

        self.assertFalse(status.success)
        self.assertEqual(status.sink_failures, 4)
        self.assertEqual(status.records_written, 0)
        self.assertEqual(status.unprocessed_item_ids, [])
        self.assertTrue(all(u.state is UnitState.COMPLETED for u in status.units.values()))
        self.assertEqual(written, [])

    def test_per_unit_order_is_preserved(self):
        """Records of each unit arrive in that unit's chunk order."""
        status, sink, _, _ = run_pool(make_items(12), 3)
        self.assertTrue(status.success)
        ids = sink.ids()
        for chunk in (["item1", "item2", "item3", "item4"], ["item5", "item6", "item7", "item8"], ["item9", "item10", "item11", "item12"]):
            self.assertEqual([i for i in ids if i in chunk], chunk)

    def test_multiple_records_per_item(self):
        """All payloads of an item are written and counted."""
        status, sink, _, _ = run_pool(make_items(3), 2, scraper=ScriptedScraper(records_per_item=3))
        self.assertTrue(status.success)
        self.assertEqual(status.records_written, 9)
        self.assertEqual(len(sink.records), 9)

    def test_invalid_items_are_a_setup_fault(self):
        """Non-WorkItem input is rejected before any unit starts."""
        sessions = SessionRecorder()
        with self.assertRaises(SetupError):
            run_pool([{"id": "x"}], 2, sessions=sessions)
        self.assertEqual(sessions.sessions, [])


if __name__ == "__main__":
    unittest.main()
