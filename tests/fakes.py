"""In-memory collaborators shared by the worker and controller tests."""

import threading

from harvester.base import BaseScraper
from harvester.errors import ItemError, SessionError, SinkError
from harvester.models import WorkItem
from harvester.session import SessionBase
from harvester.storage import StorageBase


class TransientError(Exception):
    """A failure the scripted scraper treats as retryable."""


class Crash(Exception):
    """Escapes the retry policy and kills the unit."""


def make_items(count, prefix="item"):
    return [WorkItem(item_id=f"{prefix}{i}", payload={"Organization Name": f"Company {i}"}) for i in range(1, count + 1)]


class FakeResponse:
    def __init__(self, status_code=200, text=""):
        self.status_code = status_code
        self.text = text
        self.closed = False

    def close(self):
        self.closed = True


class FakeSession(SessionBase):
    def __init__(self, fail_open=False):
        self.fail_open = fail_open
        self.opened = False
        self.closed = False

    def open(self):
        if self.fail_open:
            raise SessionError("login rejected")
        self.opened = True

    def get(self, url, timeout):
        return FakeResponse(200, url)

    def close(self):
        self.closed = True


class SessionRecorder:
    """Session factory that remembers every session it created."""

    def __init__(self, fail_open=False):
        self.fail_open = fail_open
        self.sessions = []
        self._lock = threading.Lock()

    def __call__(self):
        session = FakeSession(fail_open=self.fail_open)
        with self._lock:
            self.sessions.append(session)
        return session


class ScriptedScraper(BaseScraper):
    """Scraper whose per-attempt behaviour is scripted per item id.

    script maps item_id -> list of outcomes, one per attempt; an outcome is
    either None (success) or an exception instance to raise. Items not in the
    script always succeed; the last outcome repeats when attempts run past
    the end of the list.
    """

    transient_errors = (TransientError, ItemError)

    def __init__(self, script=None, records_per_item=1):
        self.script = script or {}
        self.records_per_item = records_per_item
        self.calls = []
        self._lock = threading.Lock()

    def fetch(self, session, item, timeout):
        with self._lock:
            attempt = sum(1 for call in self.calls if call == item.item_id)
            self.calls.append(item.item_id)
        outcomes = self.script.get(item.item_id) or [None]
        outcome = outcomes[min(attempt, len(outcomes) - 1)]
        if outcome is not None:
            raise outcome
        return FakeResponse(200)

    def parse(self, response, item):
        return [{"id": item.item_id, "n": n} for n in range(self.records_per_item)]


class MemorySink(StorageBase):
    def __init__(self, fail_for=()):
        self.records = []
        self.fail_for = set(fail_for)
        self.closed = False

    def append(self, records):
        if any(r.get("id") in self.fail_for for r in records):
            raise SinkError("disk full")
        self.records.extend(records)
        return len(records)

    def close(self):
        self.closed = True

    def ids(self):
        return [r["id"] for r in self.records]


def no_sleep(seconds):
    return None
