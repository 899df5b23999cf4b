"""
CivicFix
Realtime change feed for the ``reports`` table.

    SQLAlchemy session events ─▶ ChangeFeed.publish ─▶ Subscription queues ─▶ SSE

Row changes are captured at flush time and published only after the
surrounding transaction commits; a rollback discards them. Subscriber
queues are bounded: a slow consumer loses its oldest events, never blocks
the publisher.

``ReportListMirror`` is the consumer-side reconciliation: apply each event
to a local list (insert-prepend, update-replace, delete-filter).
"""

import json
import logging
import queue
import threading
from dataclasses import asdict, dataclass, field

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from civicfix.models.report import Report
from civicfix.services.normalization import convert_report_from_db

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"

DEFAULT_QUEUE_SIZE = 256
_PENDING_KEY = "civicfix_report_changes"


@dataclass
class ChangeEvent:
    type: str
    table: str = "reports"
    new: dict = field(default_factory=dict)
    old: dict = field(default_factory=dict)

    @property
    def row_id(self):
        return (self.new or {}).get("id") or (self.old or {}).get("id")

    def to_dict(self):
        return asdict(self)


# ── Feed ─────────────────────────────────────────────────────────────────────

class Subscription:
    def __init__(self, feed, predicate=None, maxsize=DEFAULT_QUEUE_SIZE):
        self._feed = feed
        self.predicate = predicate
        self.queue = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def accepts(self, evt):
        return self.predicate is None or self.predicate(evt)

    def offer(self, evt):
        while True:
            try:
                self.queue.put_nowait(evt)
                return
            except queue.Full:
                try:
                    self.queue.get_nowait()
                except queue.Empty:
                    continue
                self.dropped += 1
                logger.warning("Change feed subscriber lagging; dropped oldest event (%d total)",
                               self.dropped)

    def get(self, timeout=None):
        """Next event, or None on timeout."""
        try:
            return self.queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self):
        self._feed.unsubscribe(self)


class ChangeFeed:
    """In-process publish/subscribe hub. Thread-safe."""

    def __init__(self, maxsize=DEFAULT_QUEUE_SIZE):
        self.maxsize = maxsize
        self._lock = threading.Lock()
        self._subscribers = []

    def subscribe(self, predicate=None):
        sub = Subscription(self, predicate=predicate, maxsize=self.maxsize)
        with self._lock:
            self._subscribers.append(sub)
        return sub

    def unsubscribe(self, sub):
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    @property
    def subscriber_count(self):
        with self._lock:
            return len(self._subscribers)

    def publish(self, evt):
        with self._lock:
            targets = list(self._subscribers)
        delivered = 0
        for sub in targets:
            try:
                accepted = sub.accepts(evt)
            except Exception:
                logger.exception("Subscriber filter failed for %s %s", evt.type, evt.row_id)
                continue
            if accepted:
                sub.offer(evt)
                delivered += 1
        return delivered


change_feed = ChangeFeed()


def identity_predicate(identity):
    """Deliver only rows owned by ``identity``. Deletes always pass."""
    def _predicate(evt):
        if evt.type == DELETE:
            return True
        return identity.owns(evt.new)
    return _predicate


# ── Consumer-side reconciliation ─────────────────────────────────────────────

class ReportListMirror:
    """Local list of normalized reports kept in sync with change events.

    Last write wins by arrival order; there is no version check.
    """

    def __init__(self, reports=None):
        self.reports = list(reports or [])

    def _index(self, report_id):
        for i, r in enumerate(self.reports):
            if r.get("id") == report_id:
                return i
        return None

    def apply(self, evt):
        if evt.type == DELETE:
            deleted_id = evt.row_id
            self.reports = [r for r in self.reports if r.get("id") != deleted_id]
            return self.reports

        view = convert_report_from_db(evt.new)
        idx = self._index(view["id"])
        if evt.type == INSERT:
            if idx is None:
                self.reports.insert(0, view)
        elif evt.type == UPDATE:
            if idx is None:
                self.reports.insert(0, view)
            else:
                self.reports[idx] = view
        return self.reports

    def ids(self):
        return [r["id"] for r in self.reports]


# ── Server-sent events ───────────────────────────────────────────────────────

def format_sse(evt, event_name="change"):
    payload = dict(evt.to_dict())
    if evt.type != DELETE and evt.new:
        payload["report"] = convert_report_from_db(evt.new)
    return f"event: {event_name}\ndata: {json.dumps(payload, default=str)}\n\n"


def sse_stream(feed, predicate=None, heartbeat=15.0, max_events=None):
    """Yield SSE frames until the client disconnects (GeneratorExit).

    The subscription is opened on first iteration, so a response that is never
    read (HEAD, client gone before the first chunk) holds nothing on ``feed``.
    """
    subscription = feed.subscribe(predicate)
    sent = 0
    try:
        yield ": connected\n\n"
        while max_events is None or sent < max_events:
            evt = subscription.get(timeout=heartbeat)
            if evt is None:
                yield ": keepalive\n\n"
                continue
            yield format_sse(evt)
            sent += 1
    finally:
        subscription.close()


# ── Session hooks ────────────────────────────────────────────────────────────

def _pending(session):
    return session.info.setdefault(_PENDING_KEY, [])


def _after_flush(session, flush_context):
    pending = _pending(session)
    for obj in session.new:
        if isinstance(obj, Report):
            pending.append(ChangeEvent(type=INSERT, new=obj.to_row()))
    for obj in session.dirty:
        if isinstance(obj, Report) and session.is_modified(obj, include_collections=False):
            pending.append(ChangeEvent(type=UPDATE, new=obj.to_row()))
    for obj in session.deleted:
        if isinstance(obj, Report):
            pending.append(ChangeEvent(type=DELETE, old={"id": inspect(obj).identity[0]}))


def _after_commit(session):
    # Savepoint releases fire this hook too; wait for the outermost commit
    if session.in_nested_transaction():
        return
    events = session.info.pop(_PENDING_KEY, [])
    for evt in events:
        change_feed.publish(evt)
    if events:
        logger.debug("Published %d report change(s)", len(events))


def _after_soft_rollback(session, previous_transaction):
    # Savepoint rollbacks only undo secondary writes; keep report changes
    if previous_transaction.nested:
        return
    session.info.pop(_PENDING_KEY, None)


_installed = False


def init_realtime(app):
    """Register the session listeners once per process."""
    global _installed
    if not _installed:
        event.listen(Session, "after_flush", _after_flush)
        event.listen(Session, "after_commit", _after_commit)
        event.listen(Session, "after_soft_rollback", _after_soft_rollback)
        _installed = True
    app.extensions["civicfix_change_feed"] = change_feed
    return change_feed
