"""
CivicFix
Tests - realtime change feed.

Covers:
    - ChangeFeed subscribe / publish / unsubscribe
    - Bounded subscriber queues drop oldest events
    - Identity filtering (deletes always delivered)
    - ReportListMirror insert / update / delete reconciliation
    - Session hooks: publish after commit, discard on rollback
    - SSE framing and stream endpoint
"""

import json

import pytest

from civicfix.models import db as _db
from civicfix.models.report import Report
from civicfix.services.identity import ReporterIdentity
from civicfix.services.realtime import (
    DELETE,
    INSERT,
    UPDATE,
    ChangeEvent,
    ChangeFeed,
    ReportListMirror,
    change_feed,
    format_sse,
    identity_predicate,
    sse_stream,
)


def _row(report_id, **kw):
    row = {
        "id": report_id,
        "created_at": "2025-06-01T10:00:00+00:00",
        "category": "Trash",
        "severity": "medium",
        "status": "pending",
        "device_id": "device-a",
    }
    row.update(kw)
    return row


@pytest.fixture
def subscription():
    sub = change_feed.subscribe()
    yield sub
    sub.close()


# ═════════════════════════════════════════════════════════════════════════════
# FEED
# ═════════════════════════════════════════════════════════════════════════════

class TestChangeFeed:
    def test_publish_reaches_subscribers(self):
        feed = ChangeFeed()
        a = feed.subscribe()
        b = feed.subscribe()
        assert feed.publish(ChangeEvent(type=INSERT, new=_row("r1"))) == 2
        assert a.get(timeout=0).row_id == "r1"
        assert b.get(timeout=0).row_id == "r1"

    def test_unsubscribe(self):
        feed = ChangeFeed()
        sub = feed.subscribe()
        sub.close()
        assert feed.subscriber_count == 0
        assert feed.publish(ChangeEvent(type=INSERT, new=_row("r1"))) == 0

    def test_get_timeout_returns_none(self):
        sub = ChangeFeed().subscribe()
        assert sub.get(timeout=0.01) is None

    def test_slow_subscriber_drops_oldest(self):
        feed = ChangeFeed(maxsize=2)
        sub = feed.subscribe()
        for i in range(3):
            feed.publish(ChangeEvent(type=INSERT, new=_row(f"r{i}")))
        assert sub.dropped == 1
        assert [sub.get(timeout=0).row_id, sub.get(timeout=0).row_id] == ["r1", "r2"]

    def test_predicate_filters(self):
        feed = ChangeFeed()
        sub = feed.subscribe(lambda evt: evt.row_id == "keep")
        feed.publish(ChangeEvent(type=INSERT, new=_row("skip")))
        feed.publish(ChangeEvent(type=INSERT, new=_row("keep")))
        assert sub.get(timeout=0).row_id == "keep"
        assert sub.get(timeout=0) is None


class TestIdentityPredicate:
    def test_device_owner_receives(self):
        pred = identity_predicate(ReporterIdentity(device_id="device-a"))
        assert pred(ChangeEvent(type=UPDATE, new=_row("r1"))) is True
        assert pred(ChangeEvent(type=UPDATE, new=_row("r2", device_id="device-b"))) is False

    def test_user_owner_receives(self):
        pred = identity_predicate(ReporterIdentity(user_id="user-1"))
        assert pred(ChangeEvent(type=INSERT, new=_row("r1", reporter_id="user-1"))) is True

    def test_fallback_ids(self):
        pred = identity_predicate(ReporterIdentity(report_ids=("r9",)))
        assert pred(ChangeEvent(type=UPDATE, new=_row("r9", device_id=None))) is True

    def test_delete_always_passes(self):
        pred = identity_predicate(ReporterIdentity(device_id="device-z"))
        assert pred(ChangeEvent(type=DELETE, old={"id": "r1"})) is True


# ═════════════════════════════════════════════════════════════════════════════
# MIRROR
# ═════════════════════════════════════════════════════════════════════════════

class TestReportListMirror:
    def test_insert_prepends(self):
        mirror = ReportListMirror()
        mirror.apply(ChangeEvent(type=INSERT, new=_row("r1")))
        mirror.apply(ChangeEvent(type=INSERT, new=_row("r2")))
        assert mirror.ids() == ["r2", "r1"]
        assert mirror.reports[0]["category"] == "sanitation"

    def test_duplicate_insert_ignored(self):
        mirror = ReportListMirror()
        mirror.apply(ChangeEvent(type=INSERT, new=_row("r1")))
        mirror.apply(ChangeEvent(type=INSERT, new=_row("r1")))
        assert mirror.ids() == ["r1"]

    def test_update_replaces_in_place(self):
        mirror = ReportListMirror()
        for rid in ("r1", "r2"):
            mirror.apply(ChangeEvent(type=INSERT, new=_row(rid)))
        mirror.apply(ChangeEvent(type=UPDATE, new=_row("r1", status="Resolved")))
        assert mirror.ids() == ["r2", "r1"]
        assert mirror.reports[1]["status"] == "resolved"

    def test_update_unknown_inserts(self):
        mirror = ReportListMirror()
        mirror.apply(ChangeEvent(type=UPDATE, new=_row("r5")))
        assert mirror.ids() == ["r5"]

    def test_delete_filters(self):
        mirror = ReportListMirror()
        for rid in ("r1", "r2"):
            mirror.apply(ChangeEvent(type=INSERT, new=_row(rid)))
        mirror.apply(ChangeEvent(type=DELETE, old={"id": "r1"}))
        assert mirror.ids() == ["r2"]


# ═════════════════════════════════════════════════════════════════════════════
# SESSION HOOKS
# ═════════════════════════════════════════════════════════════════════════════

class TestSessionHooks:
    def test_insert_published_after_commit(self, subscription):
        report = Report(category="Pothole", severity="high", device_id="device-a")
        _db.session.add(report)
        _db.session.flush()
        assert subscription.get(timeout=0) is None

        _db.session.commit()
        evt = subscription.get(timeout=0)
        assert evt.type == INSERT
        assert evt.row_id == report.id

    def test_rollback_discards(self, subscription):
        _db.session.add(Report(category="Pothole", severity="high"))
        _db.session.flush()
        _db.session.rollback()
        _db.session.commit()
        assert subscription.get(timeout=0) is None

    def test_update_and_delete(self, subscription, make_report):
        report = make_report()
        subscription.get(timeout=0)

        report.status = "resolved"
        _db.session.commit()
        evt = subscription.get(timeout=0)
        assert evt.type == UPDATE
        assert evt.new["status"] == "resolved"

        report_id = report.id
        _db.session.delete(report)
        _db.session.commit()
        evt = subscription.get(timeout=0)
        assert evt.type == DELETE
        assert evt.old == {"id": report_id}

    def test_savepoint_release_does_not_publish_early(self, subscription):
        _db.session.add(Report(category="Trash", severity="low"))
        _db.session.flush()
        with _db.session.begin_nested():
            pass
        assert subscription.get(timeout=0) is None
        _db.session.rollback()
        assert subscription.get(timeout=0) is None


# ═════════════════════════════════════════════════════════════════════════════
# SSE
# ═════════════════════════════════════════════════════════════════════════════

class TestSse:
    def test_format_includes_normalized_report(self):
        frame = format_sse(ChangeEvent(type=INSERT, new=_row("r1")))
        assert frame.startswith("event: change\ndata: ")
        assert frame.endswith("\n\n")
        payload = json.loads(frame.split("data: ", 1)[1])
        assert payload["type"] == INSERT
        assert payload["report"]["id"] == "r1"
        assert payload["report"]["category"] == "sanitation"

    def test_delete_frame_has_no_report(self):
        frame = format_sse(ChangeEvent(type=DELETE, old={"id": "r1"}))
        payload = json.loads(frame.split("data: ", 1)[1])
        assert "report" not in payload
        assert payload["old"] == {"id": "r1"}

    def test_stream_yields_and_unsubscribes(self):
        feed = ChangeFeed()
        gen = sse_stream(feed, heartbeat=0.01, max_events=1)
        assert next(gen) == ": connected\n\n"
        assert feed.subscriber_count == 1
        feed.publish(ChangeEvent(type=INSERT, new=_row("r1")))
        frames = list(gen)
        assert "r1" in frames[0]
        assert feed.subscriber_count == 0

    def test_unstarted_stream_never_subscribes(self):
        feed = ChangeFeed()
        gen = sse_stream(feed)
        assert feed.subscriber_count == 0
        gen.close()
        assert feed.subscriber_count == 0

    def test_stream_applies_predicate(self):
        feed = ChangeFeed()
        mine = identity_predicate(ReporterIdentity(device_id="device-a"))
        gen = sse_stream(feed, mine, heartbeat=0.01, max_events=1)
        next(gen)
        feed.publish(ChangeEvent(type=INSERT, new=_row("r1", device_id="device-b")))
        feed.publish(ChangeEvent(type=INSERT, new=_row("r2")))
        assert "r2" in next(gen)
        gen.close()

    def test_stream_heartbeat(self):
        feed = ChangeFeed()
        gen = sse_stream(feed, heartbeat=0.01)
        assert next(gen) == ": connected\n\n"
        assert next(gen) == ": keepalive\n\n"
        gen.close()
        assert feed.subscriber_count == 0

    def test_citizen_stream_requires_identity(self, client):
        res = client.get("/api/v1/citizen/reports/stream")
        assert res.status_code == 400

    @pytest.mark.parametrize("path, headers", [
        ("/api/v1/admin/reports/stream", {}),
        ("/api/v1/citizen/reports/stream", {"X-Device-Id": "device-a"}),
    ])
    def test_unread_streams_leave_no_subscribers(self, client, path, headers):
        before = change_feed.subscriber_count
        for _ in range(3):
            res = client.head(path, headers=headers)
            assert res.status_code == 200
            res.close()
            res = client.get(path, headers=headers)
            assert res.mimetype == "text/event-stream"
            res.close()
        assert change_feed.subscriber_count == before
