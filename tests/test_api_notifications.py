"""
CivicFix
Tests - citizen notifications and identity API.

Covers:
    - Device id issue / format
    - Notification list, unread count, unread filter, limit
    - Mark read / read-all / delete with ownership checks
    - Identity resolution (user id wins over device id)
    - Device → user claim of reports and notifications
"""

import re

import pytest

from civicfix.models import db as _db
from civicfix.models.notification import Notification
from civicfix.models.report import Report
from civicfix.services.identity import ReporterIdentity, generate_device_id
from civicfix.services.notification import NotificationService

NOTIF = "/api/v1/citizen/notifications"
DEVICE = {"X-Device-Id": "device-1-test"}


@pytest.fixture
def notify(make_report):
    """Create a notification for a fresh report (committed)."""
    def _make(device_id="device-1-test", user_id=None, title="Report status: In Progress", read=False):
        report = make_report(device_id=device_id, reporter_id=user_id)
        notif = NotificationService.create(
            report_id=report.id, title=title, message="msg",
            user_id=user_id, device_id=device_id, status="in-progress",
        )
        if read:
            notif.mark_read()
        _db.session.commit()
        return notif
    return _make


# ═════════════════════════════════════════════════════════════════════════════
# IDENTITY
# ═════════════════════════════════════════════════════════════════════════════

class TestDeviceId:
    def test_format(self):
        assert re.fullmatch(r"device-\d{13}-[0-9a-z]{13}", generate_device_id())

    def test_unique(self):
        assert generate_device_id() != generate_device_id()

    def test_endpoint(self, client):
        res = client.post("/api/v1/citizen/identity/device")
        assert res.status_code == 201
        assert res.get_json()["device_id"].startswith("device-")


class TestReporterIdentity:
    def test_owns(self):
        identity = ReporterIdentity(user_id="u1", device_id="d1", report_ids=("r9",))
        assert identity.owns({"id": "x", "reporter_id": "u1"})
        assert identity.owns({"id": "x", "device_id": "d1"})
        assert identity.owns({"id": "r9"})
        assert not identity.owns({"id": "x", "device_id": "d2"})
        assert not identity.owns(None)

    def test_is_empty(self):
        assert ReporterIdentity().is_empty
        assert not ReporterIdentity(report_ids=("r1",)).is_empty


class TestClaim:
    def test_claim_moves_device_rows(self, client, notify, make_report):
        notify(device_id="device-1-test")
        make_report(device_id="device-1-test", reporter_id="someone-else")

        res = client.post("/api/v1/citizen/identity/claim",
                          headers={"X-User-Id": "user-7", "X-Device-Id": "device-1-test"})
        assert res.status_code == 200
        assert res.get_json()["claimed"] == {"reports": 1, "notifications": 1}
        assert Report.query.filter_by(reporter_id="user-7").count() == 1
        assert Report.query.filter_by(reporter_id="someone-else").count() == 1

        items = client.get(NOTIF, headers={"X-User-Id": "user-7"}).get_json()["items"]
        assert len(items) == 1

    def test_claim_requires_both_ids(self, client):
        res = client.post("/api/v1/citizen/identity/claim", headers={"X-User-Id": "user-7"})
        assert res.status_code == 400

    def test_non_object_body_ignored(self, client, make_report):
        make_report(device_id="device-1-test", reporter_id=None)
        res = client.post("/api/v1/citizen/identity/claim", json=["user-7"],
                          headers={"X-User-Id": "user-7", "X-Device-Id": "device-1-test"})
        assert res.status_code == 200
        assert res.get_json()["claimed"]["reports"] == 1


# ═════════════════════════════════════════════════════════════════════════════
# LIST
# ═════════════════════════════════════════════════════════════════════════════

class TestListNotifications:
    def test_list_by_device(self, client, notify):
        notify()
        notify(device_id="device-other")
        res = client.get(NOTIF, headers=DEVICE)
        assert res.status_code == 200
        data = res.get_json()
        assert len(data["items"]) == 1
        assert data["unread_count"] == 1

    def test_user_id_wins(self, client, notify):
        notify(device_id="device-1-test")
        notify(device_id=None, user_id="user-1")
        items = client.get(NOTIF, headers={"X-User-Id": "user-1", **DEVICE}).get_json()["items"]
        assert [n["user_id"] for n in items] == ["user-1"]

    def test_unread_filter_and_count(self, client, notify):
        notify()
        notify(read=True)
        assert len(client.get(f"{NOTIF}?unread=true", headers=DEVICE).get_json()["items"]) == 1
        assert client.get(f"{NOTIF}/unread-count", headers=DEVICE).get_json() == {"unread_count": 1}

    def test_limit_capped(self, client, notify):
        for _ in range(3):
            notify()
        assert len(client.get(f"{NOTIF}?limit=2", headers=DEVICE).get_json()["items"]) == 2

    def test_no_identity_is_empty(self, client, notify):
        notify()
        data = client.get(NOTIF).get_json()
        assert data == {"items": [], "unread_count": 0}

    def test_status_change_creates_notification_for_device(self, client, make_report):
        report = make_report()
        client.patch(f"/api/v1/admin/reports/{report.id}/status", json={"status": "in-progress"})
        items = client.get(NOTIF, headers=DEVICE).get_json()["items"]
        assert items[0]["report_id"] == report.id
        assert items[0]["status"] == "in-progress"
        assert items[0]["read"] is False

    def test_anonymous_report_gets_no_notification(self, client, make_report):
        report = make_report(device_id=None)
        client.patch(f"/api/v1/admin/reports/{report.id}/status", json={"status": "in-progress"})
        assert Notification.query.count() == 0


# ═════════════════════════════════════════════════════════════════════════════
# ACTIONS
# ═════════════════════════════════════════════════════════════════════════════

class TestNotificationActions:
    def test_mark_read(self, client, notify):
        notif = notify()
        res = client.post(f"{NOTIF}/{notif.id}/read", headers=DEVICE)
        assert res.status_code == 200
        data = res.get_json()
        assert data["read"] is True
        assert data["read_at"] is not None

    def test_mark_read_other_owner_forbidden(self, client, notify):
        notif = notify(device_id="device-other")
        res = client.post(f"{NOTIF}/{notif.id}/read", headers=DEVICE)
        assert res.status_code == 403

    def test_mark_read_missing(self, client):
        assert client.post(f"{NOTIF}/999/read", headers=DEVICE).status_code == 404

    def test_mark_read_requires_identity(self, client, notify):
        notif = notify()
        assert client.post(f"{NOTIF}/{notif.id}/read").status_code == 400

    def test_read_all(self, client, notify):
        notify()
        notify()
        notify(device_id="device-other")
        res = client.post(f"{NOTIF}/read-all", headers=DEVICE)
        assert res.get_json() == {"marked_read": 2}
        assert Notification.query.filter_by(read=False).count() == 1

    def test_delete(self, client, notify):
        notif = notify()
        res = client.delete(f"{NOTIF}/{notif.id}", headers=DEVICE)
        assert res.status_code == 200
        assert Notification.query.count() == 0

    def test_delete_other_owner_forbidden(self, client, notify):
        notif = notify(device_id="device-other")
        assert client.delete(f"{NOTIF}/{notif.id}", headers=DEVICE).status_code == 403
        assert Notification.query.count() == 1
