"""
CivicFix
Tests - admin dashboard statistics.

Covers:
    - Totals by status / category / priority
    - SLA compliance and open breaches
    - Average resolution time, weekly trend
"""

from datetime import datetime, timedelta, timezone

from civicfix.models import db as _db
from civicfix.services.dashboard_service import compute_dashboard


class TestDashboard:
    def test_empty(self):
        stats = compute_dashboard()
        assert stats["total"] == 0
        assert stats["sla"]["compliance_pct"] == 100.0
        assert stats["avg_resolution_hours"] is None
        assert stats["trend"] == {"this_week": 0, "last_week": 0, "change_pct": 0.0}

    def test_counts(self, make_report):
        make_report(category="Pothole", status="pending")
        make_report(category="Trash", status="in-progress", severity="medium")
        make_report(category="Water Leak", status="resolved", assigned_to="Water Crew")

        stats = compute_dashboard()
        assert stats["total"] == 3
        assert stats["by_status"] == {"pending": 1, "in-progress": 1, "resolved": 1}
        assert stats["by_category"]["roads"] == 1
        assert stats["by_category"]["sanitation"] == 1
        assert stats["by_category"]["water"] == 1
        assert stats["by_category"]["electrical"] == 0
        assert stats["unassigned_open"] == 2

    def test_sla(self, make_report):
        now = datetime.now(timezone.utc)
        fast = make_report(severity="high", status="resolved", priority="high", age_hours=10,
                           commit=False)
        fast.resolved_at = now - timedelta(hours=8)
        slow = make_report(severity="high", status="resolved", priority="high", age_hours=10,
                           commit=False)
        slow.resolved_at = now - timedelta(hours=1)
        make_report(severity="high", status="pending", age_hours=6)
        _db.session.commit()

        stats = compute_dashboard(now=now)
        assert stats["sla"]["compliance_pct"] == 50.0
        assert stats["sla"]["breached_open"] == 1
        assert stats["avg_resolution_hours"] == 5.5

    def test_weekly_trend(self, make_report):
        make_report(age_hours=24)
        make_report(age_hours=48)
        make_report(age_hours=24 * 9)
        stats = compute_dashboard()
        assert stats["trend"] == {"this_week": 2, "last_week": 1, "change_pct": 100.0}

    def test_endpoint(self, client, make_report):
        make_report()
        res = client.get("/api/v1/admin/dashboard")
        assert res.status_code == 200
        data = res.get_json()
        assert data["total"] == 1
        assert "generated_at" in data
