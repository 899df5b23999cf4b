"""
CivicFix
Dashboard statistics - admin overview computed over normalized reports.

Metrics:
    - totals by status, category and effective priority
    - SLA compliance over resolved reports and live breaches among open ones
    - 7-day submission trend against the previous 7 days
    - average resolution time in hours
"""

import logging
from datetime import timedelta

from civicfix.models.report import REPORT_CATEGORIES, REPORT_PRIORITIES, REPORT_STATUSES, Report
from civicfix.utils.helpers import as_aware, parse_datetime, utcnow

logger = logging.getLogger(__name__)


def _pct_change(current, previous):
    if previous == 0:
        return 100.0 if current else 0.0
    return round((current - previous) / previous * 100, 1)


def compute_dashboard(now=None):
    now = as_aware(now) or utcnow()
    views = [r.to_dict(now=now) for r in Report.query.all()]

    by_status = {s: 0 for s in REPORT_STATUSES}
    by_category = {c: 0 for c in REPORT_CATEGORIES}
    by_priority = {p: 0 for p in REPORT_PRIORITIES}
    for v in views:
        by_status[v["status"]] += 1
        by_category[v["category"]] += 1
        by_priority[v["priority"]] += 1

    resolved = [v for v in views if v["status"] == "resolved"]
    open_views = [v for v in views if v["status"] != "resolved"]

    met = sum(1 for v in resolved if v["sla"]["met"])
    compliance = round(met / len(resolved) * 100, 1) if resolved else 100.0
    breaches = sum(1 for v in open_views if v["sla"]["state"] == "breached")
    warnings = sum(1 for v in open_views if v["sla"]["state"] == "warning")

    durations = []
    for v in resolved:
        created = parse_datetime(v["timestamp"])
        closed = parse_datetime(v["resolved_at"])
        if created and closed and closed >= created:
            durations.append((closed - created).total_seconds() / 3600)
    avg_resolution = round(sum(durations) / len(durations), 1) if durations else None

    week_ago = now - timedelta(days=7)
    two_weeks_ago = now - timedelta(days=14)
    this_week = 0
    last_week = 0
    for v in views:
        created = parse_datetime(v["timestamp"])
        if not created:
            continue
        if created >= week_ago:
            this_week += 1
        elif created >= two_weeks_ago:
            last_week += 1

    return {
        "total": len(views),
        "by_status": by_status,
        "by_category": by_category,
        "by_priority": by_priority,
        "unassigned_open": sum(1 for v in open_views if not v["assigned_to"]),
        "sla": {
            "compliance_pct": compliance,
            "breached_open": breaches,
            "warning_open": warnings,
        },
        "avg_resolution_hours": avg_resolution,
        "trend": {
            "this_week": this_week,
            "last_week": last_week,
            "change_pct": _pct_change(this_week, last_week),
        },
        "generated_at": now.isoformat(),
    }
