"""
CivicFix
Tests - report normalization, priority and SLA rules.

Covers:
    - Category keyword mapping (labels → enum)
    - Severity / status defaults and spellings
    - Title and location derivation
    - Priority escalation by age, manual override
    - SLA states (on-time / warning / breached, resolved met flag)
    - convert_report_from_db shape and idempotence
"""

from datetime import datetime, timedelta, timezone

import pytest

from civicfix.services.normalization import (
    SLA_TARGET_HOURS,
    calculate_priority,
    convert_report_from_db,
    derive_title,
    effective_priority,
    format_location,
    normalize_category,
    normalize_severity,
    normalize_status,
    parse_status,
    sla_status,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _ago(hours):
    return NOW - timedelta(hours=hours)


# ═════════════════════════════════════════════════════════════════════════════
# FIELD NORMALIZERS
# ═════════════════════════════════════════════════════════════════════════════

class TestNormalizeCategory:
    @pytest.mark.parametrize("label,expected", [
        ("Pothole", "roads"),
        ("Road Damage", "roads"),
        ("Trash", "sanitation"),
        ("Garbage Pile", "sanitation"),
        ("Water Leak", "water"),
        ("Flooding", "water"),
        ("Broken Pipe", "water"),
        ("Street Light", "electrical"),
        ("Downed Power Line", "electrical"),
        ("Unknown", "other"),
        ("Graffiti", "other"),
    ])
    def test_label_mapping(self, label, expected):
        assert normalize_category(label) == expected

    def test_enum_values_map_to_themselves(self):
        for value in ("sanitation", "roads", "water", "electrical"):
            assert normalize_category(value) == value

    def test_empty_is_other(self):
        assert normalize_category(None) == "other"
        assert normalize_category("") == "other"


class TestNormalizeSeverityStatus:
    def test_severity_case_insensitive(self):
        assert normalize_severity("High") == "high"
        assert normalize_severity("LOW") == "low"

    def test_severity_default_medium(self):
        assert normalize_severity(None) == "medium"
        assert normalize_severity("extreme") == "medium"

    def test_status_spellings(self):
        assert normalize_status("In Progress") == "in-progress"
        assert normalize_status("in_progress") == "in-progress"
        assert normalize_status("Resolved") == "resolved"

    def test_status_default_pending(self):
        assert normalize_status(None) == "pending"
        assert normalize_status("archived") == "pending"

    def test_parse_status_strict(self):
        assert parse_status("in-progress") == "in-progress"
        assert parse_status("archived") is None
        assert parse_status("") is None


class TestTitleAndLocation:
    def test_title_from_category(self):
        assert derive_title("Sanitation", "whatever") == "Sanitation Issue"
        assert derive_title("pothole", None) == "Pothole Issue"

    def test_title_from_description(self):
        text = "x" * 80
        assert derive_title(None, text) == "x" * 50

    def test_title_untitled(self):
        assert derive_title(None, None) == "Untitled Report"
        assert derive_title("  ", "") == "Untitled Report"

    def test_location_six_decimals(self):
        assert format_location(8.484, -13.2299) == "8.4840, -13.2299"

    def test_location_missing(self):
        assert format_location(None, 1.0) == "Location not available"
        assert format_location(0, 0) == "Location not available"


# ═════════════════════════════════════════════════════════════════════════════
# PRIORITY & SLA
# ═════════════════════════════════════════════════════════════════════════════

class TestPriority:
    def test_high_escalates_after_a_day(self):
        assert calculate_priority("high", "pending", _ago(2), now=NOW) == "high"
        assert calculate_priority("high", "pending", _ago(25), now=NOW) == "critical"

    def test_medium_escalates_after_a_day(self):
        assert calculate_priority("medium", "pending", _ago(1), now=NOW) == "medium"
        assert calculate_priority("medium", "in-progress", _ago(30), now=NOW) == "high"

    def test_low_escalates_after_two_days(self):
        assert calculate_priority("low", "pending", _ago(47), now=NOW) == "low"
        assert calculate_priority("low", "pending", _ago(49), now=NOW) == "medium"

    def test_resolved_is_low(self):
        assert calculate_priority("high", "resolved", _ago(100), now=NOW) == "low"

    def test_override_wins(self):
        row = {"severity": "low", "status": "pending", "created_at": _ago(1), "priority": "critical"}
        assert effective_priority(row, now=NOW) == "critical"

    def test_invalid_override_ignored(self):
        row = {"severity": "low", "status": "pending", "created_at": _ago(1), "priority": "urgent"}
        assert effective_priority(row, now=NOW) == "low"


class TestSla:
    def test_targets(self):
        assert SLA_TARGET_HOURS == {"critical": 2, "high": 4, "medium": 24, "low": 72}

    def test_on_time(self):
        sla = sla_status("high", "pending", _ago(1), now=NOW)
        assert sla["state"] == "on-time"
        assert sla["target_hours"] == 4
        assert sla["met"] is True

    def test_warning_at_eighty_percent(self):
        sla = sla_status("medium", "pending", _ago(20), now=NOW)
        assert sla["state"] == "warning"

    def test_breached(self):
        sla = sla_status("critical", "in-progress", _ago(3), now=NOW)
        assert sla["state"] == "breached"
        assert sla["met"] is False

    def test_resolved_uses_resolution_time(self):
        sla = sla_status("high", "resolved", _ago(10), resolved_at=_ago(7), now=NOW)
        assert sla["state"] == "on-time"
        assert sla["elapsed_hours"] == 3.0
        assert sla["met"] is True

    def test_resolved_late_not_met(self):
        sla = sla_status("high", "resolved", _ago(10), resolved_at=_ago(1), now=NOW)
        assert sla["met"] is False

    def test_due_at(self):
        sla = sla_status("low", "pending", _ago(0), now=NOW)
        assert sla["due_at"] == (NOW + timedelta(hours=72)).isoformat()


# ═════════════════════════════════════════════════════════════════════════════
# ROW CONVERSION
# ═════════════════════════════════════════════════════════════════════════════

class TestConvertReportFromDb:
    ROW = {
        "id": "r-1",
        "created_at": "2025-06-01T10:00:00+00:00",
        "category": "Pothole",
        "severity": "High",
        "status": "In Progress",
        "description": "Deep pothole",
        "latitude": 8.5,
        "longitude": -13.25,
        "device_id": "device-1",
        "assigned_to": "Roads Team Alpha",
        "image_url": "http://localhost/uploads/hazards/a.png",
    }

    def test_shape(self):
        view = convert_report_from_db(self.ROW, now=NOW)
        assert view["id"] == "r-1"
        assert view["title"] == "Pothole Issue"
        assert view["category"] == "roads"
        assert view["category_label"] == "Pothole"
        assert view["severity"] == "high"
        assert view["status"] == "in-progress"
        assert view["priority"] == "high"
        assert view["priority_override"] is False
        assert view["location"] == "8.5000, -13.2500"
        assert view["reported_by"] == "device-1"
        assert view["assigned_to"] == "Roads Team Alpha"
        assert view["timestamp"] == "2025-06-01T10:00:00+00:00"
        assert view["resolved_at"] is None
        assert view["proof_image_url"] is None

    def test_reporter_prefers_user_id(self):
        view = convert_report_from_db(dict(self.ROW, reporter_id="user-9"), now=NOW)
        assert view["reported_by"] == "user-9"

    def test_naive_timestamp_treated_as_utc(self):
        row = dict(self.ROW, created_at=datetime(2025, 6, 1, 10, 0))
        assert convert_report_from_db(row, now=NOW)["timestamp"] == "2025-06-01T10:00:00+00:00"

    def test_normalized_fields_idempotent(self):
        first = convert_report_from_db(self.ROW, now=NOW)
        again = convert_report_from_db(
            dict(self.ROW, category=first["category"], severity=first["severity"],
                 status=first["status"]),
            now=NOW,
        )
        for key in ("category", "severity", "status", "priority"):
            assert again[key] == first[key]

    def test_empty_row_defaults(self):
        view = convert_report_from_db({"id": "x"}, now=NOW)
        assert view["category"] == "other"
        assert view["severity"] == "medium"
        assert view["status"] == "pending"
        assert view["title"] == "Untitled Report"
        assert view["description"] == ""
        assert view["location"] == "Location not available"
