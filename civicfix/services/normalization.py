"""
CivicFix
Report normalization - raw rows to the public report shape.

Classification labels, severities and statuses arrive in several spellings
("Pothole", "High", "In Progress"). Everything here is total: unmapped input
falls back to ``other`` / ``medium`` / ``pending`` instead of raising.

Also holds the derived-field rules (priority, SLA) since both are computed
from the same normalized values.
"""

import logging
from datetime import datetime, timedelta

from civicfix.utils.helpers import as_aware, parse_datetime, utcnow

logger = logging.getLogger(__name__)


# ── Lookup tables ────────────────────────────────────────────────────────────

SEVERITY_MAP = {
    "low": "low",
    "medium": "medium",
    "high": "high",
}

STATUS_MAP = {
    "pending": "pending",
    "in progress": "in-progress",
    "in-progress": "in-progress",
    "in_progress": "in-progress",
    "resolved": "resolved",
}

# Checked in order: "Street Light" must land on electrical before roads sees "street".
CATEGORY_KEYWORDS = (
    ("electrical", ("electric", "light", "lamp", "power", "wire", "cable", "pole", "outage")),
    ("water", ("water", "leak", "flood", "pipe", "drain", "burst", "hydrant")),
    ("sanitation", ("sanitation", "trash", "garbage", "waste", "litter", "rubbish",
                    "dump", "sewage", "bin")),
    ("roads", ("road", "pothole", "street", "pavement", "sidewalk", "crack",
               "asphalt", "bridge", "traffic")),
)

SLA_TARGET_HOURS = {
    "critical": 2,
    "high": 4,
    "medium": 24,
    "low": 72,
}
SLA_WARNING_RATIO = 0.8


# ── Field normalizers ────────────────────────────────────────────────────────

def normalize_category(label):
    """Map a free-form classification label onto the category enum."""
    if not label:
        return "other"
    text = str(label).strip().lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if text == category or any(word in text for word in keywords):
            return category
    return "other"


def normalize_severity(value):
    if not value:
        return "medium"
    return SEVERITY_MAP.get(str(value).strip().lower(), "medium")


def normalize_status(value):
    if not value:
        return "pending"
    return STATUS_MAP.get(str(value).strip().lower(), "pending")


def parse_status(value):
    """Strict variant for writes: returns None when the value is not a status."""
    if not value:
        return None
    return STATUS_MAP.get(str(value).strip().lower())


def derive_title(category, description):
    if category and str(category).strip():
        return f"{str(category).strip().title()} Issue"
    if description:
        return description[:50]
    return "Untitled Report"


def format_location(latitude, longitude):
    # Zero coordinates count as missing, same as an absent fix
    if latitude and longitude:
        return f"{float(latitude):.4f}, {float(longitude):.4f}"
    return "Location not available"


# ── Priority & SLA ───────────────────────────────────────────────────────────

def calculate_priority(severity, status, created_at, now=None):
    """Priority from severity and age. Resolved reports drop to low."""
    severity = normalize_severity(severity)
    status = normalize_status(status)
    if status == "resolved":
        return "low"

    now = as_aware(now) or utcnow()
    created = parse_datetime(created_at) or now
    age_hours = (now - created).total_seconds() / 3600

    if severity == "high":
        return "critical" if age_hours > 24 else "high"
    if severity == "medium":
        return "high" if age_hours > 24 else "medium"
    return "medium" if age_hours > 48 else "low"


def effective_priority(row, now=None):
    override = (row.get("priority") or "").strip().lower()
    if override in SLA_TARGET_HOURS:
        return override
    return calculate_priority(row.get("severity"), row.get("status"), row.get("created_at"), now=now)


def sla_status(priority, status, created_at, resolved_at=None, now=None):
    """
    SLA evaluation for a single report.

    Returns a dict with ``state`` (on-time | warning | breached),
    ``target_hours``, ``elapsed_hours`` and ``due_at``.
    """
    target = SLA_TARGET_HOURS.get(priority, SLA_TARGET_HOURS["medium"])
    now = as_aware(now) or utcnow()
    created = parse_datetime(created_at) or now
    due_at = created + timedelta(hours=target)

    if normalize_status(status) == "resolved":
        end = parse_datetime(resolved_at) or now
        elapsed = (end - created).total_seconds() / 3600
        return {
            "state": "on-time",
            "target_hours": target,
            "elapsed_hours": round(elapsed, 2),
            "due_at": due_at.isoformat(),
            "met": elapsed <= target,
        }

    elapsed = (now - created).total_seconds() / 3600
    if elapsed > target:
        state = "breached"
    elif elapsed >= target * SLA_WARNING_RATIO:
        state = "warning"
    else:
        state = "on-time"
    return {
        "state": state,
        "target_hours": target,
        "elapsed_hours": round(elapsed, 2),
        "due_at": due_at.isoformat(),
        "met": state != "breached",
    }


# ── Row conversion ───────────────────────────────────────────────────────────

def _iso(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_aware(value).isoformat()
    parsed = parse_datetime(value)
    return parsed.isoformat() if parsed else None


def convert_report_from_db(row, now=None):
    """
    Convert a raw report row (dict) to the public report shape.

    Idempotent on the normalized fields: feeding an already-converted
    ``category`` / ``severity`` / ``status`` back in yields the same values.
    """
    severity = normalize_severity(row.get("severity"))
    status = normalize_status(row.get("status"))
    normalized = dict(row, severity=severity, status=status)
    priority = effective_priority(normalized, now=now)

    return {
        "id": row.get("id"),
        "title": derive_title(row.get("category"), row.get("description")),
        "category": normalize_category(row.get("category")),
        "category_label": row.get("category"),
        "severity": severity,
        "status": status,
        "priority": priority,
        "priority_override": bool((row.get("priority") or "").strip()),
        "sla": sla_status(priority, status, row.get("created_at"), row.get("resolved_at"), now=now),
        "description": row.get("description") or "",
        "location": format_location(row.get("latitude"), row.get("longitude")),
        "latitude": row.get("latitude"),
        "longitude": row.get("longitude"),
        "timestamp": _iso(row.get("created_at")),
        "reported_by": row.get("reporter_id") or row.get("device_id") or None,
        "assigned_to": row.get("assigned_to") or None,
        "resolved_at": _iso(row.get("resolved_at")),
        "image_url": row.get("image_url") or None,
        "proof_image_url": row.get("proof_image_url") or None,
        "ai_model": row.get("ai_model"),
    }
