"""
CivicFix
Auto-assignment rules engine.

Rules are evaluated in ascending ``priority`` order (lower = earlier); the
first enabled rule whose conditions match and that resolves to a team wins.

Strategies:
    - specific team   (assignment.team_name)
    - workload balance (fewest active jobs, optionally within a department)
    - round robin     (per-department rotation counter, process-local)
"""

import logging
import threading
from dataclasses import asdict, dataclass, field

from civicfix.services.team_service import active_job_counts, list_teams

logger = logging.getLogger(__name__)


@dataclass
class AssignmentRule:
    id: str
    name: str
    type: str
    enabled: bool = True
    priority: int = 50
    conditions: dict = field(default_factory=dict)
    assignment: dict = field(default_factory=dict)

    def to_dict(self):
        return asdict(self)


@dataclass
class TeamSuggestion:
    team_name: str | None
    reason: str
    confidence: str = "low"
    rule_id: str | None = None

    def to_dict(self):
        return asdict(self)


DEFAULT_RULES = (
    AssignmentRule(
        id="critical-priority", name="Critical Priority → Emergency Team",
        type="priority-based", priority=0,
        conditions={"priority": ["critical"]},
        assignment={"team_name": "Emergency Response"},
    ),
    AssignmentRule(
        id="roads-category", name="Roads Category → Roads Team",
        type="category-based", priority=1,
        conditions={"category": ["roads"]},
        assignment={"team_name": "Roads Team Alpha"},
    ),
    AssignmentRule(
        id="sanitation-category", name="Sanitation Category → Sanitation Team",
        type="category-based", priority=1,
        conditions={"category": ["sanitation"]},
        assignment={"team_name": "Sanitation Unit B"},
    ),
    AssignmentRule(
        id="water-category", name="Water Category → Water Team",
        type="category-based", priority=1,
        conditions={"category": ["water"]},
        assignment={"team_name": "GUMA Valley Team"},
    ),
    AssignmentRule(
        id="electrical-category", name="Electrical Category → Electrical Team",
        type="category-based", priority=1,
        conditions={"category": ["electrical"]},
        assignment={"team_name": "Electrical Response"},
    ),
    AssignmentRule(
        id="workload-balance-fallback", name="Workload Balance (Fallback)",
        type="workload-balance", priority=100,
        conditions={},
        assignment={"strategy": "workload-balance"},
    ),
)


def default_rules():
    return [AssignmentRule(**r.to_dict()) for r in DEFAULT_RULES]


# ── Round-robin state ────────────────────────────────────────────────────────

_rr_lock = threading.Lock()
_rr_index: dict[str, int] = {}


def reset_round_robin():
    with _rr_lock:
        _rr_index.clear()


# ── Matching & strategies ────────────────────────────────────────────────────

def matches_conditions(report_view, rule):
    """``report_view`` is the normalized dict from ``convert_report_from_db``."""
    cond = rule.conditions or {}
    if cond.get("category") and report_view.get("category") not in cond["category"]:
        return False
    if cond.get("priority") and (report_view.get("priority") or "medium") not in cond["priority"]:
        return False
    if cond.get("severity") and report_view.get("severity") not in cond["severity"]:
        return False
    return True


def _by_workload(teams, counts, department=None):
    eligible = [t for t in teams if not department or t.department == department]
    if not eligible:
        return teams[0] if teams else None
    # Stable sort keeps name order among equally loaded teams
    return sorted(eligible, key=lambda t: counts.get(t.name, 0))[0]


def _by_round_robin(teams, department=None):
    eligible = [t for t in teams if not department or t.department == department]
    if not eligible:
        return teams[0] if teams else None
    key = department or "all"
    with _rr_lock:
        idx = _rr_index.get(key, 0)
        team = eligible[idx % len(eligible)]
        _rr_index[key] = (idx + 1) % len(eligible)
    return team


def _apply_rule(rule, teams, counts):
    assignment = rule.assignment or {}
    if assignment.get("team_name"):
        match = next((t for t in teams if t.name == assignment["team_name"]), None)
        return match, f"Rule: {rule.name} (specific team)", "high"

    department = assignment.get("department")
    if assignment.get("strategy") == "workload-balance":
        team = _by_workload(teams, counts, department)
        label = f"workload balance in {department}" if department else "workload balance"
    else:
        team = _by_round_robin(teams, department)
        label = f"round-robin in {department}" if department else "round-robin"
    return team, f"Rule: {rule.name} ({label})", "medium" if department else "low"


def select_team(report_view, rules=None) -> TeamSuggestion:
    """Evaluate rules against a normalized report and pick a team."""
    teams = list_teams()
    if not teams:
        return TeamSuggestion(team_name=None, reason="No teams available")

    counts = active_job_counts()
    enabled = sorted((r for r in (rules or default_rules()) if r.enabled), key=lambda r: r.priority)

    for rule in enabled:
        if not matches_conditions(report_view, rule):
            continue
        team, reason, confidence = _apply_rule(rule, teams, counts)
        if team:
            logger.debug("Report %s matched rule %s → %s", report_view.get("id"), rule.id, team.name)
            return TeamSuggestion(team_name=team.name, reason=reason,
                                  confidence=confidence, rule_id=rule.id)

    return TeamSuggestion(team_name=None, reason="No matching rule")
