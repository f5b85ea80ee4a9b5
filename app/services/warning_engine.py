"""
Delay / Risk Warning Engine.

Read-only derivation over a project's phases. Nothing is persisted: each call
reads the current phase state and returns a fresh ``WarningSnapshot``, so two
calls made at different times may disagree.

Per phase (terminal = approved | completed):
    overdue          not terminal and today > planned_end_date
                     → critical when days overdue > CRITICAL_OVERDUE_DAYS, else urgent
    approaching_due  not terminal and 0 ≤ days until planned_end_date ≤ LOOKAHEAD_DAYS
                     → warning
    budget_risk      not terminal and actual_hours / predicted_hours > BUDGET_RATIO
                     → warning above BUDGET_SEVERE_RATIO, else advisory
    flagged          warning_flag set (delay or manual flag) → warning

Project risk score = Σ SEVERITY_WEIGHTS[w.severity]; health = clamp(100 - risk).

Usage:
    from app.services.warning_engine import derive_warnings, project_warnings

    snapshot = derive_warnings(phases, today=date(2025, 3, 1))
    snapshot.to_dict()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from flask import current_app

from app.models.project import TERMINAL_PHASE_STATUSES
from app.services.helpers.lookups import get_project
from app.utils.helpers import decimal_str

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Enums & Data Classes
# ═════════════════════════════════════════════════════════════════════════════

class Severity(str, Enum):
    CRITICAL = "critical"
    URGENT = "urgent"
    WARNING = "warning"
    ADVISORY = "advisory"


class WarningKind(str, Enum):
    OVERDUE = "overdue"
    APPROACHING_DUE = "approaching_due"
    BUDGET_RISK = "budget_risk"
    FLAGGED = "flagged"


@dataclass
class PhaseWarning:
    """One derived warning for one phase."""
    kind: WarningKind
    severity: Severity
    phase_id: int
    phase_name: str
    message: str
    metrics: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "severity": self.severity.value,
            "phase_id": self.phase_id,
            "phase_name": self.phase_name,
            "message": self.message,
            "metrics": self.metrics,
        }


@dataclass
class WarningSnapshot:
    """Point-in-time warning view of a project."""
    as_of: date
    warnings: list[PhaseWarning] = field(default_factory=list)
    project_id: int | None = None

    @property
    def risk_score(self) -> int:
        return sum(SEVERITY_WEIGHTS[w.severity] for w in self.warnings)

    @property
    def health_score(self) -> int:
        return max(0, min(100, 100 - self.risk_score))

    @property
    def summary(self) -> dict:
        by_severity = {s.value: 0 for s in Severity}
        by_kind = {k.value: 0 for k in WarningKind}
        for w in self.warnings:
            by_severity[w.severity.value] += 1
            by_kind[w.kind.value] += 1
        return {
            "total": len(self.warnings),
            "by_severity": by_severity,
            "by_kind": by_kind,
            "phases_at_risk": len({w.phase_id for w in self.warnings}),
        }

    def to_dict(self) -> dict:
        return {
            "project_id": self.project_id,
            "as_of": self.as_of.isoformat(),
            "warnings": [w.to_dict() for w in self.warnings],
            "summary": self.summary,
            "risk_score": self.risk_score,
            "health_score": self.health_score,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Fixed weights and default thresholds
# ═════════════════════════════════════════════════════════════════════════════

SEVERITY_WEIGHTS: dict[Severity, int] = {
    Severity.CRITICAL: 40,
    Severity.URGENT: 25,
    Severity.WARNING: 10,
    Severity.ADVISORY: 5,
}

DEFAULT_THRESHOLDS: dict[str, Any] = {
    "critical_overdue_days": 7,        # overdue beyond this -> critical
    "lookahead_days": 7,               # due within this window -> warning
    "budget_ratio": Decimal("1.0"),    # hours / predicted above this -> advisory
    "budget_severe_ratio": Decimal("1.25"),  # above this -> warning
}


def thresholds_from_config(config) -> dict[str, Any]:
    """Read the deployment's thresholds, falling back to the defaults."""
    return {
        "critical_overdue_days": int(config.get("WARNING_CRITICAL_OVERDUE_DAYS",
                                                DEFAULT_THRESHOLDS["critical_overdue_days"])),
        "lookahead_days": int(config.get("WARNING_LOOKAHEAD_DAYS", DEFAULT_THRESHOLDS["lookahead_days"])),
        "budget_ratio": Decimal(str(config.get("WARNING_BUDGET_RATIO", DEFAULT_THRESHOLDS["budget_ratio"]))),
        "budget_severe_ratio": Decimal(str(config.get("WARNING_BUDGET_SEVERE_RATIO",
                                                      DEFAULT_THRESHOLDS["budget_severe_ratio"]))),
    }


# ═════════════════════════════════════════════════════════════════════════════
# Derivation
# ═════════════════════════════════════════════════════════════════════════════

def _phase_warnings(phase, today: date, t: dict) -> list[PhaseWarning]:
    found = []
    terminal = phase.status in TERMINAL_PHASE_STATUSES
    end = phase.planned_end_date

    if not terminal and end is not None:
        days = (end - today).days
        if days < 0:
            overdue = -days
            severity = Severity.CRITICAL if overdue > t["critical_overdue_days"] else Severity.URGENT
            found.append(PhaseWarning(
                WarningKind.OVERDUE, severity, phase.id, phase.name,
                f"{phase.name} is {overdue} day(s) overdue",
                {"days_overdue": overdue, "planned_end_date": end.isoformat()},
            ))
        elif days <= t["lookahead_days"]:
            found.append(PhaseWarning(
                WarningKind.APPROACHING_DUE, Severity.WARNING, phase.id, phase.name,
                f"{phase.name} is due in {days} day(s)",
                {"days_until_due": days, "planned_end_date": end.isoformat()},
            ))

    predicted = Decimal(phase.predicted_hours or 0)
    actual = Decimal(phase.actual_hours or 0)
    if not terminal and predicted > 0:
        ratio = actual / predicted
        if ratio > t["budget_ratio"]:
            severity = Severity.WARNING if ratio > t["budget_severe_ratio"] else Severity.ADVISORY
            found.append(PhaseWarning(
                WarningKind.BUDGET_RISK, severity, phase.id, phase.name,
                f"{phase.name} has used {ratio * 100:.0f}% of its hours budget",
                {
                    "budget_ratio": str(ratio.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)),
                    "budget_delta": decimal_str(actual - predicted),
                },
            ))

    if phase.warning_flag:
        found.append(PhaseWarning(
            WarningKind.FLAGGED, Severity.WARNING, phase.id, phase.name,
            f"{phase.name} is flagged" + (f" ({phase.delay_reason} delay)" if phase.delay_reason != "none" else ""),
            {"delay_reason": phase.delay_reason},
        ))
    return found


def derive_warnings(phases, today: date, thresholds: dict | None = None) -> WarningSnapshot:
    """Pure: derive every warning for *phases* as of *today*."""
    t = {**DEFAULT_THRESHOLDS, **(thresholds or {})}
    snapshot = WarningSnapshot(as_of=today)
    for phase in phases:
        snapshot.warnings.extend(_phase_warnings(phase, today, t))
    return snapshot


def project_warnings(project_id: int, today: date | None = None) -> WarningSnapshot:
    project = get_project(project_id)
    snapshot = derive_warnings(project.phases, today or date.today(), thresholds_from_config(current_app.config))
    snapshot.project_id = project.id
    logger.debug("Warnings for project_id=%s: %s (risk %s)",
                 project.id, snapshot.summary["total"], snapshot.risk_score)
    return snapshot
