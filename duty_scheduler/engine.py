"""
engine.py — Duty Assignment & Compliance Engine facade

One call runs the whole pipeline over an immutable input snapshot:

  validate → assign (call/float) → optimize (clinic coverage) → detect (conflicts)

and adds per-trainee running counts against tier targets.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .assigner import assign
from .clinic_coverage import CoverageConstraints, optimize
from .config import EngineSettings, targets_for
from .conflicts import OverrideKey, detect
from .models import (
    AssignmentResult,
    ConflictReport,
    CoverageResult,
    Period,
    RotationGrid,
    TimeOff,
    Trainee,
    schedule_to_dict,
)
from .schedule_config import COVERAGE_SEED
from .validation import validate_inputs

logger = logging.getLogger(__name__)


@dataclass
class EngineResult:
    assignment: AssignmentResult
    coverage: CoverageResult
    conflicts: ConflictReport
    running_counts: Dict[str, Dict[str, int]]

    def to_dict(self) -> Dict[str, Any]:
        """Plain-value form (schedules keyed "B<p>-W<w>")."""
        return {
            "call_schedule": schedule_to_dict(self.assignment.call_schedule),
            "float_schedule": schedule_to_dict(self.assignment.float_schedule),
            "coverage": [
                {
                    "period": e.period,
                    "week": e.week,
                    "absent": e.absent,
                    "clinic_day": e.absent_clinic_day,
                    "clinic_date": e.clinic_date.isoformat() if e.clinic_date else None,
                    "coverer": e.coverer,
                    "coverer_rotation": e.coverer_rotation,
                    "relaxed_same_clinic_day": e.relaxed_same_clinic_day,
                    "relaxed_back_to_back": e.relaxed_back_to_back,
                }
                for e in self.coverage.entries
            ],
            "violations": [
                {
                    "trainee": v.trainee,
                    "period": v.period,
                    "rule": v.rule,
                    "severity": v.severity,
                    "detail": v.detail,
                }
                for v in self.assignment.violations + self.conflicts.acgme_violations
            ],
            "double_bookings": self.conflicts.double_bookings,
            "coverage_gaps": self.conflicts.coverage_gaps,
            "running_counts": self.running_counts,
        }


def running_counts(
    roster: Sequence[Trainee],
    assignment: AssignmentResult,
    coverage: CoverageResult,
    tier_targets: Dict[int, Dict[str, int]],
) -> Dict[str, Dict[str, int]]:
    """trainee → {call, float, coverage} actual counts plus their targets."""
    out: Dict[str, Dict[str, int]] = {}
    for t in roster:
        targets = tier_targets.get(t.tier, {})
        out[t.name] = {
            "call": assignment.call_counts.get(t.name, 0),
            "float": assignment.float_counts.get(t.name, 0),
            "coverage": coverage.counts.get(t.name, 0),
            "call_target": targets.get("call", 0),
            "float_target": targets.get("float", 0),
            "coverage_target": targets.get("coverage", 0),
        }
    return out


def tier_balance(roster: Sequence[Trainee], counts: Dict[str, Dict[str, int]]) -> Dict[int, Dict[str, Dict[str, float]]]:
    """
    Per tier, per duty kind: min / max / mean of actual counts.

    Returns:
        {tier: {"call": {"min", "max", "mean"}, "float": {...}, "coverage": {...}}}
    """
    by_tier: Dict[int, List[str]] = {}
    for t in roster:
        by_tier.setdefault(t.tier, []).append(t.name)

    out: Dict[int, Dict[str, Dict[str, float]]] = {}
    for tier, names in sorted(by_tier.items()):
        out[tier] = {}
        for kind in ("call", "float", "coverage"):
            values = [counts[n][kind] for n in names]
            out[tier][kind] = {
                "min": min(values),
                "max": max(values),
                "mean": round(sum(values) / len(values), 2),
            }
    return out


def run_engine(
    roster: Sequence[Trainee],
    rotation_grid: RotationGrid,
    periods: Sequence[Period],
    tier_targets: Dict[int, Dict[str, int]],
    time_off: Optional[Iterable[TimeOff]] = None,
    day_overrides: Optional[Dict[OverrideKey, str]] = None,
    coverage_constraints: Optional[CoverageConstraints] = None,
    settings: Optional[EngineSettings] = None,
) -> EngineResult:
    """
    Run assign → optimize → detect over one snapshot.

    Raises ScheduleInputError (listing every problem) before any component
    runs if the inputs are malformed.
    """
    roster = list(roster)
    time_off = list(time_off or [])
    settings = settings or EngineSettings()
    call_targets = targets_for(tier_targets, "call")
    float_targets = targets_for(tier_targets, "float")

    validate_inputs(roster, rotation_grid, periods, call_targets, float_targets, time_off)

    if coverage_constraints is None:
        coverage_constraints = CoverageConstraints(
            target_per_trainee=targets_for(tier_targets, "coverage"),
            seed=COVERAGE_SEED,
        )

    assignment = assign(roster, rotation_grid, call_targets, float_targets, periods, time_off, settings)
    coverage = optimize(
        roster, rotation_grid,
        constraints=coverage_constraints,
        periods=periods,
        time_off=time_off,
        settings=settings,
    )
    conflicts = detect(
        rotation_grid,
        assignment.call_schedule,
        assignment.float_schedule,
        roster,
        periods,
        time_off,
        day_overrides,
    )

    counts = running_counts(roster, assignment, coverage, tier_targets)
    logger.info(
        f"Engine run complete: {len(assignment.missing_slots)} missing slots, "
        f"{len(coverage.uncovered)} uncovered clinic weeks, {conflicts.total} conflicts"
    )
    return EngineResult(assignment=assignment, coverage=coverage, conflicts=conflicts, running_counts=counts)
